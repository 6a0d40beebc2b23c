"""API routers."""

from careteam.routers.audit import router as audit_router
from careteam.routers.children import router as children_router
from careteam.routers.invites import router as invites_router
from careteam.routers.me import router as me_router

__all__ = [
    "audit_router",
    "children_router",
    "invites_router",
    "me_router",
]
