"""Pydantic schemas for API request/response models."""

from careteam.schemas.access import AccessCheckResponse, PatientRead, TeamMemberRead
from careteam.schemas.audit import AuditLogListResponse, AuditLogRead
from careteam.schemas.auth import UserSession
from careteam.schemas.invite import (
    InviteAcceptResponse,
    InviteCreate,
    InviteListResponse,
    InvitePreview,
    InviteRead,
)

__all__ = [
    "AccessCheckResponse",
    "PatientRead",
    "TeamMemberRead",
    "AuditLogListResponse",
    "AuditLogRead",
    "UserSession",
    "InviteAcceptResponse",
    "InviteCreate",
    "InviteListResponse",
    "InvitePreview",
    "InviteRead",
]
