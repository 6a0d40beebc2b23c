"""Care team access schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from careteam.core.scopes import PermissionScope


class TeamMemberRead(BaseModel):
    """A professional with active access to a child (guardian view)."""
    grant_id: UUID
    professional_id: UUID
    name: str
    email: str
    role: str
    scopes: list[PermissionScope]
    granted_at: datetime


class PatientRead(BaseModel):
    """A child the current professional can access."""
    grant_id: UUID
    child_id: UUID
    child_name: str
    scopes: list[PermissionScope]
    granted_at: datetime


class AccessCheckResponse(BaseModel):
    child_id: UUID
    scope: PermissionScope
    allowed: bool
