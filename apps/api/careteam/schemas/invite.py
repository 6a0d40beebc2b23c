"""Invite-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel

from careteam.core.scopes import PermissionScope


class InviteCreate(BaseModel):
    """
    Request schema for inviting a professional to a child's care team.

    Email is optional; unbound invites can be accepted by any professional.
    Both the email and the scopes are validated by the invite service, so a
    malformed address surfaces as invalid_recipient_email and unknown or
    missing scopes as invalid_scope (400, not 422).
    """
    email: str | None = None
    scopes: list[str] = []


class InviteRead(BaseModel):
    """Guardian-facing view of an invitation."""
    id: UUID
    email: str | None
    scopes: list[PermissionScope]
    status: str  # pending | accepted | denied | expired
    expires_at: datetime
    responded_at: datetime | None
    created_at: datetime


class InviteListResponse(BaseModel):
    invites: list[InviteRead]
    pending_count: int


class InvitePreview(BaseModel):
    """Public invite details (no sensitive info)."""
    id: UUID
    child_name: str
    sender_name: str
    scopes: list[PermissionScope]
    expires_at: datetime
    status: str


class InviteAcceptResponse(BaseModel):
    accepted: bool = True
    child_id: UUID
    grant_id: UUID
    scopes: list[PermissionScope]
