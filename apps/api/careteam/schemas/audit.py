"""Audit log response schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class AuditLogRead(BaseModel):
    id: UUID
    event_type: str
    actor_user_id: UUID | None
    actor_name: str | None = None  # resolved from users; None for system events
    target_type: str | None
    target_id: UUID | None
    details: dict[str, Any] | None
    ip_address: str | None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    items: list[AuditLogRead]
    total: int
    page: int
    per_page: int
