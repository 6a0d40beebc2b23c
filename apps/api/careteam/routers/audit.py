"""Admin monitoring view of the audit log."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from careteam.core.deps import get_db, require_roles
from careteam.db.enums import AuditEventType, Role
from careteam.db.models import AuditLog, User
from careteam.schemas.audit import AuditLogListResponse, AuditLogRead
from careteam.schemas.auth import UserSession
from careteam.services import audit_service
from careteam.utils.pagination import PaginationParams, get_pagination

router = APIRouter(prefix="/audit", tags=["audit"])

require_admin = require_roles([Role.ADMIN])


def _actor_names(db: Session, entries: list[AuditLog]) -> dict[UUID, str]:
    ids = {entry.actor_user_id for entry in entries if entry.actor_user_id}
    if not ids:
        return {}
    rows = db.execute(select(User.id, User.name).where(User.id.in_(ids))).all()
    return {row.id: row.name for row in rows}


@router.get("/", response_model=AuditLogListResponse)
def list_audit_logs(
    pagination: PaginationParams = Depends(get_pagination),
    event_type: str | None = Query(None, description="Only this event type"),
    actor_user_id: UUID | None = Query(None, description="Only events by this user"),
    target_type: str | None = Query(None, description="Only this target type"),
    target_id: UUID | None = Query(None, description="Only events on this target"),
    start_date: datetime | None = Query(None, description="Events at or after"),
    end_date: datetime | None = Query(None, description="Events at or before"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_admin),
):
    """Audit entries, newest first (admin only)."""
    if event_type is not None and event_type not in {e.value for e in AuditEventType}:
        raise HTTPException(status_code=400, detail=f"Unknown event type '{event_type}'")

    entries, total = audit_service.list_events(
        db,
        audit_service.AuditFilters(
            event_type=AuditEventType(event_type) if event_type else None,
            actor_user_id=actor_user_id,
            target_type=target_type,
            target_id=target_id,
            start_date=start_date,
            end_date=end_date,
        ),
        pagination,
    )
    names = _actor_names(db, entries)

    return AuditLogListResponse(
        items=[
            AuditLogRead(
                id=entry.id,
                event_type=entry.event_type,
                actor_user_id=entry.actor_user_id,
                actor_name=names.get(entry.actor_user_id),
                target_type=entry.target_type,
                target_id=entry.target_id,
                details=entry.details,
                ip_address=entry.ip_address,
                created_at=entry.created_at,
            )
            for entry in entries
        ],
        total=total,
        page=pagination.page,
        per_page=pagination.per_page,
    )


@router.get("/event-types", response_model=list[str])
def list_event_types(session: UserSession = Depends(require_admin)):
    """Event type values accepted by the event_type filter."""
    return [event.value for event in AuditEventType]
