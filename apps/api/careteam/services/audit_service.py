"""Audit log: append-only, hash-chained record of access-control changes.

Every access-control state change appends one entry here, inside the
same transaction as the change itself, so a rolled-back mutation never
leaves an audit entry behind and a committed one always has exactly one.

What goes into ``details``:
- identifiers, scope tags, and flags
- emails only through hash_email
- never session or invitation tokens
"""

import hashlib
import json
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from fastapi import Request
from sqlalchemy import select, text
from sqlalchemy.orm import Session

from careteam.core.config import settings
from careteam.db.enums import AuditEventType
from careteam.db.models import AccessGrant, AuditLog, Invitation
from careteam.db.types import utcnow
from careteam.utils.pagination import PaginationParams, paginate_query

GENESIS_HASH = "0" * 64  # prev_hash of the first entry
USER_AGENT_MAX_LENGTH = 500
# Arbitrary app-wide key for pg_advisory_xact_lock; held until commit/rollback
AUDIT_CHAIN_LOCK_ID = 7_210_427_001


def hash_email(email: str | None) -> str:
    """Redact an email to ``abc...@[hash:<12 hex>]``; the hash ignores case."""
    if not email:
        return ""
    local_part = email.partition("@")[0]
    digest = hashlib.sha256(email.lower().encode()).hexdigest()
    return f"{local_part[:3]}...@[hash:{digest[:12]}]"


def get_client_ip(request: Request | None) -> str | None:
    """Client address; the first X-Forwarded-For hop counts only behind a trusted proxy."""
    if request is None:
        return None
    if settings.TRUST_PROXY_HEADERS:
        forwarded_for = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded_for.split(",")[0].strip()
        if first_hop:
            return first_hop
    return request.client.host if request.client else None


def get_user_agent(request: Request | None) -> str | None:
    if request is None:
        return None
    return request.headers.get("user-agent", "")[:USER_AGENT_MAX_LENGTH] or None


def canonical_json(obj: dict | None) -> str:
    """Key-sorted, whitespace-free JSON so equal details always hash the same."""
    return json.dumps(obj or {}, sort_keys=True, separators=(",", ":"), default=str)


def compute_audit_hash(
    prev_hash: str,
    entry_id: str,
    event_type: str,
    created_at: str,
    details_json: str,
    actor_user_id: str = "",
    target_type: str = "",
    target_id: str = "",
    ip_address: str = "",
    user_agent: str = "",
) -> str:
    """Hash = SHA256(all immutable fields joined with |)."""
    data = "|".join([
        prev_hash,
        entry_id,
        event_type,
        created_at,
        details_json,
        actor_user_id,
        target_type,
        target_id,
        ip_address,
        user_agent,
    ])
    return hashlib.sha256(data.encode()).hexdigest()


def _hash_entry(entry: AuditLog) -> str:
    return compute_audit_hash(
        prev_hash=entry.prev_hash or GENESIS_HASH,
        entry_id=str(entry.id),
        event_type=entry.event_type,
        created_at=entry.created_at.isoformat(),
        details_json=canonical_json(entry.details),
        actor_user_id=str(entry.actor_user_id) if entry.actor_user_id else "",
        target_type=entry.target_type or "",
        target_id=str(entry.target_id) if entry.target_id else "",
        ip_address=entry.ip_address or "",
        user_agent=entry.user_agent or "",
    )


def _lock_chain(db: Session) -> None:
    """Serialize appenders so two transactions never link to the same head.

    Postgres only; SQLite serializes writers on its own.
    """
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(
        text("SELECT pg_advisory_xact_lock(:lock_id)"),
        {"lock_id": AUDIT_CHAIN_LOCK_ID},
    )


def _get_chain_head(db: Session) -> tuple[str, datetime | None]:
    """Hash and timestamp of the most recent entry (created_at + id ordering)."""
    row = db.execute(
        select(AuditLog.entry_hash, AuditLog.created_at)
        .where(AuditLog.entry_hash.isnot(None))
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(1)
    ).first()
    if row is None:
        return GENESIS_HASH, None
    return row.entry_hash, row.created_at


def log_event(
    db: Session,
    event_type: AuditEventType,
    actor_user_id: UUID | None = None,
    target_type: str | None = None,
    target_id: UUID | None = None,
    details: dict[str, Any] | None = None,
    request: Request | None = None,
) -> AuditLog:
    """
    Append an audit event with hash chain.

    Args:
        db: Database session (the caller's transaction)
        event_type: Type of event (from AuditEventType)
        actor_user_id: User who performed the action (None for system)
        target_type: Type of entity affected (e.g., 'access_invite', 'child_access')
        target_id: ID of the affected entity
        details: Additional context (must be redacted - no secrets/raw PII)
        request: FastAPI request for IP/user-agent extraction

    Returns:
        The created audit log entry
    """
    _lock_chain(db)
    prev_hash, head_created_at = _get_chain_head(db)

    created_at = utcnow()
    if head_created_at is not None and created_at <= head_created_at:
        # Keep created_at strictly increasing so chain order is unambiguous
        created_at = head_created_at + timedelta(microseconds=1)

    entry = AuditLog(
        id=uuid4(),
        actor_user_id=actor_user_id,
        event_type=event_type.value,
        target_type=target_type,
        target_id=target_id,
        details=details,
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
        prev_hash=prev_hash,
        created_at=created_at,
    )
    entry.entry_hash = _hash_entry(entry)
    db.add(entry)
    db.flush()
    return entry


def verify_chain(db: Session) -> UUID | None:
    """
    Walk the log oldest-first and check every link.

    Returns:
        ID of the first entry whose hash or back-link does not match, or None.
    """
    expected_prev = GENESIS_HASH
    entries = db.execute(
        select(AuditLog).order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
    ).scalars()
    for entry in entries:
        if entry.prev_hash != expected_prev or entry.entry_hash != _hash_entry(entry):
            return entry.id
        expected_prev = entry.entry_hash
    return None


# =============================================================================
# Monitoring Reads
# =============================================================================

@dataclass
class AuditFilters:
    """Optional filters for the admin monitoring view."""
    event_type: AuditEventType | None = None
    actor_user_id: UUID | None = None
    target_type: str | None = None
    target_id: UUID | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None


def list_events(
    db: Session,
    filters: AuditFilters,
    pagination: PaginationParams,
) -> tuple[list[AuditLog], int]:
    """List audit entries newest first. Returns (items, total)."""
    query = db.query(AuditLog)

    if filters.event_type:
        query = query.filter(AuditLog.event_type == filters.event_type.value)
    if filters.actor_user_id:
        query = query.filter(AuditLog.actor_user_id == filters.actor_user_id)
    if filters.target_type:
        query = query.filter(AuditLog.target_type == filters.target_type)
    if filters.target_id:
        query = query.filter(AuditLog.target_id == filters.target_id)
    if filters.start_date:
        query = query.filter(AuditLog.created_at >= filters.start_date)
    if filters.end_date:
        query = query.filter(AuditLog.created_at <= filters.end_date)

    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
    return paginate_query(query, pagination)


# =============================================================================
# Care Team Events
# =============================================================================

def log_invite_sent(
    db: Session,
    invite: Invitation,
    request: Request | None = None,
) -> AuditLog:
    """Log a guardian issuing an invitation."""
    return log_event(
        db=db,
        event_type=AuditEventType.INVITE_SENT,
        actor_user_id=invite.sender_id,
        target_type="access_invite",
        target_id=invite.id,
        details={
            "child_id": str(invite.child_id),
            "recipient_email": hash_email(invite.recipient_email) or None,
            "scopes": list(invite.scopes),
            "expires_at": invite.expires_at.isoformat(),
        },
        request=request,
    )


def log_invite_accepted(
    db: Session,
    invite: Invitation,
    grant: AccessGrant,
    actor_user_id: UUID,
    reactivated: bool,
    request: Request | None = None,
) -> AuditLog:
    """Log a professional accepting an invitation."""
    return log_event(
        db=db,
        event_type=AuditEventType.INVITE_ACCEPTED,
        actor_user_id=actor_user_id,
        target_type="access_invite",
        target_id=invite.id,
        details={
            "child_id": str(invite.child_id),
            "grant_id": str(grant.id),
            "scopes": list(invite.scopes),
            "invited_by": str(invite.sender_id),
            "reactivated": reactivated,
        },
        request=request,
    )


def log_invite_denied(
    db: Session,
    invite: Invitation,
    actor_user_id: UUID,
    request: Request | None = None,
) -> AuditLog:
    """Log an invitation being declined."""
    return log_event(
        db=db,
        event_type=AuditEventType.INVITE_DENIED,
        actor_user_id=actor_user_id,
        target_type="access_invite",
        target_id=invite.id,
        details={"child_id": str(invite.child_id)},
        request=request,
    )


def log_access_revoked(
    db: Session,
    grant: AccessGrant,
    actor_user_id: UUID,
    request: Request | None = None,
) -> AuditLog:
    """Log a guardian or admin revoking a professional's access."""
    return log_event(
        db=db,
        event_type=AuditEventType.ACCESS_REVOKED,
        actor_user_id=actor_user_id,
        target_type="child_access",
        target_id=grant.id,
        details={
            "child_id": str(grant.child_id),
            "professional_id": str(grant.professional_id),
            "scopes": list(grant.scopes),
        },
        request=request,
    )


def log_sessions_revoked(
    db: Session,
    user_id: UUID,
    new_token_version: int,
) -> AuditLog:
    """Log a system-initiated session revocation (CLI)."""
    return log_event(
        db=db,
        event_type=AuditEventType.AUTH_SESSION_REVOKED,
        actor_user_id=None,
        target_type="user",
        target_id=user_id,
        details={"token_version": new_token_version},
    )
