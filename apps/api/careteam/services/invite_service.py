"""Care team invitation lifecycle.

A guardian offers a set of scopes on a child to a professional through an
opaque, time-limited token. The token is consumed exactly once: accepted
(which creates or reactivates the access grant) or declined.

Expiry is evaluated at read time and takes precedence over the stored
status; the stored status is never rewritten because an invite expired.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Literal
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from fastapi import Request
from sqlalchemy import update
from sqlalchemy.orm import Session, joinedload

from careteam.core.child_access import get_managed_child
from careteam.core.config import settings
from careteam.core.exceptions import (
    AlreadyResolved,
    Expired,
    InvalidRecipientEmail,
    NotAuthorized,
    NotFound,
    WrongRecipient,
)
from careteam.core.scopes import PermissionScope, parse_scopes, serialize_scopes
from careteam.core.security import generate_invite_token
from careteam.core.structured_logging import build_log_context
from careteam.db.enums import PROFESSIONAL_ROLES, InviteStatus, Role
from careteam.db.models import AccessGrant, Invitation, User
from careteam.db.types import utcnow
from careteam.services import access_grant_service, audit_service
from careteam.utils.normalization import normalize_email

logger = logging.getLogger(__name__)

MAX_INVITES_LISTED = 100


@dataclass(frozen=True)
class InviteView:
    """Read-only preview of a pending invitation (safe to show unauthenticated)."""
    id: UUID
    child_name: str
    sender_name: str
    scopes: list[PermissionScope]
    expires_at: datetime
    status: InviteStatus


def get_invite_status(
    invite: Invitation,
    now: datetime | None = None,
) -> Literal["pending", "accepted", "denied", "expired"]:
    """Derive display status; expiry wins over a still-pending stored status."""
    now = now or utcnow()
    if invite.status != InviteStatus.PENDING.value:
        return invite.status  # type: ignore[return-value]
    if invite.expires_at < now:
        return "expired"
    return "pending"


def _validate_recipient_email(email: str | None) -> str | None:
    email = normalize_email(email)
    if email is None:
        return None
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as e:
        raise InvalidRecipientEmail() from e
    return email


def create_invite(
    db: Session,
    sender_id: UUID,
    sender_role: Role | str,
    child_id: UUID,
    recipient_email: str | None,
    scopes: Iterable[str | PermissionScope],
    request: Request | None = None,
) -> Invitation:
    """
    Issue a pending invitation for a child.

    Raises:
        NotAuthorized: sender is neither the child's guardian nor an admin
        NotFound: child does not exist (admin senders)
        InvalidScope: empty or unknown scopes
        InvalidRecipientEmail: bound email is malformed
    """
    get_managed_child(db, sender_id, sender_role, child_id, action="invite members for this child")
    scope_set = parse_scopes(scopes)
    email = _validate_recipient_email(recipient_email)

    now = utcnow()
    invite = Invitation(
        token=generate_invite_token(),
        child_id=child_id,
        sender_id=sender_id,
        recipient_email=email,
        scopes=serialize_scopes(scope_set),
        status=InviteStatus.PENDING.value,
        expires_at=now + timedelta(days=settings.INVITE_EXPIRY_DAYS),
        created_at=now,
    )
    db.add(invite)
    db.flush()

    audit_service.log_invite_sent(db, invite, request=request)
    logger.info(
        "Care team invite created",
        extra=build_log_context(
            user_id=str(sender_id), child_id=str(child_id), invite_id=str(invite.id)
        ),
    )
    return invite


def get_invite_by_token(db: Session, token: str) -> Invitation | None:
    """Look up an invitation by token, with child and sender loaded."""
    if not token:
        return None
    return (
        db.query(Invitation)
        .options(joinedload(Invitation.child), joinedload(Invitation.sender))
        .filter(Invitation.token == token)
        .first()
    )


def _load_open_invite(db: Session, token: str) -> Invitation:
    """Fetch an invitation that can still be responded to.

    Check order matters: existence, then expiry, then status.
    """
    invite = get_invite_by_token(db, token)
    if invite is None:
        raise NotFound("Invitation not found")
    if utcnow() > invite.expires_at:
        raise Expired()
    if invite.status != InviteStatus.PENDING.value:
        raise AlreadyResolved(f"This invitation has already been {invite.status}")
    return invite


def _check_recipient(invite: Invitation, user: User) -> None:
    if invite.recipient_email and invite.recipient_email.lower() != user.email.lower():
        raise WrongRecipient()


def _transition(
    db: Session,
    invite: Invitation,
    new_status: InviteStatus,
    user_id: UUID,
) -> None:
    """Conditionally move a pending invitation to a terminal status.

    The WHERE on status makes this the single point that decides which
    concurrent responder wins; losers see zero affected rows.
    """
    result = db.execute(
        update(Invitation)
        .where(
            Invitation.id == invite.id,
            Invitation.status == InviteStatus.PENDING.value,
        )
        .values(
            status=new_status.value,
            responded_at=utcnow(),
            recipient_id=user_id,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise AlreadyResolved()
    db.refresh(invite)


def resolve_invite(db: Session, token: str) -> InviteView:
    """
    Preview an invitation without changing it.

    Raises:
        NotFound, Expired, AlreadyResolved
    """
    invite = _load_open_invite(db, token)
    return InviteView(
        id=invite.id,
        child_name=invite.child.name,
        sender_name=invite.sender.name,
        scopes=sorted(invite.scope_set, key=lambda s: s.value),
        expires_at=invite.expires_at,
        status=InviteStatus(invite.status),
    )


def accept_invite(
    db: Session,
    token: str,
    user: User,
    request: Request | None = None,
) -> AccessGrant:
    """
    Accept an invitation and create or reactivate the access grant.

    The status transition, the grant upsert, and the audit entry are one
    unit of work; the caller commits or rolls back all three together.

    Raises:
        NotFound, Expired, AlreadyResolved, NotAuthorized, WrongRecipient
    """
    invite = _load_open_invite(db, token)

    if not user.is_active or user.role_enum not in PROFESSIONAL_ROLES:
        raise NotAuthorized("Only healthcare professionals can accept care team invitations")
    _check_recipient(invite, user)

    _transition(db, invite, InviteStatus.ACCEPTED, user.id)
    grant, reactivated = access_grant_service.grant_or_reactivate(
        db, invite.child_id, user.id, invite.scope_set
    )
    audit_service.log_invite_accepted(
        db, invite, grant, actor_user_id=user.id, reactivated=reactivated, request=request
    )

    logger.info(
        "Care team invite accepted",
        extra=build_log_context(
            user_id=str(user.id), child_id=str(invite.child_id), invite_id=str(invite.id)
        ),
    )
    return grant


def decline_invite(
    db: Session,
    token: str,
    user: User,
    request: Request | None = None,
) -> Invitation:
    """
    Decline an invitation. No grant is touched.

    Raises:
        NotFound, Expired, AlreadyResolved, NotAuthorized, WrongRecipient
    """
    invite = _load_open_invite(db, token)

    if not user.is_active:
        raise NotAuthorized()
    _check_recipient(invite, user)

    _transition(db, invite, InviteStatus.DENIED, user.id)
    audit_service.log_invite_denied(db, invite, actor_user_id=user.id, request=request)

    logger.info(
        "Care team invite declined",
        extra=build_log_context(
            user_id=str(user.id), child_id=str(invite.child_id), invite_id=str(invite.id)
        ),
    )
    return invite


def list_invites_for_child(
    db: Session,
    actor_id: UUID,
    actor_role: Role | str,
    child_id: UUID,
) -> list[Invitation]:
    """List invitations for a child, newest first (including resolved ones for history)."""
    get_managed_child(db, actor_id, actor_role, child_id, action="view invitations for this child")
    return (
        db.query(Invitation)
        .filter(Invitation.child_id == child_id)
        .order_by(Invitation.created_at.desc())
        .limit(MAX_INVITES_LISTED)
        .all()
    )
