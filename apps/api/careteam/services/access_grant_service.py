"""Access grant store - per (child, professional) care team access.

Grants are created or reactivated only through invitation acceptance
(see invite_service.accept_invite) and deactivated through revoke_access.
Rows are never deleted. Both mutation paths lock the row for their
read-modify-write so a revoke and an accept serialize; whichever commits
last wins, with every field of the row written together.
"""

import logging
from collections.abc import Iterable
from uuid import UUID

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from careteam.core.child_access import get_managed_child
from careteam.core.exceptions import NotFound
from careteam.core.scopes import PermissionScope, serialize_scopes
from careteam.core.structured_logging import build_log_context
from careteam.db.enums import Role
from careteam.db.models import AccessGrant
from careteam.db.types import utcnow
from careteam.services import audit_service

logger = logging.getLogger(__name__)


def get_grant(
    db: Session,
    child_id: UUID,
    professional_id: UUID,
    for_update: bool = False,
) -> AccessGrant | None:
    """Get the grant for a pair in any state, optionally row-locked."""
    stmt = select(AccessGrant).where(
        AccessGrant.child_id == child_id,
        AccessGrant.professional_id == professional_id,
    )
    if for_update:
        # Re-read under the lock even if the row is already in the session
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return db.execute(stmt).scalar_one_or_none()


def grant_or_reactivate(
    db: Session,
    child_id: UUID,
    professional_id: UUID,
    scopes: Iterable[PermissionScope],
) -> tuple[AccessGrant, bool]:
    """
    Create the pair's grant, or overwrite scopes and reactivate the existing row.

    Only invite_service.accept_invite calls this, inside its transaction,
    so every grant traces back to an accepted invitation.

    Returns:
        (grant, reactivated) - reactivated is True when an existing row was reused
    """
    now = utcnow()
    stored_scopes = serialize_scopes(scopes)

    grant = get_grant(db, child_id, professional_id, for_update=True)
    if grant is None:
        grant = AccessGrant(
            child_id=child_id,
            professional_id=professional_id,
            scopes=stored_scopes,
            is_active=True,
            granted_at=now,
            revoked_at=None,
            updated_at=now,
        )
        db.add(grant)
        db.flush()
        return grant, False

    grant.scopes = stored_scopes
    grant.is_active = True
    grant.revoked_at = None
    grant.granted_at = now
    grant.updated_at = now
    db.flush()
    return grant, True


def revoke_access(
    db: Session,
    actor_id: UUID,
    actor_role: Role | str,
    child_id: UUID,
    professional_id: UUID,
    request: Request | None = None,
) -> AccessGrant:
    """
    Deactivate a professional's grant on a child (guardian or admin only).

    Scopes stay on the row for history but are no longer honored.

    Raises:
        NotAuthorized: actor may not manage this child
        NotFound: child missing, or no active grant for the pair
    """
    get_managed_child(db, actor_id, actor_role, child_id, action="manage access for this child")

    grant = get_grant(db, child_id, professional_id, for_update=True)
    if grant is None or not grant.is_active:
        raise NotFound("Access grant not found")

    now = utcnow()
    grant.is_active = False
    grant.revoked_at = now
    grant.updated_at = now
    db.flush()

    audit_service.log_access_revoked(db, grant, actor_user_id=actor_id, request=request)
    logger.info(
        "Care team access revoked",
        extra=build_log_context(user_id=str(actor_id), child_id=str(child_id)),
    )
    return grant


def list_active_for_child(db: Session, child_id: UUID) -> list[AccessGrant]:
    """Active grants on a child, most recently granted first."""
    return (
        db.query(AccessGrant)
        .options(joinedload(AccessGrant.professional))
        .filter(
            AccessGrant.child_id == child_id,
            AccessGrant.is_active.is_(True),
        )
        .order_by(AccessGrant.granted_at.desc())
        .all()
    )


def list_active_for_professional(db: Session, professional_id: UUID) -> list[AccessGrant]:
    """Active grants held by a professional, most recently granted first."""
    return (
        db.query(AccessGrant)
        .options(joinedload(AccessGrant.child))
        .filter(
            AccessGrant.professional_id == professional_id,
            AccessGrant.is_active.is_(True),
        )
        .order_by(AccessGrant.granted_at.desc())
        .all()
    )
