"""Child record access control - the single place access decisions are made.

Protected-resource handlers (notes, messaging, video visits) never derive
access on their own; they call can_access / ensure_child_access, or use
the require_child_access dependency.

Access rules:
- Admin: always allowed
- Guardian of the child: always allowed, every scope
- Professional: only with an active grant that contains the scope
- Everyone else: denied

Denials are always reported as 403 "Access denied", including for children
that do not exist, so responses never reveal whether a record exists.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from careteam.core.exceptions import NotAuthorized, NotFound
from careteam.core.scopes import PermissionScope
from careteam.db.enums import Role
from careteam.db.models import AccessGrant, ChildProfile


def _role_value(role: Role | str) -> str:
    return role.value if isinstance(role, Role) else role


def can_access(
    db: Session,
    actor_id: UUID,
    actor_role: Role | str,
    child_id: UUID,
    required_scope: PermissionScope,
) -> bool:
    """Decide whether the actor may read/write the child's resource in that scope."""
    if _role_value(actor_role) == Role.ADMIN.value:
        return True

    guardian_id = db.execute(
        select(ChildProfile.guardian_id).where(ChildProfile.id == child_id)
    ).scalar_one_or_none()
    if guardian_id is None:
        return False
    if guardian_id == actor_id:
        return True

    grant = db.execute(
        select(AccessGrant.is_active, AccessGrant.scopes).where(
            AccessGrant.child_id == child_id,
            AccessGrant.professional_id == actor_id,
        )
    ).first()
    if grant is None or not grant.is_active:
        return False
    return PermissionScope(required_scope).value in (grant.scopes or [])


def ensure_child_access(
    db: Session,
    actor_id: UUID,
    actor_role: Role | str,
    child_id: UUID,
    required_scope: PermissionScope,
) -> None:
    """
    Raise unless can_access allows the actor.

    Raises:
        NotAuthorized: always with the generic "Access denied" message
    """
    if not can_access(db, actor_id, actor_role, child_id, required_scope):
        raise NotAuthorized("Access denied")


def get_managed_child(
    db: Session,
    actor_id: UUID,
    actor_role: Role | str,
    child_id: UUID,
    action: str = "manage the care team for this child",
) -> ChildProfile:
    """
    Load a child the actor may manage (guardian or admin).

    Used by care team management: issuing invitations, listing the team,
    revoking access.

    Raises:
        NotFound: child does not exist (admins only; others get NotAuthorized)
        NotAuthorized: actor is neither the guardian nor an admin
    """
    is_admin = _role_value(actor_role) == Role.ADMIN.value
    child = db.get(ChildProfile, child_id)
    if child is None:
        if is_admin:
            raise NotFound("Child not found")
        raise NotAuthorized(f"You don't have permission to {action}")
    if not is_admin and child.guardian_id != actor_id:
        raise NotAuthorized(f"You don't have permission to {action}")
    return child
