"""Care team management endpoints for a child (guardian and admin)."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from careteam.core.child_access import can_access, get_managed_child
from careteam.core.deps import get_current_session, get_db, require_csrf_header
from careteam.core.scopes import PermissionScope, parse_scope
from careteam.core.structured_logging import build_log_context
from careteam.db.models import Invitation
from careteam.db.transactions import transaction
from careteam.schemas.access import AccessCheckResponse, TeamMemberRead
from careteam.schemas.auth import UserSession
from careteam.schemas.invite import InviteCreate, InviteListResponse, InviteRead
from careteam.services import access_grant_service, invite_email_service, invite_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/children/{child_id}", tags=["care-team"])


def _invite_to_read(invite: Invitation) -> InviteRead:
    return InviteRead(
        id=invite.id,
        email=invite.recipient_email,
        scopes=sorted(invite.scope_set, key=lambda s: s.value),
        status=invite_service.get_invite_status(invite),
        expires_at=invite.expires_at,
        responded_at=invite.responded_at,
        created_at=invite.created_at,
    )


# =============================================================================
# Invitations
# =============================================================================

@router.post(
    "/invites",
    response_model=InviteRead,
    status_code=201,
    dependencies=[Depends(require_csrf_header)],
)
async def create_invite(
    child_id: UUID,
    body: InviteCreate,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Invite a professional to the child's care team (guardian or admin)."""
    with transaction(db, "create_invite"):
        invite = invite_service.create_invite(
            db,
            sender_id=session.user_id,
            sender_role=session.role,
            child_id=child_id,
            recipient_email=body.email,
            scopes=body.scopes,
            request=request,
        )

    if invite.recipient_email:
        # Best-effort: the invite exists whether or not the email goes out
        try:
            result = await invite_email_service.send_invite_email(invite)
            if not result.get("success"):
                logger.warning(
                    "Failed to send invite email: %s",
                    result.get("error"),
                    extra=build_log_context(invite_id=str(invite.id)),
                )
        except Exception:
            logger.exception(
                "Error sending invite email",
                extra=build_log_context(invite_id=str(invite.id)),
            )

    return _invite_to_read(invite)


@router.get("/invites", response_model=InviteListResponse)
def list_invites(
    child_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """List invitations for the child, including resolved ones (guardian or admin)."""
    invites = invite_service.list_invites_for_child(db, session.user_id, session.role, child_id)
    items = [_invite_to_read(invite) for invite in invites]
    return InviteListResponse(
        invites=items,
        pending_count=sum(1 for item in items if item.status == "pending"),
    )


# =============================================================================
# Team
# =============================================================================

@router.get("/team", response_model=list[TeamMemberRead])
def list_team(
    child_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Professionals with active access to the child, most recent first."""
    get_managed_child(db, session.user_id, session.role, child_id, action="view the care team for this child")
    grants = access_grant_service.list_active_for_child(db, child_id)
    return [
        TeamMemberRead(
            grant_id=grant.id,
            professional_id=grant.professional_id,
            name=grant.professional.name,
            email=grant.professional.email,
            role=grant.professional.role,
            scopes=sorted(grant.scope_set, key=lambda s: s.value),
            granted_at=grant.granted_at,
        )
        for grant in grants
    ]


@router.delete(
    "/access/{professional_id}",
    dependencies=[Depends(require_csrf_header)],
)
def revoke_access(
    child_id: UUID,
    professional_id: UUID,
    request: Request,
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Revoke a professional's access to the child (guardian or admin)."""
    with transaction(db, "revoke_access"):
        access_grant_service.revoke_access(
            db,
            actor_id=session.user_id,
            actor_role=session.role,
            child_id=child_id,
            professional_id=professional_id,
            request=request,
        )
    return {"revoked": True}


@router.get("/access/check", response_model=AccessCheckResponse)
def check_access(
    child_id: UUID,
    scope: str = Query(..., description="Permission scope to check"),
    db: Session = Depends(get_db),
    session: UserSession = Depends(get_current_session),
):
    """Whether the current user may act on the child within a scope."""
    required: PermissionScope = parse_scope(scope)
    return AccessCheckResponse(
        child_id=child_id,
        scope=required,
        allowed=can_access(db, session.user_id, session.role, child_id, required),
    )
