"""Invitation response endpoints (preview, accept, decline)."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from careteam.core.deps import get_current_user, get_db, require_csrf_header
from careteam.core.rate_limit import INVITE_PREVIEW_LIMIT, limiter
from careteam.db.models import User
from careteam.db.transactions import transaction
from careteam.schemas.invite import InviteAcceptResponse, InvitePreview
from careteam.services import invite_service

router = APIRouter(prefix="/invites", tags=["invites"])


@router.get("/{token}", response_model=InvitePreview)
@limiter.limit(INVITE_PREVIEW_LIMIT)
def get_invite_details(
    request: Request,
    token: str,
    db: Session = Depends(get_db),
):
    """
    Preview an invitation (public endpoint).

    Works before the recipient signs in or registers. Failures are the
    same for everyone, so the response never reveals account existence.
    """
    view = invite_service.resolve_invite(db, token)
    return InvitePreview(
        id=view.id,
        child_name=view.child_name,
        sender_name=view.sender_name,
        scopes=view.scopes,
        expires_at=view.expires_at,
        status=view.status.value,
    )


@router.post(
    "/{token}/accept",
    response_model=InviteAcceptResponse,
    dependencies=[Depends(require_csrf_header)],
)
def accept_invite(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Accept an invitation and join the child's care team."""
    with transaction(db, "accept_invite"):
        grant = invite_service.accept_invite(db, token, user, request=request)
        response = InviteAcceptResponse(
            child_id=grant.child_id,
            grant_id=grant.id,
            scopes=sorted(grant.scope_set, key=lambda s: s.value),
        )
    return response


@router.post("/{token}/decline", dependencies=[Depends(require_csrf_header)])
def decline_invite(
    token: str,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Decline an invitation."""
    with transaction(db, "decline_invite"):
        invite_service.decline_invite(db, token, user, request=request)
    return {"declined": True}
