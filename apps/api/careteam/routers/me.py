"""Endpoints scoped to the current user."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from careteam.core.deps import get_db, require_roles
from careteam.db.enums import PROFESSIONAL_ROLES
from careteam.schemas.access import PatientRead
from careteam.schemas.auth import UserSession
from careteam.services import access_grant_service

router = APIRouter(prefix="/me", tags=["me"])


@router.get("/patients", response_model=list[PatientRead])
def list_patients(
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(list(PROFESSIONAL_ROLES))),
):
    """Children the current professional has active access to."""
    grants = access_grant_service.list_active_for_professional(db, session.user_id)
    return [
        PatientRead(
            grant_id=grant.id,
            child_id=grant.child_id,
            child_name=grant.child.name,
            scopes=sorted(grant.scope_set, key=lambda s: s.value),
            granted_at=grant.granted_at,
        )
        for grant in grants
    ]
