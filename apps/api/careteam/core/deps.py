"""Request dependencies: DB session, cookie session, role and child-access checks."""

from collections.abc import Iterator
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from careteam.core.child_access import ensure_child_access
from careteam.core.scopes import PermissionScope
from careteam.core.security import decode_session_token
from careteam.db.enums import Role
from careteam.db.models import User
from careteam.db.session import SessionLocal
from careteam.schemas.auth import UserSession


COOKIE_NAME = "careteam_session"

# Browsers will not attach this header cross-site without a CORS preflight
CSRF_HEADER = "X-Requested-With"
CSRF_HEADER_VALUE = "XMLHttpRequest"


def _unauthenticated(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail)


def get_db() -> Iterator[Session]:
    """One SQLAlchemy session per request, closed when the response is done."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """
    Resolve the signed session cookie to an active user.

    The token's version must equal users.token_version; bumping the column
    (CLI revoke-sessions) invalidates every outstanding cookie at once.

    Raises:
        HTTPException 401: missing, malformed, expired, or revoked session
    """
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise _unauthenticated("Not authenticated")

    try:
        claims = decode_session_token(token)
        user_id = UUID(claims["sub"])
    except (jwt.InvalidTokenError, KeyError, ValueError):
        raise _unauthenticated("Invalid session")

    user = db.get(User, user_id)
    if user is None:
        raise _unauthenticated("Invalid session")
    if not user.is_active:
        raise _unauthenticated("Account disabled")
    if claims.get("token_version") != user.token_version:
        raise _unauthenticated("Session revoked")
    return user


def get_current_session(user: User = Depends(get_current_user)) -> UserSession:
    """
    Session context for handlers that only need identity and role.

    An unrecognised stored role is a 403, not a 500.
    """
    role = user.role_enum
    if role is None:
        raise HTTPException(
            status_code=403,
            detail=f"Unknown role '{user.role}'. Contact administrator.",
        )
    return UserSession(user_id=user.id, role=role, email=user.email, name=user.name)


def require_roles(allowed_roles: list[Role]):
    """
    Build a dependency that admits only the given roles.

    Usage:
        session: UserSession = Depends(require_roles([Role.ADMIN]))
    """
    allowed = frozenset(allowed_roles)

    def dependency(session: UserSession = Depends(get_current_session)) -> UserSession:
        if session.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role '{session.role.value}' cannot perform this action",
            )
        return session
    return dependency


def require_csrf_header(request: Request) -> None:
    """Reject state-changing requests that lack the CSRF header (403)."""
    if request.headers.get(CSRF_HEADER) != CSRF_HEADER_VALUE:
        raise HTTPException(
            status_code=403,
            detail=f"Missing CSRF header. Send '{CSRF_HEADER}: {CSRF_HEADER_VALUE}'",
        )


def require_child_access(scope: PermissionScope):
    """
    Dependency factory guarding a child-scoped resource.

    The route must declare a ``child_id`` path parameter. Denials raise
    NotAuthorized, rendered as 403 by the app exception handler.

    Usage:
        @router.get("/children/{child_id}/messages")
        def list_messages(
            child_id: UUID,
            session: UserSession = Depends(require_child_access(PermissionScope.MESSAGES)),
        ): ...
    """
    def dependency(
        child_id: UUID,
        db: Session = Depends(get_db),
        session: UserSession = Depends(get_current_session),
    ) -> UserSession:
        ensure_child_access(db, session.user_id, session.role, child_id, scope)
        return session
    return dependency
