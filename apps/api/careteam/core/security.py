"""Session JWTs and invitation tokens."""

import secrets
from datetime import datetime, timedelta, timezone
from uuid import UUID

import jwt

from careteam.core.config import settings

JWT_ALGORITHM = "HS256"


def create_session_token(user_id: UUID, role: str, token_version: int) -> str:
    """
    Sign a session cookie value for a user.

    Always signed with JWT_SECRET; token_version ties the cookie to the
    user's current revocation counter.
    """
    issued_at = datetime.now(timezone.utc)
    claims = {
        "sub": str(user_id),
        "role": role,
        "token_version": token_version,
        "iat": issued_at,
        "exp": issued_at + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Verify a session cookie against each accepted secret in turn.

    Raises:
        jwt.InvalidTokenError: signature, expiry, or format check failed for every secret
    """
    error: jwt.InvalidTokenError | None = None
    for secret in settings.jwt_secrets:
        try:
            return jwt.decode(token, secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise
        except jwt.InvalidTokenError as exc:
            error = exc
    raise error or jwt.InvalidTokenError("No signing secret configured")


def generate_invite_token() -> str:
    """Unguessable invitation token (hex, 2 * INVITE_TOKEN_BYTES chars)."""
    return secrets.token_hex(settings.INVITE_TOKEN_BYTES)
