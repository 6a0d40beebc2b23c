"""Authentication-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel

from careteam.db.enums import Role


class UserSession(BaseModel):
    """
    Session context for authenticated requests.

    Returned by the get_current_session dependency; carries everything
    the access guard needs about the actor.
    """
    user_id: UUID
    role: Role  # Validated enum
    email: str
    name: str
