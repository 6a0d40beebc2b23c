"""Enum definitions for application constants."""

from enum import Enum


class Role(str, Enum):
    """
    User roles.

    - PARENT: Guardian of one or more child profiles
    - CLINICIAN: Medical professional (care team member)
    - SUPPORT: Support professional, e.g. therapist or educator (care team member)
    - ADMIN: Platform administrator
    """

    PARENT = "parent"
    CLINICIAN = "clinician"
    SUPPORT = "support"
    ADMIN = "admin"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid role."""
        return value in cls._value2member_map_


# Roles that may accept a care team invitation and hold access grants
PROFESSIONAL_ROLES = frozenset({Role.CLINICIAN, Role.SUPPORT})


class InviteStatus(str, Enum):
    """
    Stored invitation status.

    Transitions are one-way: PENDING -> ACCEPTED or PENDING -> DENIED.
    Expiry is never stored; it is derived from expires_at at read time.
    """

    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"


class AuditEventType(str, Enum):
    """
    Security and data-mutation audit events.

    Groups:
    - INVITE_*: Invitation lifecycle
    - ACCESS_*: Access grant changes
    - AUTH_*: Session management
    """

    # Invitation lifecycle
    INVITE_SENT = "invite_sent"
    INVITE_ACCEPTED = "invite_accepted"
    INVITE_DENIED = "invite_denied"

    # Access grants
    ACCESS_REVOKED = "access_revoked"

    # Authentication
    AUTH_SESSION_REVOKED = "auth_session_revoked"
