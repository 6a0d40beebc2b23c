"""SQLAlchemy ORM models for identities, care team access, and auditing."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON, Boolean, CheckConstraint, ForeignKey, Index, Integer, String,
    UniqueConstraint, Uuid
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from careteam.core.scopes import PermissionScope, deserialize_scopes
from careteam.db.base import Base
from careteam.db.enums import InviteStatus, Role
from careteam.db.types import utcnow

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JsonType = JSON().with_variant(JSONB(), "postgresql")


# =============================================================================
# Identities (owned by the account/registration system, read here)
# =============================================================================

class User(Base):
    """
    Application user.

    Accounts are provisioned by the registration flow (or the CLI);
    the access core only reads identity, role, and activity state.
    """

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)  # Role
    token_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    @property
    def role_enum(self) -> Role | None:
        """Role as enum, or None if the stored value is unknown."""
        return Role(self.role) if Role.has_value(self.role) else None


class ChildProfile(Base):
    """A child record. The guardian has full access to it."""

    __tablename__ = "child_profiles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    guardian_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    guardian: Mapped["User"] = relationship()


# =============================================================================
# Care Team Access
# =============================================================================

class AccessGrant(Base):
    """
    A professional's standing permission on a child's record.

    One row per (child, professional). Revocation deactivates the row
    and keeps the last scope set for history; re-acceptance of a later
    invitation reactivates the same row with the newly offered scopes.
    """

    __tablename__ = "child_access"
    __table_args__ = (
        UniqueConstraint("child_id", "professional_id", name="uq_child_access_pair"),
        CheckConstraint(
            "(is_active AND revoked_at IS NULL) OR (NOT is_active AND revoked_at IS NOT NULL)",
            name="ck_child_access_active_revoked",
        ),
        Index("idx_child_access_child_active", "child_id", "is_active", "granted_at"),
        Index("idx_child_access_professional_active", "professional_id", "is_active", "granted_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("child_profiles.id", ondelete="CASCADE"), nullable=False
    )
    professional_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    scopes: Mapped[list[str]] = mapped_column(JsonType, nullable=False, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    granted_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(nullable=True)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow, nullable=False)

    child: Mapped["ChildProfile"] = relationship()
    professional: Mapped["User"] = relationship()

    @property
    def scope_set(self) -> frozenset[PermissionScope]:
        return deserialize_scopes(self.scopes)


class Invitation(Base):
    """
    An open offer of access from a guardian to a professional.

    Consumed exactly once (accepted or denied) and never deleted, so the
    table doubles as the history of who was offered what.
    """

    __tablename__ = "access_invites"
    __table_args__ = (
        Index("idx_access_invites_child_created", "child_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    child_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("child_profiles.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    recipient_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    scopes: Mapped[list[str]] = mapped_column(JsonType, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=InviteStatus.PENDING.value, nullable=False
    )  # InviteStatus
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    child: Mapped["ChildProfile"] = relationship()
    sender: Mapped["User"] = relationship(foreign_keys=[sender_id])
    recipient: Mapped["User | None"] = relationship(foreign_keys=[recipient_id])

    @property
    def scope_set(self) -> frozenset[PermissionScope]:
        return deserialize_scopes(self.scopes)


# =============================================================================
# Audit
# =============================================================================

class AuditLog(Base):
    """
    Append-only security and data-mutation log.

    Security:
    - Never stores secrets/tokens
    - Emails in details are hashed
    - Hash chain makes tampering detectable
    """

    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("idx_audit_created", "created_at"),
        Index("idx_audit_event_created", "event_type", "created_at"),
        Index("idx_audit_actor_created", "actor_user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    actor_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,  # System events have no actor
    )

    # Event classification
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)  # AuditEventType

    # Target entity
    target_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    target_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)

    # Event details (redacted - no secrets, hashed PII)
    details: Mapped[dict | None] = mapped_column(JsonType, nullable=True)

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Tamper-evident hash chain
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)  # SHA256 hex
    entry_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)  # SHA256 hex

    created_at: Mapped[datetime] = mapped_column(default=utcnow, nullable=False)

    actor: Mapped["User | None"] = relationship()
