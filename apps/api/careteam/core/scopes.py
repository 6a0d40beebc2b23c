"""Permission scope registry.

A scope is a capability tag attached to an access grant. Scope sets are
unordered and deduplicated; they are persisted as a sorted list so that
equal sets always serialize identically.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from careteam.core.exceptions import InvalidScope


class PermissionScope(str, Enum):
    """Capabilities a guardian can grant to a professional."""

    MEDICAL_NOTES = "medical_notes"
    SUPPORT_NOTES = "support_notes"
    MESSAGES = "messages"
    VIDEO_VISITS = "video_visits"

    @classmethod
    def has_value(cls, value: str) -> bool:
        """Check if value is a valid scope."""
        return value in cls._value2member_map_


@dataclass(frozen=True)
class ScopeDef:
    """Scope definition with display metadata."""
    scope: PermissionScope
    label: str
    description: str


SCOPE_REGISTRY: dict[PermissionScope, ScopeDef] = {
    PermissionScope.MEDICAL_NOTES: ScopeDef(
        PermissionScope.MEDICAL_NOTES, "Medical Notes",
        "Read and write clinical notes and prescriptions",
    ),
    PermissionScope.SUPPORT_NOTES: ScopeDef(
        PermissionScope.SUPPORT_NOTES, "Support Notes",
        "Read and write support and therapy notes",
    ),
    PermissionScope.MESSAGES: ScopeDef(
        PermissionScope.MESSAGES, "Messages",
        "Exchange messages with the family",
    ),
    PermissionScope.VIDEO_VISITS: ScopeDef(
        PermissionScope.VIDEO_VISITS, "Video Visits",
        "Schedule and join video visits",
    ),
}


def parse_scope(value: str | PermissionScope) -> PermissionScope:
    """Parse one scope, accepting enum members, values, or upper-case names."""
    if isinstance(value, PermissionScope):
        return value
    if not isinstance(value, str):
        raise InvalidScope(f"Unknown permission scope: {value!r}")
    normalized = value.strip().lower()
    if not PermissionScope.has_value(normalized):
        raise InvalidScope(f"Unknown permission scope: {value}")
    return PermissionScope(normalized)


def parse_scopes(values: Iterable[str | PermissionScope] | None) -> frozenset[PermissionScope]:
    """Parse a scope collection into a non-empty deduplicated set.

    Raises:
        InvalidScope: if the collection is empty or has an unknown tag.
    """
    if values is None or isinstance(values, str):
        raise InvalidScope()
    scopes = frozenset(parse_scope(v) for v in values)
    if not scopes:
        raise InvalidScope()
    return scopes


def serialize_scopes(scopes: Iterable[PermissionScope]) -> list[str]:
    """Stable storage form: sorted list of values."""
    return sorted({PermissionScope(s).value for s in scopes})


def deserialize_scopes(values: Iterable[str] | None) -> frozenset[PermissionScope]:
    """Inverse of serialize_scopes. Unknown stored tags are dropped, never honored."""
    if not values:
        return frozenset()
    return frozenset(PermissionScope(v) for v in values if PermissionScope.has_value(v))


def scope_labels(scopes: Iterable[PermissionScope]) -> list[str]:
    """Human-readable labels in stable order."""
    return [SCOPE_REGISTRY[PermissionScope(s)].label for s in serialize_scopes(scopes)]
