"""Domain errors for the care team access core.

Every expected failure of an access-control operation is one of these.
Routers never translate them by hand; the app-level exception handler
renders ``{"detail": message, "code": code}`` with ``status_code``.
"""


class AccessControlError(Exception):
    """Base class for recoverable, request-local failures."""

    code = "access_control_error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotAuthorized(AccessControlError):
    """Actor lacks the role or ownership for the action."""

    code = "not_authorized"
    status_code = 403
    default_message = "Access denied"


class NotFound(AccessControlError):
    """Referenced entity does not exist (or the grant is already inactive)."""

    code = "not_found"
    status_code = 404
    default_message = "Not found"


class Expired(AccessControlError):
    """Invitation is past its expiry."""

    code = "expired"
    status_code = 410
    default_message = "This invitation has expired"


class AlreadyResolved(AccessControlError):
    """Invitation was already accepted or declined."""

    code = "already_resolved"
    status_code = 409
    default_message = "This invitation has already been responded to"


class WrongRecipient(AccessControlError):
    """Acting user does not match the invitation's email binding."""

    code = "wrong_recipient"
    status_code = 403
    default_message = "This invitation is not valid for your account"


class InvalidScope(AccessControlError):
    """Scope set is empty or contains unknown tags."""

    code = "invalid_scope"
    status_code = 400
    default_message = "At least one valid permission scope is required"


class InvalidRecipientEmail(AccessControlError):
    """Bound recipient email is not a valid address."""

    code = "invalid_recipient_email"
    status_code = 400
    default_message = "Invalid email address"


class StorageError(AccessControlError):
    """Opaque wrapper for backing-store faults. The transaction is rolled back."""

    code = "storage_error"
    status_code = 500
    default_message = "Internal server error"
