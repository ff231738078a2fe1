"""
Error taxonomy for the moderation core.

Every error is recoverable by the caller. The core raises them; the transport
layer maps each kind onto a protocol response (see admod.api.errors).
"""
from typing import Any, Iterable, Optional


class ModerationError(Exception):
    """Base class for all caller-recoverable errors raised by the core."""
    code: str = "MODERATION_ERROR"
    message: str = "Moderation error"

    def __init__(self, message: Optional[str] = None, *, details: Any = None):
        if message is not None:
            self.message = message
        self.details = details
        super().__init__(self.message)


class NotFound(ModerationError):
    """Target does not exist, or its existence must not be disclosed to the caller."""
    code = "NOT_FOUND"
    message = "Resource not found"


class Forbidden(ModerationError):
    """Caller is identified but not entitled to this object or action."""
    code = "FORBIDDEN"
    message = "You are not allowed to perform this action"


class AuthenticationRequired(ModerationError):
    code = "AUTHENTICATION_REQUIRED"
    message = "Authentication credentials were not provided or are invalid"


class InvalidCredential(ModerationError):
    """Raised by token verification. Never escapes optional identity resolution."""
    code = "INVALID_CREDENTIAL"
    message = "Invalid credential"


class InsufficientRole(ModerationError):
    code = "INSUFFICIENT_ROLE"
    message = "Insufficient role"

    def __init__(self, required_roles: Iterable[Any] = (), message: Optional[str] = None):
        self.required_roles = frozenset(required_roles)
        super().__init__(
            message,
            details={"required_roles": sorted(str(getattr(r, "value", r)) for r in self.required_roles)},
        )


class InsufficientPermission(ModerationError):
    """The subject lacks at least one of the required permissions."""
    code = "INSUFFICIENT_PERMISSION"
    message = "Insufficient permissions"

    def __init__(self, missing: Iterable[str] = (), message: Optional[str] = None):
        self.missing = frozenset(missing)
        if message is None and self.missing:
            message = f"Missing permissions: {', '.join(sorted(self.missing))}"
        super().__init__(message, details={"missing": sorted(self.missing)})


class RoleNotEligible(InsufficientPermission):
    """Only administrators can hold fine-grained permissions."""
    code = "ROLE_NOT_ELIGIBLE"

    def __init__(self, missing: Iterable[str] = ()):
        super().__init__(missing, message="Only admins can have permissions")


class InvalidTransition(ModerationError):
    """State machine guard violation. Safe to retry after inspecting current state."""
    code = "INVALID_TRANSITION"
    message = "Invalid status transition"


class AlreadyApproved(InvalidTransition):
    code = "ALREADY_APPROVED"
    message = "Ad is already approved"


class AlreadyRejected(InvalidTransition):
    code = "ALREADY_REJECTED"
    message = "Ad is already rejected"


class AlreadySuspended(InvalidTransition):
    code = "ALREADY_SUSPENDED"
    message = "Ad is already suspended"


class NotSuspended(InvalidTransition):
    code = "NOT_SUSPENDED"
    message = "Ad is not suspended"


class ValidationError(ModerationError):
    code = "VALIDATION_ERROR"
    message = "Validation error"


class ReasonRequired(ValidationError):
    code = "REASON_REQUIRED"
    message = "Rejection reason is required"
