"""Domain-specific exception classes for the marketplace engine.

Every business-rule violation raised by the services derives from
:class:`MarketplaceError` and carries an :class:`ErrorKind`.  The action
boundary turns these into tagged results; they never reach callers as
exceptions.
"""

from enum import StrEnum


class ErrorKind(StrEnum):
    """Structured error categories surfaced to callers."""

    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INVALID_STATE = "invalid_state"
    CONFLICT = "conflict"
    VALIDATION_ERROR = "validation_error"
    OPERATION_FAILED = "operation_failed"


class MarketplaceError(Exception):
    """Base class for all domain errors in the marketplace engine."""

    kind: ErrorKind = ErrorKind.OPERATION_FAILED

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class NotFoundError(MarketplaceError):
    """Raised when a request, offer, or negotiation id does not resolve."""

    kind = ErrorKind.NOT_FOUND


class UnauthorizedError(MarketplaceError):
    """Raised when the caller is not a permitted participant for an action."""

    kind = ErrorKind.UNAUTHORIZED


class InvalidStateError(MarketplaceError):
    """Raised when the target entity's status does not allow the action."""

    kind = ErrorKind.INVALID_STATE


class InvalidTransitionError(InvalidStateError):
    """Raised when a lifecycle event is not allowed from the current status.

    Attributes:
        current_status: The status the entity was in.
        event: The event that was rejected.
    """

    def __init__(self, current_status: str, event: str) -> None:
        self.current_status = current_status
        self.event = event
        super().__init__(f"Cannot apply event '{event}' in status '{current_status}'")


class ConflictError(MarketplaceError):
    """Raised when a concurrent transition already changed the entity."""

    kind = ErrorKind.CONFLICT


class DuplicateAcceptError(ConflictError):
    """Raised when a participant submits a second ACCEPT in one negotiation."""

    def __init__(self) -> None:
        super().__init__("You have already accepted this negotiation")


class ValidationFailedError(MarketplaceError):
    """Raised when input is malformed.  Always raised before any write."""

    kind = ErrorKind.VALIDATION_ERROR
