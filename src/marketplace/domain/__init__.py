"""Domain types, models, and errors for the marketplace engine."""

from marketplace.domain.errors import (
    ConflictError,
    DuplicateAcceptError,
    ErrorKind,
    InvalidStateError,
    InvalidTransitionError,
    MarketplaceError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from marketplace.domain.models import (
    Negotiation,
    NegotiationMessage,
    Offer,
    Participants,
    Request,
)
from marketplace.domain.types import (
    Currency,
    MessageType,
    NegotiationStatus,
    OfferStatus,
    RequestStatus,
    RequestType,
)

__all__ = [
    "ConflictError",
    "Currency",
    "DuplicateAcceptError",
    "ErrorKind",
    "InvalidStateError",
    "InvalidTransitionError",
    "MarketplaceError",
    "MessageType",
    "Negotiation",
    "NegotiationMessage",
    "NegotiationStatus",
    "NotFoundError",
    "Offer",
    "OfferStatus",
    "Participants",
    "Request",
    "RequestStatus",
    "RequestType",
    "UnauthorizedError",
    "ValidationFailedError",
]
