"""Domain enumerations for marketplace requests, offers, and negotiations."""

from enum import StrEnum


class RequestType(StrEnum):
    """What a request is asking for."""

    ITEM = "ITEM"
    GENERAL = "GENERAL"


class RequestStatus(StrEnum):
    """States in the request lifecycle."""

    OPEN = "OPEN"
    IN_NEGOTIATION = "IN_NEGOTIATION"
    ACCEPTED = "ACCEPTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class OfferStatus(StrEnum):
    """States an offer can be in.  Only PENDING offers are mutable."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    WITHDRAWN = "WITHDRAWN"


class NegotiationStatus(StrEnum):
    """States of the bilateral bargaining session."""

    IN_PROGRESS = "IN_PROGRESS"
    AGREED = "AGREED"
    FAILED = "FAILED"


class MessageType(StrEnum):
    """Kinds of entries in a negotiation's message log."""

    MESSAGE = "MESSAGE"
    OFFER = "OFFER"
    COUNTER_OFFER = "COUNTER_OFFER"
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


class Currency(StrEnum):
    """In-game currencies a price can be quoted in."""

    EMERALDS = "emeralds"
    EMERALD_BLOCKS = "emerald_blocks"


# Offer statuses the requester or offerer may request through update_offer
OFFER_UPDATE_STATUSES: frozenset[OfferStatus] = frozenset(
    {OfferStatus.ACCEPTED, OfferStatus.REJECTED, OfferStatus.WITHDRAWN}
)

# Negotiations in these states still occupy the request's single live slot
LIVE_NEGOTIATION_STATUSES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.IN_PROGRESS, NegotiationStatus.AGREED}
)
