"""Transition map defining all valid (status, event) -> status mappings.

Only the offer manager, negotiation engine, and completion coordinator fire
these events; nothing else may write ``Request.status``.
"""

from enum import StrEnum

from marketplace.domain.types import RequestStatus


class RequestEvent(StrEnum):
    """Events that can trigger request status transitions."""

    OFFER_ACCEPTED = "offer_accepted"
    NEGOTIATION_AGREED = "negotiation_agreed"
    NEGOTIATION_FAILED = "negotiation_failed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[RequestStatus, str], RequestStatus] = {
    (RequestStatus.OPEN, RequestEvent.OFFER_ACCEPTED): RequestStatus.IN_NEGOTIATION,
    (RequestStatus.OPEN, RequestEvent.CANCELLED): RequestStatus.CANCELLED,
    (RequestStatus.IN_NEGOTIATION, RequestEvent.NEGOTIATION_AGREED): RequestStatus.ACCEPTED,
    # Offers stay terminal; the request reopens for fresh offers
    (RequestStatus.IN_NEGOTIATION, RequestEvent.NEGOTIATION_FAILED): RequestStatus.OPEN,
    (RequestStatus.ACCEPTED, RequestEvent.COMPLETED): RequestStatus.COMPLETED,
}

TERMINAL_STATES: frozenset[RequestStatus] = frozenset(
    {RequestStatus.COMPLETED, RequestStatus.CANCELLED}
)


def sources_for(event: str) -> frozenset[RequestStatus]:
    """Return every status from which *event* is a valid transition."""
    return frozenset(status for status, ev in TRANSITIONS if ev == event)
