"""Audit trail models for tracking every marketplace state change.

Each entry names the actor, the entities touched (request, offer,
negotiation), and the status movement, plus arbitrary string metadata.
"""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events tracked in the audit trail."""

    REQUEST_CREATED = "request_created"
    REQUEST_UPDATED = "request_updated"
    REQUEST_STATUS_CHANGED = "request_status_changed"
    OFFER_CREATED = "offer_created"
    OFFER_STATUS_CHANGED = "offer_status_changed"
    NEGOTIATION_OPENED = "negotiation_opened"
    NEGOTIATION_MESSAGE = "negotiation_message"
    NEGOTIATION_STATUS_CHANGED = "negotiation_status_changed"


class AuditEntry(BaseModel):
    """A single audit trail entry.

    All fields except event_type are optional; a request creation has no
    offer or negotiation, a message has no status movement.
    """

    event_type: EventType
    actor_id: str | None = None
    request_id: str | None = None
    offer_id: str | None = None
    negotiation_id: str | None = None
    from_status: str | None = None
    to_status: str | None = None
    metadata: dict[str, str] | None = None
