"""Pydantic v2 models for marketplace entities, operation inputs, and views.

Monetary values use Decimal and are persisted as strings so no precision is
lost between the store and the API.  Input models carry every validation
rule, so malformed input is rejected before any store access.
"""

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from marketplace.domain.types import (
    OFFER_UPDATE_STATUSES,
    Currency,
    MessageType,
    NegotiationStatus,
    OfferStatus,
    RequestStatus,
    RequestType,
)

MAX_PRICE = Decimal("999999")
MAX_QUANTITY = 999999
MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000
MAX_MESSAGE_LENGTH = 500


def _check_price(value: Decimal | None) -> Decimal | None:
    if value is None:
        return value
    if value < 0:
        raise ValueError("Price must be at least 0")
    if value > MAX_PRICE:
        raise ValueError("Price is too high")
    return value


def _check_text(value: str, field: str, max_length: int) -> str:
    value = value.strip()
    if not value:
        raise ValueError(f"{field} is required")
    if len(value) > max_length:
        raise ValueError(f"{field} must be at most {max_length} characters")
    return value


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class Request(BaseModel):
    """A posted want-ad for an item or service, owned by its requester."""

    model_config = ConfigDict(frozen=True)

    id: str
    requester_id: str
    title: str
    description: str
    request_type: RequestType
    item_id: str | None = None
    item_quantity: int | None = None
    suggested_price: Decimal | None = None
    currency: Currency = Currency.EMERALDS
    status: RequestStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class Offer(BaseModel):
    """A competing bid by another user against an open request."""

    model_config = ConfigDict(frozen=True)

    id: str
    request_id: str
    offerer_id: str
    offered_price: Decimal | None = None
    currency: Currency = Currency.EMERALDS
    message: str | None = None
    status: OfferStatus
    created_at: datetime
    updated_at: datetime


class Negotiation(BaseModel):
    """The bargaining session opened when an offer is accepted.

    ``final_price`` and ``currency`` hold the terms currently on the table.
    They are seeded from the accepted offer and moved only by counter-offers.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    request_id: str
    accepted_offer_id: str
    final_price: Decimal | None = None
    currency: Currency = Currency.EMERALDS
    status: NegotiationStatus
    created_at: datetime
    updated_at: datetime
    completed_at: datetime | None = None


class NegotiationMessage(BaseModel):
    """One append-only entry in a negotiation's message log."""

    model_config = ConfigDict(frozen=True)

    id: str
    negotiation_id: str
    sender_id: str
    message_type: MessageType
    content: str
    price_offer: Decimal | None = None
    currency: Currency | None = None
    created_at: datetime


class Participants(BaseModel):
    """The two parties of a negotiation, derived from current entity state.

    Never stored: the requester comes from the request and the offerer from
    the accepted offer, both of which are immutable once the negotiation
    exists.
    """

    model_config = ConfigDict(frozen=True)

    requester_id: str
    offerer_id: str

    def __contains__(self, user_id: object) -> bool:
        return user_id in (self.requester_id, self.offerer_id)


# ---------------------------------------------------------------------------
# Operation inputs
# ---------------------------------------------------------------------------


class CreateRequestInput(BaseModel):
    """Fields a requester supplies when posting a request."""

    title: str
    description: str
    request_type: RequestType
    item_id: str | None = None
    item_quantity: int | None = None
    suggested_price: Decimal | None = None
    currency: Currency = Currency.EMERALDS

    @field_validator("title")
    @classmethod
    def title_length(cls, v: str) -> str:
        return _check_text(v, "Title", MAX_TITLE_LENGTH)

    @field_validator("description")
    @classmethod
    def description_length(cls, v: str) -> str:
        return _check_text(v, "Description", MAX_DESCRIPTION_LENGTH)

    @field_validator("item_quantity")
    @classmethod
    def quantity_in_range(cls, v: int | None) -> int | None:
        if v is not None and not 1 <= v <= MAX_QUANTITY:
            raise ValueError(f"Quantity must be between 1 and {MAX_QUANTITY}")
        return v

    @field_validator("suggested_price")
    @classmethod
    def price_in_range(cls, v: Decimal | None) -> Decimal | None:
        return _check_price(v)

    @model_validator(mode="after")
    def item_requests_need_item(self) -> "CreateRequestInput":
        """ITEM requests must name the item and how many are wanted."""
        if self.request_type is RequestType.ITEM and (
            not self.item_id or self.item_quantity is None
        ):
            raise ValueError("Item ID and quantity are required for item requests")
        return self


class UpdateRequestInput(BaseModel):
    """Editable fields of an OPEN request.  ``None`` leaves a field unchanged."""

    title: str | None = None
    description: str | None = None
    suggested_price: Decimal | None = None
    currency: Currency | None = None

    @field_validator("title")
    @classmethod
    def title_length(cls, v: str | None) -> str | None:
        return None if v is None else _check_text(v, "Title", MAX_TITLE_LENGTH)

    @field_validator("description")
    @classmethod
    def description_length(cls, v: str | None) -> str | None:
        return None if v is None else _check_text(v, "Description", MAX_DESCRIPTION_LENGTH)

    @field_validator("suggested_price")
    @classmethod
    def price_in_range(cls, v: Decimal | None) -> Decimal | None:
        return _check_price(v)

    def changes(self) -> dict[str, object]:
        """Return only the fields the caller actually set."""
        return self.model_dump(exclude_none=True)


class CreateOfferInput(BaseModel):
    """Fields an offerer supplies when bidding on a request."""

    offered_price: Decimal | None = None
    currency: Currency = Currency.EMERALDS
    message: str | None = None

    @field_validator("offered_price")
    @classmethod
    def price_in_range(cls, v: Decimal | None) -> Decimal | None:
        return _check_price(v)

    @field_validator("message")
    @classmethod
    def message_length(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
        return v


class OfferUpdateInput(BaseModel):
    """The target status of an update_offer call."""

    status: OfferStatus

    @field_validator("status")
    @classmethod
    def status_must_be_terminal(cls, v: OfferStatus) -> OfferStatus:
        if v not in OFFER_UPDATE_STATUSES:
            raise ValueError("Status must be ACCEPTED, REJECTED, or WITHDRAWN")
        return v


class NegotiationMessageInput(BaseModel):
    """A message a participant sends into a negotiation."""

    message_type: MessageType
    content: str
    price_offer: Decimal | None = None
    currency: Currency | None = None

    @field_validator("content")
    @classmethod
    def content_length(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Message content is required")
        if len(v) > MAX_MESSAGE_LENGTH:
            raise ValueError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters")
        return v

    @field_validator("price_offer")
    @classmethod
    def price_in_range(cls, v: Decimal | None) -> Decimal | None:
        return _check_price(v)

    @model_validator(mode="after")
    def counter_offer_needs_price(self) -> "NegotiationMessageInput":
        """Counter-offers must put a positive price on the table."""
        if self.message_type is MessageType.COUNTER_OFFER and (
            self.price_offer is None or self.price_offer <= 0
        ):
            raise ValueError("Price offer is required for counter-offers")
        return self


class RequestQuery(BaseModel):
    """Filters, pagination, and ordering for request listings."""

    status: RequestStatus | None = None
    request_type: RequestType | None = None
    requester_id: str | None = None
    item_id: str | None = None
    limit: int = 20
    offset: int = 0
    order_by: Literal["created_at", "updated_at", "suggested_price"] = "created_at"
    order_direction: Literal["asc", "desc"] = "desc"

    @field_validator("limit")
    @classmethod
    def limit_in_range(cls, v: int) -> int:
        if not 1 <= v <= 50:
            raise ValueError("limit must be between 1 and 50")
        return v

    @field_validator("offset")
    @classmethod
    def offset_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("offset must not be negative")
        return v


class SearchQuery(BaseModel):
    """Free-text search over open requests."""

    query: str
    request_type: RequestType | None = None
    limit: int = 20
    offset: int = 0

    @field_validator("query")
    @classmethod
    def query_not_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Search query is required")
        return v

    @field_validator("limit")
    @classmethod
    def limit_in_range(cls, v: int) -> int:
        if not 1 <= v <= 50:
            raise ValueError("limit must be between 1 and 50")
        return v

    @field_validator("offset")
    @classmethod
    def offset_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("offset must not be negative")
        return v


# ---------------------------------------------------------------------------
# Operation outputs
# ---------------------------------------------------------------------------


class OfferDecision(BaseModel):
    """Result of update_offer.  ``negotiation_id`` is set only on acceptance."""

    offer_id: str
    status: OfferStatus
    negotiation_id: str | None = None


class MessageSent(BaseModel):
    """Result of send_message."""

    message_id: str
    negotiation_status: NegotiationStatus


class CurrentTerms(BaseModel):
    """The price and currency currently on the table in a negotiation."""

    price: Decimal | None
    currency: Currency
    source: Literal["accepted_offer", "counter_offer"]


class NegotiationView(BaseModel):
    """A negotiation as seen by one of its participants."""

    negotiation: Negotiation
    request: Request
    accepted_offer: Offer
    messages: list[NegotiationMessage]
    terms: CurrentTerms
    requester_accepted: bool
    offerer_accepted: bool


class RequestDetails(BaseModel):
    """A request with its offers and, once one exists, its negotiation."""

    request: Request
    offers: list[Offer]
    negotiation: Negotiation | None = None
    messages: list[NegotiationMessage] = []


class RequestPage(BaseModel):
    """One page of a request listing."""

    requests: list[Request]
    total: int
    has_more: bool


class AcceptedOfferSummary(BaseModel):
    """A request on which the caller holds the accepted offer."""

    request: Request
    offer: Offer
    negotiation: Negotiation | None = None
