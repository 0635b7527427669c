"""Shared pytest fixtures for the marketplace test suite."""

from collections.abc import Callable, Iterator
from decimal import Decimal
from typing import Any

import pytest

from marketplace.actions import MarketplaceActions
from marketplace.domain.models import (
    CreateOfferInput,
    CreateRequestInput,
    Negotiation,
    Offer,
    OfferUpdateInput,
    Request,
)
from marketplace.domain.types import OfferStatus
from marketplace.services import (
    CompletionCoordinator,
    NegotiationEngine,
    OfferManager,
    RequestLifecycleController,
)
from marketplace.store.database import Database
from marketplace.store.repository import MarketplaceStore

REQUESTER = "requester"
OFFERER = "offerer_1"
SECOND_OFFERER = "offerer_2"


@pytest.fixture
def db() -> Iterator[Database]:
    """A fresh in-memory marketplace database."""
    database = Database.open(":memory:")
    yield database
    database.conn.close()


@pytest.fixture
def store(db: Database) -> MarketplaceStore:
    return MarketplaceStore(db.conn)


@pytest.fixture
def actions(db: Database) -> MarketplaceActions:
    return MarketplaceActions(db)


@pytest.fixture
def lifecycle(actions: MarketplaceActions) -> RequestLifecycleController:
    return actions.lifecycle


@pytest.fixture
def offers(actions: MarketplaceActions) -> OfferManager:
    return actions.offers


@pytest.fixture
def engine(actions: MarketplaceActions) -> NegotiationEngine:
    return actions.negotiations


@pytest.fixture
def completion(actions: MarketplaceActions) -> CompletionCoordinator:
    return actions.completion


@pytest.fixture
def make_request(lifecycle: RequestLifecycleController) -> Callable[..., Request]:
    """Factory posting an OPEN GENERAL request; keyword overrides change fields."""

    def _make(requester_id: str = REQUESTER, **overrides: Any) -> Request:
        data: dict[str, Any] = {
            "title": "Need 64 oak logs",
            "description": "Delivered to the spawn chest",
            "request_type": "GENERAL",
            "suggested_price": Decimal("10"),
        }
        data.update(overrides)
        return lifecycle.create_request(requester_id, CreateRequestInput(**data))

    return _make


@pytest.fixture
def make_offer(offers: OfferManager) -> Callable[..., Offer]:
    """Factory submitting a PENDING offer."""

    def _make(
        request_id: str,
        offerer_id: str = OFFERER,
        price: str | None = "10",
        **overrides: Any,
    ) -> Offer:
        data: dict[str, Any] = {
            "offered_price": None if price is None else Decimal(price),
        }
        data.update(overrides)
        return offers.create_offer(request_id, offerer_id, CreateOfferInput(**data))

    return _make


@pytest.fixture
def live_negotiation(
    make_request: Callable[..., Request],
    make_offer: Callable[..., Offer],
    offers: OfferManager,
    store: MarketplaceStore,
) -> tuple[Request, Offer, Negotiation]:
    """An IN_PROGRESS negotiation between REQUESTER and OFFERER at price 10."""
    request = make_request()
    offer = make_offer(request.id)
    decision = offers.update_offer(
        offer.id, REQUESTER, OfferUpdateInput(status=OfferStatus.ACCEPTED)
    )
    assert decision.negotiation_id is not None
    negotiation = store.get_negotiation(decision.negotiation_id)
    assert negotiation is not None
    return store.require_request(request.id), offer, negotiation
