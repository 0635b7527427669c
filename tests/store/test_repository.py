"""Tests for MarketplaceStore queries and conditional status writes."""

import sqlite3
from datetime import timedelta
from decimal import Decimal

import pytest

from marketplace.domain.models import (
    CreateOfferInput,
    CreateRequestInput,
    NegotiationMessageInput,
    RequestQuery,
    SearchQuery,
)
from marketplace.domain.types import (
    Currency,
    NegotiationStatus,
    OfferStatus,
    RequestStatus,
)
from marketplace.store.database import utcnow
from marketplace.store.repository import MarketplaceStore


def _request(store: MarketplaceStore, requester: str = "alice", **overrides):
    data = {
        "title": "Need iron",
        "description": "A stack of ingots",
        "request_type": "GENERAL",
    }
    data.update(overrides)
    return store.insert_request(requester, CreateRequestInput(**data))


class TestRequests:
    def test_insert_and_get(self, store: MarketplaceStore):
        request = _request(store, suggested_price=Decimal("12.50"))
        loaded = store.get_request(request.id)
        assert loaded == request
        assert loaded.status is RequestStatus.OPEN
        assert loaded.suggested_price == Decimal("12.50")

    def test_get_missing_returns_none(self, store: MarketplaceStore):
        assert store.get_request("nope") is None

    def test_conditional_transition_moves_row(self, store: MarketplaceStore):
        request = _request(store)
        result = store.transition_request_status(
            request.id, RequestStatus.CANCELLED, [RequestStatus.OPEN]
        )
        assert result.updated
        assert result.rowcount == 1
        assert store.require_request(request.id).status is RequestStatus.CANCELLED

    def test_conditional_transition_refuses_stale_source(self, store: MarketplaceStore):
        request = _request(store)
        store.transition_request_status(request.id, RequestStatus.CANCELLED, [RequestStatus.OPEN])
        result = store.transition_request_status(
            request.id, RequestStatus.IN_NEGOTIATION, [RequestStatus.OPEN]
        )
        assert not result.updated
        assert result.rowcount == 0
        assert store.require_request(request.id).status is RequestStatus.CANCELLED

    def test_transition_writes_currency_and_completed_at(self, store: MarketplaceStore):
        request = _request(store)
        now = utcnow()
        store.transition_request_status(
            request.id,
            RequestStatus.CANCELLED,
            [RequestStatus.OPEN],
            completed_at=now,
            currency=Currency.EMERALD_BLOCKS,
        )
        loaded = store.require_request(request.id)
        assert loaded.currency is Currency.EMERALD_BLOCKS
        assert loaded.completed_at == now

    def test_update_fields_only_in_allowed_status(self, store: MarketplaceStore):
        request = _request(store)
        assert store.update_request_fields(
            request.id,
            {"title": "Need gold", "suggested_price": Decimal("3")},
            [RequestStatus.OPEN],
        )
        loaded = store.require_request(request.id)
        assert loaded.title == "Need gold"
        assert loaded.suggested_price == Decimal("3")

        store.transition_request_status(request.id, RequestStatus.CANCELLED, [RequestStatus.OPEN])
        assert not store.update_request_fields(request.id, {"title": "x"}, [RequestStatus.OPEN])


class TestListAndSearch:
    def test_filters_and_total(self, store: MarketplaceStore):
        _request(store, "alice")
        _request(store, "alice")
        _request(store, "bob")
        requests, total = store.list_requests(RequestQuery(requester_id="alice"))
        assert total == 2
        assert {r.requester_id for r in requests} == {"alice"}

    def test_pagination(self, store: MarketplaceStore):
        for _ in range(5):
            _request(store)
        page, total = store.list_requests(RequestQuery(limit=2, offset=4))
        assert total == 5
        assert len(page) == 1

    def test_order_by_price_is_numeric(self, store: MarketplaceStore):
        _request(store, suggested_price=Decimal("9"))
        _request(store, suggested_price=Decimal("100"))
        _request(store, suggested_price=Decimal("20"))
        requests, _ = store.list_requests(
            RequestQuery(order_by="suggested_price", order_direction="asc")
        )
        assert [r.suggested_price for r in requests] == [
            Decimal("9"),
            Decimal("20"),
            Decimal("100"),
        ]

    def test_newest_first_by_default(self, store: MarketplaceStore):
        first = _request(store, title="first")
        second = _request(store, title="second")
        requests, _ = store.list_requests(RequestQuery())
        assert [r.id for r in requests] == [second.id, first.id]

    def test_search_is_case_insensitive_and_open_only(self, store: MarketplaceStore):
        match = _request(store, title="Enchanted BOOK wanted")
        _request(store, description="Looking for a book")
        closed = _request(store, title="Old book")
        store.transition_request_status(closed.id, RequestStatus.CANCELLED, [RequestStatus.OPEN])
        _request(store, title="Cobblestone")

        requests, total = store.search_requests(SearchQuery(query="book"))
        assert total == 2
        assert match.id in {r.id for r in requests}
        assert closed.id not in {r.id for r in requests}


class TestOffers:
    def test_one_pending_offer_per_offerer(self, store: MarketplaceStore):
        request = _request(store)
        store.insert_offer(request.id, "bob", CreateOfferInput(offered_price=Decimal("5")))
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_offer(request.id, "bob", CreateOfferInput())

    def test_new_pending_offer_allowed_after_withdrawal(self, store: MarketplaceStore):
        request = _request(store)
        offer = store.insert_offer(request.id, "bob", CreateOfferInput())
        store.transition_offer_status(offer.id, OfferStatus.WITHDRAWN, [OfferStatus.PENDING])
        again = store.insert_offer(request.id, "bob", CreateOfferInput())
        assert again.status is OfferStatus.PENDING

    def test_reject_pending_offers_spares_the_excluded(self, store: MarketplaceStore):
        request = _request(store)
        keep = store.insert_offer(request.id, "bob", CreateOfferInput())
        other = store.insert_offer(request.id, "carol", CreateOfferInput())
        assert store.reject_pending_offers(request.id, keep.id) == 1
        assert store.get_offer(keep.id).status is OfferStatus.PENDING
        assert store.get_offer(other.id).status is OfferStatus.REJECTED

    def test_list_offers_for_one_offerer(self, store: MarketplaceStore):
        request = _request(store)
        store.insert_offer(request.id, "bob", CreateOfferInput())
        store.insert_offer(request.id, "carol", CreateOfferInput())
        assert [o.offerer_id for o in store.list_offers(request.id, offerer_id="bob")] == ["bob"]
        assert len(store.list_offers(request.id)) == 2


class TestNegotiations:
    def _negotiation(self, store: MarketplaceStore):
        request = _request(store)
        offer = store.insert_offer(
            request.id,
            "bob",
            CreateOfferInput(offered_price=Decimal("7"), currency="emerald_blocks"),
        )
        return request, offer, store.insert_negotiation(offer)

    def test_seeded_from_offer(self, store: MarketplaceStore):
        _, offer, negotiation = self._negotiation(store)
        assert negotiation.accepted_offer_id == offer.id
        assert negotiation.final_price == Decimal("7")
        assert negotiation.currency is Currency.EMERALD_BLOCKS
        assert negotiation.status is NegotiationStatus.IN_PROGRESS

    def test_one_live_negotiation_per_request(self, store: MarketplaceStore):
        request, _, _ = self._negotiation(store)
        second = store.insert_offer(request.id, "carol", CreateOfferInput())
        with pytest.raises(sqlite3.IntegrityError):
            store.insert_negotiation(second)

    def test_failed_negotiation_frees_the_slot(self, store: MarketplaceStore):
        request, _, negotiation = self._negotiation(store)
        store.transition_negotiation_status(
            negotiation.id, NegotiationStatus.FAILED, [NegotiationStatus.IN_PROGRESS]
        )
        second = store.insert_offer(request.id, "carol", CreateOfferInput())
        replacement = store.insert_negotiation(second)
        assert store.get_negotiation_for_request(request.id).id == replacement.id

    def test_terms_only_move_while_in_progress(self, store: MarketplaceStore):
        _, _, negotiation = self._negotiation(store)
        assert store.update_negotiation_terms(negotiation.id, Decimal("9"), None)
        loaded = store.get_negotiation(negotiation.id)
        assert loaded.final_price == Decimal("9")
        assert loaded.currency is Currency.EMERALD_BLOCKS

        store.transition_negotiation_status(
            negotiation.id, NegotiationStatus.AGREED, [NegotiationStatus.IN_PROGRESS]
        )
        assert not store.update_negotiation_terms(negotiation.id, Decimal("1"), None)

    def test_acceptance_recorded_once(self, store: MarketplaceStore):
        _, _, negotiation = self._negotiation(store)
        message = store.insert_message(
            negotiation.id, "bob", NegotiationMessageInput(message_type="ACCEPT", content="ok")
        )
        assert store.record_acceptance(negotiation.id, "bob", message.id)
        assert not store.record_acceptance(negotiation.id, "bob", message.id)
        assert store.accepted_participants(negotiation.id) == {"bob"}

    def test_messages_in_insertion_order(self, store: MarketplaceStore):
        _, _, negotiation = self._negotiation(store)
        for text in ("one", "two", "three"):
            store.insert_message(
                negotiation.id, "bob", NegotiationMessageInput(message_type="MESSAGE", content=text)
            )
        assert [m.content for m in store.list_messages(negotiation.id)] == ["one", "two", "three"]

    def test_stale_detection_uses_last_message(self, store: MarketplaceStore):
        _, _, negotiation = self._negotiation(store)
        future = utcnow() + timedelta(days=1)
        assert store.stale_negotiation_ids(future) == [negotiation.id]
        assert store.is_stale(negotiation.id, future)

        past = utcnow() - timedelta(days=1)
        assert store.stale_negotiation_ids(past) == []
        assert not store.is_stale(negotiation.id, past)

    def test_count_negotiations(self, store: MarketplaceStore):
        self._negotiation(store)
        assert store.count_negotiations(NegotiationStatus.IN_PROGRESS) == 1
        assert store.count_negotiations(NegotiationStatus.AGREED) == 0
