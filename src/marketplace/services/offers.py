"""Offer manager: submitting, withdrawing, accepting, and rejecting offers.

Accepting an offer is the one multi-row write here.  In a single
transaction it marks the offer ACCEPTED, moves the request to
IN_NEGOTIATION, rejects every other pending offer, and opens the
negotiation.  Each status write is conditional, so of two requesters'
sessions racing to accept different offers exactly one commits.
"""

from __future__ import annotations

import sqlite3

import structlog

from marketplace.audit.logger import AuditLogger
from marketplace.domain.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
)
from marketplace.domain.models import (
    AcceptedOfferSummary,
    CreateOfferInput,
    Offer,
    OfferDecision,
    OfferUpdateInput,
)
from marketplace.domain.types import OfferStatus, RequestStatus
from marketplace.observability.metrics import ACTIVE_NEGOTIATIONS, OFFERS_CREATED
from marketplace.services.requests import RequestLifecycleController
from marketplace.state_machine import RequestEvent
from marketplace.store.database import Database
from marketplace.store.repository import MarketplaceStore

logger = structlog.get_logger()

_REQUESTER_DECISIONS = frozenset({OfferStatus.ACCEPTED, OfferStatus.REJECTED})


class OfferManager:
    """Create offers and apply requester/offerer decisions to them.

    Args:
        db: The marketplace database.
        lifecycle: Controller used for every request status change.
    """

    def __init__(self, db: Database, lifecycle: RequestLifecycleController) -> None:
        self._db = db
        self._lifecycle = lifecycle
        self._store = MarketplaceStore(db.conn)
        self._audit = AuditLogger(db.conn)

    def create_offer(self, request_id: str, offerer_id: str, data: CreateOfferInput) -> Offer:
        """Submit a PENDING offer against an OPEN request.

        Raises:
            NotFoundError: The request does not exist.
            UnauthorizedError: The offerer is the requester.
            InvalidStateError: The request is not OPEN.
            ConflictError: The offerer already has a pending offer on it.
        """
        with self._db.transaction():
            request = self._lifecycle.get_or_raise(request_id)
            if request.requester_id == offerer_id:
                raise UnauthorizedError("You cannot make an offer on your own request")
            if request.status is not RequestStatus.OPEN:
                raise InvalidStateError("Request is not open for offers")
            if self._store.find_pending_offer(request_id, offerer_id) is not None:
                raise ConflictError("You already have a pending offer on this request")

            try:
                offer = self._store.insert_offer(request_id, offerer_id, data)
            except sqlite3.IntegrityError as exc:
                raise ConflictError("You already have a pending offer on this request") from exc
            self._audit.log_offer_created(offerer_id, request_id, offer.id)

        OFFERS_CREATED.inc()
        logger.info(
            "offer_created",
            offer_id=offer.id,
            request_id=request_id,
            offerer_id=offerer_id,
        )
        return offer

    def update_offer(
        self, offer_id: str, caller_id: str, data: OfferUpdateInput
    ) -> OfferDecision:
        """Accept, reject, or withdraw a PENDING offer.

        ACCEPTED and REJECTED are the requester's decisions; WITHDRAWN is the
        offerer's.  Acceptance also opens the negotiation and returns its id.
        """
        target = data.status
        negotiation_id: str | None = None

        with self._db.transaction():
            offer = self._store.get_offer(offer_id)
            if offer is None:
                raise NotFoundError("Offer not found")
            request = self._lifecycle.get_or_raise(offer.request_id)

            if target in _REQUESTER_DECISIONS and caller_id != request.requester_id:
                raise UnauthorizedError("Only the requester can accept or reject offers")
            if target is OfferStatus.WITHDRAWN and caller_id != offer.offerer_id:
                raise UnauthorizedError("Only the offerer can withdraw an offer")
            if (
                target is OfferStatus.ACCEPTED
                and request.status is not RequestStatus.OPEN
                and self._store.count_accepted_offers(request.id)
            ):
                raise ConflictError("Request already has an accepted offer")
            if offer.status is not OfferStatus.PENDING:
                raise InvalidStateError("Offer is no longer pending")
            if target in _REQUESTER_DECISIONS and request.status is not RequestStatus.OPEN:
                raise InvalidStateError("Request is not open")

            if not self._store.transition_offer_status(
                offer_id, target, [OfferStatus.PENDING]
            ).updated:
                raise ConflictError("Offer was changed by another operation")
            self._audit.log_offer_transition(
                caller_id, request.id, offer_id, OfferStatus.PENDING.value, target.value
            )

            if target is OfferStatus.ACCEPTED:
                negotiation_id = self._open_negotiation(offer, caller_id)

        if negotiation_id is not None:
            ACTIVE_NEGOTIATIONS.inc()
        logger.info(
            "offer_updated",
            offer_id=offer_id,
            request_id=offer.request_id,
            status=target.value,
            negotiation_id=negotiation_id,
        )
        return OfferDecision(offer_id=offer_id, status=target, negotiation_id=negotiation_id)

    def _open_negotiation(self, offer: Offer, caller_id: str) -> str:
        request = self._lifecycle.get_or_raise(offer.request_id)
        self._lifecycle.apply_event(request, RequestEvent.OFFER_ACCEPTED, caller_id)

        for other in self._store.list_pending_offers(request.id, offer.id):
            self._audit.log_offer_transition(
                None, request.id, other.id, OfferStatus.PENDING.value, OfferStatus.REJECTED.value
            )
        rejected = self._store.reject_pending_offers(request.id, offer.id)

        try:
            negotiation = self._store.insert_negotiation(offer)
        except sqlite3.IntegrityError as exc:
            raise ConflictError("Request already has an active negotiation") from exc
        self._audit.log_negotiation_opened(caller_id, request.id, offer.id, negotiation.id)

        logger.info(
            "negotiation_opened",
            negotiation_id=negotiation.id,
            request_id=request.id,
            offer_id=offer.id,
            rejected_offers=rejected,
        )
        return negotiation.id

    def get_offers(self, request_id: str, caller_id: str) -> list[Offer]:
        """The requester sees every offer on the request; others only their own."""
        with self._db.transaction():
            request = self._lifecycle.get_or_raise(request_id)
            if request.requester_id == caller_id:
                return self._store.list_offers(request_id)
            return self._store.list_offers(request_id, offerer_id=caller_id)

    def get_user_accepted_offers(self, caller_id: str) -> list[AcceptedOfferSummary]:
        """Requests on which *caller_id* holds the accepted offer."""
        with self._db.transaction():
            summaries: list[AcceptedOfferSummary] = []
            for offer in self._store.accepted_offers_for_user(caller_id):
                summaries.append(
                    AcceptedOfferSummary(
                        request=self._store.require_request(offer.request_id),
                        offer=offer,
                        negotiation=self._store.get_negotiation_for_offer(offer.id),
                    )
                )
            return summaries
