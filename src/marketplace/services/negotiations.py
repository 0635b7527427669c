"""Negotiation engine: the message log, current terms, and agreement.

A negotiation is opened by the offer manager when an offer is accepted.
From then on the two participants (the request's requester and the
accepted offer's offerer) exchange messages until either side rejects or
both have sent an ACCEPT.  The terms on the table live on the negotiation
row; only COUNTER_OFFER moves them.

Bilateral agreement is detected from the acceptance map, which is written
in the same transaction as the ACCEPT message.  Promotion to AGREED is a
conditional update, so it happens at most once however the two ACCEPTs
interleave.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from marketplace.audit.logger import AuditLogger
from marketplace.domain.errors import (
    ConflictError,
    DuplicateAcceptError,
    InvalidStateError,
    MarketplaceError,
    NotFoundError,
    UnauthorizedError,
)
from marketplace.domain.models import (
    CurrentTerms,
    MessageSent,
    Negotiation,
    NegotiationMessage,
    NegotiationMessageInput,
    NegotiationView,
    Offer,
    Participants,
    Request,
)
from marketplace.domain.types import MessageType, NegotiationStatus, OfferStatus
from marketplace.observability.metrics import (
    ACTIVE_NEGOTIATIONS,
    DEALS_AGREED,
    NEGOTIATIONS_FAILED,
)
from marketplace.services.requests import RequestLifecycleController
from marketplace.state_machine import RequestEvent
from marketplace.store.database import Database, utcnow
from marketplace.store.repository import MarketplaceStore

logger = structlog.get_logger()

DEFAULT_EXPIRY_DAYS = 14


def derive_participants(request: Request, accepted_offer: Offer) -> Participants:
    """The requester of *request* and the offerer of *accepted_offer*."""
    return Participants(requester_id=request.requester_id, offerer_id=accepted_offer.offerer_id)


def current_terms(
    negotiation: Negotiation, messages: list[NegotiationMessage]
) -> CurrentTerms:
    """The price and currency currently on the table.

    The accepted offer's terms until the first counter-offer, after which
    the negotiation row carries the latest counter-offer's price.
    """
    countered = any(m.message_type is MessageType.COUNTER_OFFER for m in messages)
    return CurrentTerms(
        price=negotiation.final_price,
        currency=negotiation.currency,
        source="counter_offer" if countered else "accepted_offer",
    )


class NegotiationEngine:
    """Processes negotiation messages and detects agreement.

    Args:
        db: The marketplace database.
        lifecycle: Controller used for every request status change.
        expiry_days: Days without activity after which an IN_PROGRESS
            negotiation is failed by :meth:`expire_stale_negotiations`.
            ``0`` disables expiry.
    """

    def __init__(
        self,
        db: Database,
        lifecycle: RequestLifecycleController,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
    ) -> None:
        self._db = db
        self._lifecycle = lifecycle
        self._store = MarketplaceStore(db.conn)
        self._audit = AuditLogger(db.conn)
        self._expiry_days = expiry_days

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load(self, negotiation_id: str) -> tuple[Negotiation, Request, Offer]:
        negotiation = self._store.get_negotiation(negotiation_id)
        if negotiation is None:
            raise NotFoundError("Negotiation not found")
        request = self._lifecycle.get_or_raise(negotiation.request_id)
        offer = self._store.get_offer(negotiation.accepted_offer_id)
        if offer is None:
            raise NotFoundError("Accepted offer not found")
        return negotiation, request, offer

    def _view(
        self, negotiation: Negotiation, request: Request, offer: Offer
    ) -> NegotiationView:
        messages = self._store.list_messages(negotiation.id)
        accepted = self._store.accepted_participants(negotiation.id)
        return NegotiationView(
            negotiation=negotiation,
            request=request,
            accepted_offer=offer,
            messages=messages,
            terms=current_terms(negotiation, messages),
            requester_accepted=request.requester_id in accepted,
            offerer_accepted=offer.offerer_id in accepted,
        )

    def get_negotiation(self, negotiation_id: str, caller_id: str) -> NegotiationView:
        """Return the negotiation with its log.  Participants only."""
        with self._db.transaction():
            negotiation, request, offer = self._load(negotiation_id)
            if caller_id not in derive_participants(request, offer):
                raise UnauthorizedError("You are not a participant in this negotiation")
            return self._view(negotiation, request, offer)

    def get_negotiation_by_request(
        self, request_id: str, caller_id: str
    ) -> NegotiationView | None:
        """Return the request's negotiation, or ``None`` if it never had one."""
        with self._db.transaction():
            self._lifecycle.get_or_raise(request_id)
            found = self._store.get_negotiation_for_request(request_id)
            if found is None:
                return None
            negotiation, request, offer = self._load(found.id)
            if caller_id not in derive_participants(request, offer):
                raise UnauthorizedError("You are not a participant in this negotiation")
            return self._view(negotiation, request, offer)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def send_message(
        self, negotiation_id: str, sender_id: str, data: NegotiationMessageInput
    ) -> MessageSent:
        """Append a message and apply its side effects.

        Raises:
            NotFoundError: The negotiation does not exist.
            UnauthorizedError: The sender is not a participant.
            InvalidStateError: The negotiation is not IN_PROGRESS.
            DuplicateAcceptError: The sender already accepted.
            ConflictError: A concurrent write moved the negotiation first.
        """
        agreed = failed = False

        with self._db.transaction():
            negotiation, request, offer = self._load(negotiation_id)
            participants = derive_participants(request, offer)
            if sender_id not in participants:
                raise UnauthorizedError("You are not a participant in this negotiation")
            if negotiation.status is not NegotiationStatus.IN_PROGRESS:
                raise InvalidStateError("Negotiation is not in progress")

            status = negotiation.status
            kind = data.message_type

            if kind is MessageType.ACCEPT:
                if sender_id in self._store.accepted_participants(negotiation_id):
                    raise DuplicateAcceptError()
                message = self._store.insert_message(
                    negotiation_id,
                    sender_id,
                    data,
                    price_offer=negotiation.final_price,
                    currency=negotiation.currency,
                )
                if not self._store.record_acceptance(negotiation_id, sender_id, message.id):
                    raise DuplicateAcceptError()
                accepted = self._store.accepted_participants(negotiation_id)
                if {participants.requester_id, participants.offerer_id} <= accepted:
                    agreed = self._promote(negotiation, request, sender_id)
                    status = NegotiationStatus.AGREED
            else:
                message = self._store.insert_message(negotiation_id, sender_id, data)
                if kind is MessageType.COUNTER_OFFER:
                    if not self._store.update_negotiation_terms(
                        negotiation_id, data.price_offer, data.currency
                    ):
                        raise ConflictError("Negotiation was changed by another operation")
                elif kind is MessageType.REJECT:
                    self._fail(negotiation, offer, sender_id, reason="rejected")
                    failed = True
                    status = NegotiationStatus.FAILED

            self._audit.log_message(
                sender_id, request.id, negotiation_id, message.id, kind.value
            )

        if agreed:
            ACTIVE_NEGOTIATIONS.dec()
            DEALS_AGREED.inc()
        if failed:
            ACTIVE_NEGOTIATIONS.dec()
            NEGOTIATIONS_FAILED.labels(reason="rejected").inc()

        logger.info(
            "negotiation_message_sent",
            negotiation_id=negotiation_id,
            message_id=message.id,
            message_type=kind.value,
            negotiation_status=status.value,
        )
        return MessageSent(message_id=message.id, negotiation_status=status)

    def _promote(self, negotiation: Negotiation, request: Request, actor_id: str) -> bool:
        """Move IN_PROGRESS -> AGREED and the request to ACCEPTED.

        Returns:
            ``True`` if this call moved the row, ``False`` if another
            promotion already did.
        """
        result = self._store.transition_negotiation_status(
            negotiation.id,
            NegotiationStatus.AGREED,
            [NegotiationStatus.IN_PROGRESS],
            completed_at=utcnow(),
        )
        if not result.updated:
            logger.info("negotiation_already_agreed", negotiation_id=negotiation.id)
            return False

        self._audit.log_negotiation_transition(
            actor_id,
            request.id,
            negotiation.id,
            NegotiationStatus.IN_PROGRESS.value,
            NegotiationStatus.AGREED.value,
            "both_accepted",
        )
        self._lifecycle.apply_event(
            request, RequestEvent.NEGOTIATION_AGREED, actor_id, currency=negotiation.currency
        )
        logger.info(
            "negotiation_agreed",
            negotiation_id=negotiation.id,
            request_id=request.id,
            final_price=str(negotiation.final_price),
            currency=negotiation.currency.value,
        )
        return True

    def _fail(
        self, negotiation: Negotiation, offer: Offer, actor_id: str | None, reason: str
    ) -> None:
        """Fail the negotiation, reopen the request, and retire its offer."""
        result = self._store.transition_negotiation_status(
            negotiation.id,
            NegotiationStatus.FAILED,
            [NegotiationStatus.IN_PROGRESS],
            completed_at=utcnow(),
        )
        if not result.updated:
            raise ConflictError("Negotiation was changed by another operation")
        self._audit.log_negotiation_transition(
            actor_id,
            negotiation.request_id,
            negotiation.id,
            NegotiationStatus.IN_PROGRESS.value,
            NegotiationStatus.FAILED.value,
            reason,
        )

        request = self._lifecycle.get_or_raise(negotiation.request_id)
        self._lifecycle.apply_event(request, RequestEvent.NEGOTIATION_FAILED, actor_id)

        if self._store.transition_offer_status(
            offer.id, OfferStatus.REJECTED, [OfferStatus.ACCEPTED]
        ).updated:
            self._audit.log_offer_transition(
                actor_id,
                negotiation.request_id,
                offer.id,
                OfferStatus.ACCEPTED.value,
                OfferStatus.REJECTED.value,
            )

        logger.info(
            "negotiation_failed",
            negotiation_id=negotiation.id,
            request_id=negotiation.request_id,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def expire_stale_negotiations(self, now: datetime | None = None) -> list[str]:
        """Fail IN_PROGRESS negotiations idle for longer than the expiry window.

        Each negotiation is failed in its own transaction.  One that a
        participant touched or settled in the meantime is skipped.

        Returns:
            Ids of the negotiations that were expired.
        """
        if self._expiry_days <= 0:
            return []

        cutoff = (now or utcnow()) - timedelta(days=self._expiry_days)
        with self._db.transaction():
            candidates = self._store.stale_negotiation_ids(cutoff)

        expired: list[str] = []
        for negotiation_id in candidates:
            try:
                with self._db.transaction():
                    negotiation, _request, offer = self._load(negotiation_id)
                    if negotiation.status is not NegotiationStatus.IN_PROGRESS:
                        continue
                    if not self._store.is_stale(negotiation_id, cutoff):
                        continue
                    self._fail(negotiation, offer, None, reason="expired")
            except MarketplaceError as exc:
                logger.warning(
                    "negotiation_expiry_skipped",
                    negotiation_id=negotiation_id,
                    error=exc.message,
                )
                continue

            expired.append(negotiation_id)
            ACTIVE_NEGOTIATIONS.dec()
            NEGOTIATIONS_FAILED.labels(reason="expired").inc()

        logger.info("negotiation_expiry_sweep", cutoff=cutoff.isoformat(), expired=len(expired))
        return expired
