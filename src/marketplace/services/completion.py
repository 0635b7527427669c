"""Completion coordinator: finalizes an agreed request as COMPLETED."""

from __future__ import annotations

import structlog

from marketplace.domain.errors import (
    ConflictError,
    InvalidStateError,
    UnauthorizedError,
    ValidationFailedError,
)
from marketplace.domain.models import Request
from marketplace.domain.types import NegotiationStatus, RequestStatus
from marketplace.observability.metrics import REQUESTS_COMPLETED
from marketplace.services.requests import RequestLifecycleController
from marketplace.state_machine import RequestEvent
from marketplace.store.database import Database, utcnow
from marketplace.store.repository import MarketplaceStore

logger = structlog.get_logger()


class CompletionCoordinator:
    """Confirms the trade happened once both parties have agreed.

    Either participant may confirm.  The request moves ACCEPTED -> COMPLETED
    and the negotiation's ``completed_at`` is refreshed; its status stays
    AGREED.
    """

    def __init__(self, db: Database, lifecycle: RequestLifecycleController) -> None:
        self._db = db
        self._lifecycle = lifecycle
        self._store = MarketplaceStore(db.conn)

    def complete_request(self, request_id: str, negotiation_id: str, caller_id: str) -> Request:
        """Mark *request_id* as COMPLETED.

        Raises:
            NotFoundError: The request does not exist.
            UnauthorizedError: The caller is neither the requester nor the
                accepted offerer.
            InvalidStateError: The request is not ACCEPTED or its negotiation
                is not AGREED.
            ValidationFailedError: *negotiation_id* is not the request's
                negotiation.
        """
        with self._db.transaction():
            request = self._lifecycle.get_or_raise(request_id)
            negotiation = self._store.get_negotiation_for_request(request_id)
            offer = (
                None
                if negotiation is None
                else self._store.get_offer(negotiation.accepted_offer_id)
            )

            is_requester = request.requester_id == caller_id
            is_offerer = offer is not None and offer.offerer_id == caller_id
            if not (is_requester or is_offerer):
                raise UnauthorizedError(
                    "Only the request owner or the accepted offerer can mark this as completed"
                )
            if request.status is not RequestStatus.ACCEPTED:
                raise InvalidStateError("Request must be in accepted status to be completed")
            if negotiation is None or negotiation.status is not NegotiationStatus.AGREED:
                raise InvalidStateError(
                    "Negotiation must be agreed upon before completing the request"
                )
            if negotiation.id != negotiation_id:
                raise ValidationFailedError("Invalid negotiation ID")

            now = utcnow()
            self._lifecycle.apply_event(
                request, RequestEvent.COMPLETED, caller_id, completed_at=now
            )
            if not self._store.transition_negotiation_status(
                negotiation.id,
                NegotiationStatus.AGREED,
                [NegotiationStatus.AGREED],
                completed_at=now,
            ).updated:
                raise ConflictError("Negotiation was changed by another operation")
            completed = self._store.require_request(request_id)

        REQUESTS_COMPLETED.inc()
        logger.info(
            "request_completed",
            request_id=request_id,
            negotiation_id=negotiation_id,
            completed_by=caller_id,
        )
        return completed
