"""Request lifecycle controller.

The only component that writes ``Request.status``.  Other components call
:meth:`RequestLifecycleController.apply_event` from inside their own
transaction; the event is checked against the transition map and then
applied with a conditional update, so a request that moved concurrently is
reported as a conflict instead of being overwritten.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

import structlog

from marketplace.audit.logger import AuditLogger
from marketplace.domain.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailedError,
)
from marketplace.domain.models import (
    CreateRequestInput,
    Request,
    RequestDetails,
    RequestPage,
    RequestQuery,
    SearchQuery,
    UpdateRequestInput,
)
from marketplace.domain.types import Currency, RequestStatus
from marketplace.state_machine import RequestEvent, RequestStateMachine, sources_for
from marketplace.store.database import Database
from marketplace.store.repository import MarketplaceStore

logger = structlog.get_logger()


class ItemCatalog(Protocol):
    """Lookup into the external item catalog."""

    def item_exists(self, item_id: str) -> bool: ...


class RequestLifecycleController:
    """Owns request creation, editing, cancellation, and status transitions.

    Args:
        db: The marketplace database.
        catalog: Optional item catalog used to reject unknown item ids.
    """

    def __init__(self, db: Database, catalog: ItemCatalog | None = None) -> None:
        self._db = db
        self._store = MarketplaceStore(db.conn)
        self._audit = AuditLogger(db.conn)
        self._catalog = catalog

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def apply_event(
        self,
        request: Request,
        event: RequestEvent,
        actor_id: str | None,
        *,
        completed_at: datetime | None = None,
        currency: Currency | None = None,
    ) -> RequestStatus:
        """Move *request* along the lifecycle.  Must run inside a transaction.

        Args:
            request: The request as read inside the current transaction.
            event: The lifecycle event to apply.
            actor_id: The user causing the event, ``None`` for system sweeps.
            completed_at: Stamp for ``completed_at`` on the request.
            currency: Currency to copy onto the request (agreement only).

        Returns:
            The request's new status.

        Raises:
            InvalidTransitionError: If *event* is not legal from the
                request's status.
            ConflictError: If the row no longer holds a status *event* can
                leave from.
        """
        machine = RequestStateMachine(request.status)
        to_status = machine.trigger(event)

        result = self._store.transition_request_status(
            request.id,
            to_status,
            sources_for(event),
            completed_at=completed_at,
            currency=currency,
        )
        if not result.updated:
            logger.warning(
                "request_transition_conflict",
                request_id=request.id,
                lifecycle_event=str(event),
                expected=request.status.value,
            )
            raise ConflictError("Request status was changed by another operation")

        self._audit.log_request_transition(
            actor_id, request.id, request.status.value, to_status.value, str(event)
        )
        logger.info(
            "request_transition",
            request_id=request.id,
            from_status=request.status.value,
            to_status=to_status.value,
            lifecycle_event=str(event),
        )
        return to_status

    def get_or_raise(self, request_id: str) -> Request:
        request = self._store.get_request(request_id)
        if request is None:
            raise NotFoundError("Request not found")
        return request

    # ------------------------------------------------------------------
    # Request writes
    # ------------------------------------------------------------------

    def create_request(self, requester_id: str, data: CreateRequestInput) -> Request:
        """Post a new OPEN request.

        Raises:
            NotFoundError: If a catalog is configured and the item is unknown.
        """
        catalog = self._catalog
        if data.item_id and catalog is not None and not catalog.item_exists(data.item_id):
            raise NotFoundError("Item not found")

        with self._db.transaction():
            request = self._store.insert_request(requester_id, data)
            self._audit.log_request_created(requester_id, request.id, request.request_type.value)

        logger.info(
            "request_created",
            request_id=request.id,
            requester_id=requester_id,
            request_type=request.request_type.value,
        )
        return request

    def update_request(
        self, request_id: str, caller_id: str, data: UpdateRequestInput
    ) -> Request:
        """Edit an OPEN request's title, description, price, or currency."""
        changes = data.changes()
        if not changes:
            raise ValidationFailedError("No fields to update")

        with self._db.transaction():
            request = self.get_or_raise(request_id)
            if request.requester_id != caller_id:
                raise UnauthorizedError("Not authorized to update this request")
            if request.status is not RequestStatus.OPEN:
                raise InvalidStateError("Cannot update request in current status")

            if not self._store.update_request_fields(request_id, changes, [RequestStatus.OPEN]):
                raise ConflictError("Request status was changed by another operation")
            self._audit.log_request_updated(caller_id, request_id, list(changes))
            updated = self._store.require_request(request_id)

        logger.info("request_updated", request_id=request_id, fields=sorted(changes))
        return updated

    def cancel_request(self, request_id: str, caller_id: str) -> Request:
        """Withdraw an OPEN request.  Only the requester may cancel."""
        with self._db.transaction():
            request = self.get_or_raise(request_id)
            if request.requester_id != caller_id:
                raise UnauthorizedError("Not authorized to cancel this request")
            if request.status is not RequestStatus.OPEN:
                raise InvalidStateError("Only open requests can be cancelled")

            self.apply_event(request, RequestEvent.CANCELLED, caller_id)
            return self._store.require_request(request_id)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_request_details(self, request_id: str) -> RequestDetails:
        """Return a request with its offers and negotiation thread."""
        with self._db.transaction():
            request = self.get_or_raise(request_id)
            offers = self._store.list_offers(request_id)
            negotiation = self._store.get_negotiation_for_request(request_id)
            messages = [] if negotiation is None else self._store.list_messages(negotiation.id)

        return RequestDetails(
            request=request, offers=offers, negotiation=negotiation, messages=messages
        )

    def list_requests(self, query: RequestQuery) -> RequestPage:
        with self._db.transaction():
            requests, total = self._store.list_requests(query)
        return RequestPage(
            requests=requests,
            total=total,
            has_more=query.offset + len(requests) < total,
        )

    def search_requests(self, query: SearchQuery) -> RequestPage:
        with self._db.transaction():
            requests, total = self._store.search_requests(query)
        return RequestPage(
            requests=requests,
            total=total,
            has_more=query.offset + len(requests) < total,
        )
