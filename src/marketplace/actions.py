"""Operation-shaped entry points returning tagged results.

``MarketplaceActions`` is the single boundary callers go through.  Every
method returns an :class:`ActionResult`: ``success`` with ``data``, or an
``error`` carrying an :class:`ErrorKind` and a human-readable message.  No
exception crosses this boundary; unexpected failures are logged with their
traceback and reported as ``operation_failed``.

Usage::

    actions = MarketplaceActions(Database.open("data/marketplace.db"))
    result = actions.create_offer("user_2", request_id, {"offered_price": "10"})
    if not result.success:
        print(result.error.kind, result.error.message)
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from marketplace.domain.errors import ErrorKind, MarketplaceError, UnauthorizedError
from marketplace.domain.models import (
    AcceptedOfferSummary,
    CreateOfferInput,
    CreateRequestInput,
    MessageSent,
    NegotiationMessageInput,
    NegotiationView,
    Offer,
    OfferDecision,
    OfferUpdateInput,
    Request,
    RequestDetails,
    RequestPage,
    RequestQuery,
    SearchQuery,
    UpdateRequestInput,
)
from marketplace.services.completion import CompletionCoordinator
from marketplace.services.negotiations import DEFAULT_EXPIRY_DAYS, NegotiationEngine
from marketplace.services.offers import OfferManager
from marketplace.services.requests import ItemCatalog, RequestLifecycleController
from marketplace.store.database import Database

logger = structlog.get_logger()

T = TypeVar("T")

Payload = Mapping[str, Any] | BaseModel


class ActionError(BaseModel):
    kind: ErrorKind
    message: str


class ActionResult(BaseModel, Generic[T]):
    """Tagged outcome of a marketplace action."""

    success: bool
    data: T | None = None
    error: ActionError | None = None

    @classmethod
    def ok(cls, data: T) -> ActionResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> ActionResult[T]:
        return cls(success=False, error=ActionError(kind=kind, message=message))


def _first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Validation error"
    message = str(errors[0].get("msg", "Validation error"))
    return message.removeprefix("Value error, ")


def _payload(data: Payload) -> Any:
    return data.model_dump() if isinstance(data, BaseModel) else dict(data)


class MarketplaceActions:
    """Facade over the four marketplace components.

    Args:
        db: The marketplace database.
        catalog: Optional item catalog for validating ITEM requests.
        expiry_days: Idle days before a negotiation is expired by the sweep.
    """

    def __init__(
        self,
        db: Database,
        *,
        catalog: ItemCatalog | None = None,
        expiry_days: int = DEFAULT_EXPIRY_DAYS,
    ) -> None:
        self.db = db
        self.lifecycle = RequestLifecycleController(db, catalog=catalog)
        self.offers = OfferManager(db, self.lifecycle)
        self.negotiations = NegotiationEngine(db, self.lifecycle, expiry_days=expiry_days)
        self.completion = CompletionCoordinator(db, self.lifecycle)

    def _run(self, operation: str, fn: Callable[[], T]) -> ActionResult[T]:
        try:
            return ActionResult.ok(fn())
        except ValidationError as exc:
            message = _first_error_message(exc)
            logger.info("action_invalid_input", operation=operation, detail=message)
            return ActionResult.fail(ErrorKind.VALIDATION_ERROR, message)
        except MarketplaceError as exc:
            logger.info(
                "action_rejected",
                operation=operation,
                kind=exc.kind.value,
                detail=exc.message,
            )
            return ActionResult.fail(exc.kind, exc.message)
        except Exception:
            logger.exception("action_failed", operation=operation)
            return ActionResult.fail(
                ErrorKind.OPERATION_FAILED, f"Failed to {operation.replace('_', ' ')}"
            )

    @staticmethod
    def _caller(caller_id: str | None) -> str:
        if not caller_id:
            raise UnauthorizedError("Authentication required")
        return caller_id

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def create_request(self, caller_id: str | None, data: Payload) -> ActionResult[Request]:
        return self._run(
            "create_request",
            lambda: self.lifecycle.create_request(
                self._caller(caller_id), CreateRequestInput.model_validate(_payload(data))
            ),
        )

    def update_request(
        self, caller_id: str | None, request_id: str, data: Payload
    ) -> ActionResult[Request]:
        return self._run(
            "update_request",
            lambda: self.lifecycle.update_request(
                request_id,
                self._caller(caller_id),
                UpdateRequestInput.model_validate(_payload(data)),
            ),
        )

    def cancel_request(self, caller_id: str | None, request_id: str) -> ActionResult[Request]:
        return self._run(
            "cancel_request",
            lambda: self.lifecycle.cancel_request(request_id, self._caller(caller_id)),
        )

    def get_request_details(self, request_id: str) -> ActionResult[RequestDetails]:
        return self._run(
            "get_request_details", lambda: self.lifecycle.get_request_details(request_id)
        )

    def list_requests(self, query: Payload | None = None) -> ActionResult[RequestPage]:
        return self._run(
            "list_requests",
            lambda: self.lifecycle.list_requests(
                RequestQuery.model_validate(_payload(query or {}))
            ),
        )

    def search_requests(self, query: Payload) -> ActionResult[RequestPage]:
        return self._run(
            "search_requests",
            lambda: self.lifecycle.search_requests(SearchQuery.model_validate(_payload(query))),
        )

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def create_offer(
        self, caller_id: str | None, request_id: str, data: Payload
    ) -> ActionResult[Offer]:
        return self._run(
            "create_offer",
            lambda: self.offers.create_offer(
                request_id,
                self._caller(caller_id),
                CreateOfferInput.model_validate(_payload(data)),
            ),
        )

    def update_offer(
        self, caller_id: str | None, offer_id: str, data: Payload
    ) -> ActionResult[OfferDecision]:
        return self._run(
            "update_offer",
            lambda: self.offers.update_offer(
                offer_id,
                self._caller(caller_id),
                OfferUpdateInput.model_validate(_payload(data)),
            ),
        )

    def get_offers(self, caller_id: str | None, request_id: str) -> ActionResult[list[Offer]]:
        return self._run(
            "get_offers",
            lambda: self.offers.get_offers(request_id, self._caller(caller_id)),
        )

    def get_user_accepted_offers(
        self, caller_id: str | None
    ) -> ActionResult[list[AcceptedOfferSummary]]:
        return self._run(
            "get_user_accepted_offers",
            lambda: self.offers.get_user_accepted_offers(self._caller(caller_id)),
        )

    # ------------------------------------------------------------------
    # Negotiations
    # ------------------------------------------------------------------

    def send_negotiation_message(
        self, caller_id: str | None, negotiation_id: str, data: Payload
    ) -> ActionResult[MessageSent]:
        return self._run(
            "send_negotiation_message",
            lambda: self.negotiations.send_message(
                negotiation_id,
                self._caller(caller_id),
                NegotiationMessageInput.model_validate(_payload(data)),
            ),
        )

    def get_negotiation(
        self, caller_id: str | None, negotiation_id: str
    ) -> ActionResult[NegotiationView]:
        return self._run(
            "get_negotiation",
            lambda: self.negotiations.get_negotiation(negotiation_id, self._caller(caller_id)),
        )

    def get_negotiation_by_request(
        self, caller_id: str | None, request_id: str
    ) -> ActionResult[NegotiationView | None]:
        return self._run(
            "get_negotiation",
            lambda: self.negotiations.get_negotiation_by_request(
                request_id, self._caller(caller_id)
            ),
        )

    def expire_stale_negotiations(self, now: datetime | None = None) -> ActionResult[list[str]]:
        return self._run(
            "expire_stale_negotiations",
            lambda: self.negotiations.expire_stale_negotiations(now),
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete_request(
        self, caller_id: str | None, request_id: str, negotiation_id: str
    ) -> ActionResult[Request]:
        return self._run(
            "complete_request",
            lambda: self.completion.complete_request(
                request_id, negotiation_id, self._caller(caller_id)
            ),
        )
