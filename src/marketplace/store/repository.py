"""Row-level access to requests, offers, negotiations, and messages.

Every status write goes through a conditional UPDATE of the form::

    UPDATE <table> SET status = :to_status, ...
    WHERE id = :id AND status IN (:allowed_from)

and reports whether the row actually moved, so a writer acting on a stale
read can never overwrite a concurrent transition.  Callers own the
transaction (see ``Database.transaction``); nothing here commits.
"""

from __future__ import annotations

import sqlite3
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from marketplace.domain.models import (
    CreateOfferInput,
    CreateRequestInput,
    Negotiation,
    NegotiationMessage,
    NegotiationMessageInput,
    Offer,
    Request,
    RequestQuery,
    SearchQuery,
)
from marketplace.domain.types import (
    LIVE_NEGOTIATION_STATUSES,
    Currency,
    NegotiationStatus,
    OfferStatus,
    RequestStatus,
)
from marketplace.store.database import to_db_time, utcnow

_ORDER_COLUMNS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "suggested_price": "CAST(suggested_price AS REAL)",
}


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def new_id() -> str:
    """Return a fresh opaque entity id."""
    return uuid.uuid4().hex


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _placeholders(values: Iterable[Any]) -> tuple[str, list[Any]]:
    items = list(values)
    return ", ".join("?" for _ in items), items


class MarketplaceStore:
    """Queries and conditional writes over the marketplace tables.

    Args:
        conn: The shared marketplace connection.  Rows come back as
              ``sqlite3.Row`` and are validated into domain models.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    # ------------------------------------------------------------------
    # Generic helpers
    # ------------------------------------------------------------------

    def _transition(
        self,
        table: str,
        entity_id: str,
        to_status: str,
        allowed_from: Iterable[str],
        updates: dict[str, Any] | None = None,
    ) -> TransitionResult:
        values: dict[str, Any] = {"status": str(to_status), "updated_at": to_db_time(utcnow())}
        if updates:
            values.update(updates)

        assignments = ", ".join(f"{column} = ?" for column in values)
        marks, sources = _placeholders(str(s) for s in allowed_from)
        cursor = self._conn.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ? AND status IN ({marks})",
            [*values.values(), entity_id, *sources],
        )
        return TransitionResult(updated=cursor.rowcount > 0, rowcount=cursor.rowcount)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def insert_request(self, requester_id: str, data: CreateRequestInput) -> Request:
        """Insert a new OPEN request and return it."""
        now = to_db_time(utcnow())
        request_id = new_id()
        self._conn.execute(
            """
            INSERT INTO requests (
                id, requester_id, title, description, request_type, item_id,
                item_quantity, suggested_price, currency, status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                request_id,
                requester_id,
                data.title,
                data.description,
                data.request_type.value,
                data.item_id,
                data.item_quantity,
                _money(data.suggested_price),
                data.currency.value,
                RequestStatus.OPEN.value,
                now,
                now,
            ),
        )
        return self.require_request(request_id)

    def get_request(self, request_id: str) -> Request | None:
        row = self._conn.execute("SELECT * FROM requests WHERE id = ?", (request_id,)).fetchone()
        return None if row is None else Request.model_validate(dict(row))

    def require_request(self, request_id: str) -> Request:
        """Like :meth:`get_request` but for ids known to exist."""
        request = self.get_request(request_id)
        if request is None:
            raise LookupError(f"request {request_id} vanished inside its transaction")
        return request

    def update_request_fields(
        self, request_id: str, changes: dict[str, Any], allowed_from: Iterable[RequestStatus]
    ) -> bool:
        """Apply field edits while the request is in one of *allowed_from*."""
        values = {
            key: _money(value) if key == "suggested_price" else str(value)
            for key, value in changes.items()
        }
        values["updated_at"] = to_db_time(utcnow())
        assignments = ", ".join(f"{column} = ?" for column in values)
        marks, sources = _placeholders(str(s) for s in allowed_from)
        cursor = self._conn.execute(
            f"UPDATE requests SET {assignments} WHERE id = ? AND status IN ({marks})",
            [*values.values(), request_id, *sources],
        )
        return cursor.rowcount > 0

    def transition_request_status(
        self,
        request_id: str,
        to_status: RequestStatus,
        allowed_from: Iterable[RequestStatus],
        *,
        completed_at: datetime | None = None,
        currency: Currency | None = None,
    ) -> TransitionResult:
        """Move a request's status with an atomic guard on its current status."""
        updates: dict[str, Any] = {}
        if completed_at is not None:
            updates["completed_at"] = to_db_time(completed_at)
        if currency is not None:
            updates["currency"] = currency.value
        return self._transition("requests", request_id, to_status, allowed_from, updates)

    def list_requests(self, query: RequestQuery) -> tuple[list[Request], int]:
        """Return one page of requests matching *query* and the total count."""
        conditions: list[str] = []
        params: list[Any] = []
        for column, value in (
            ("status", query.status),
            ("request_type", query.request_type),
            ("requester_id", query.requester_id),
            ("item_id", query.item_id),
        ):
            if value is not None:
                conditions.append(f"{column} = ?")
                params.append(str(value))

        where_clause = "WHERE " + " AND ".join(conditions) if conditions else ""
        order = f"{_ORDER_COLUMNS[query.order_by]} {query.order_direction.upper()}"
        return self._page(where_clause, params, order, query.limit, query.offset)

    def search_requests(self, query: SearchQuery) -> tuple[list[Request], int]:
        """Case-insensitive substring search over OPEN requests."""
        pattern = f"%{query.query.lower()}%"
        conditions = [
            "status = ?",
            "(LOWER(title) LIKE ? OR LOWER(description) LIKE ?)",
        ]
        params: list[Any] = [RequestStatus.OPEN.value, pattern, pattern]
        if query.request_type is not None:
            conditions.append("request_type = ?")
            params.append(query.request_type.value)

        where_clause = "WHERE " + " AND ".join(conditions)
        return self._page(where_clause, params, "created_at DESC", query.limit, query.offset)

    def _page(
        self, where_clause: str, params: list[Any], order: str, limit: int, offset: int
    ) -> tuple[list[Request], int]:
        total = self._conn.execute(
            f"SELECT COUNT(*) FROM requests {where_clause}", params
        ).fetchone()[0]
        rows = self._conn.execute(
            f"SELECT * FROM requests {where_clause} ORDER BY {order}, id LIMIT ? OFFSET ?",
            [*params, limit, offset],
        ).fetchall()
        return [Request.model_validate(dict(row)) for row in rows], int(total)

    # ------------------------------------------------------------------
    # Offers
    # ------------------------------------------------------------------

    def insert_offer(self, request_id: str, offerer_id: str, data: CreateOfferInput) -> Offer:
        """Insert a PENDING offer.

        Raises:
            sqlite3.IntegrityError: If the offerer already has a PENDING
                offer on this request.
        """
        now = to_db_time(utcnow())
        offer_id = new_id()
        self._conn.execute(
            """
            INSERT INTO offers (
                id, request_id, offerer_id, offered_price, currency, message,
                status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                offer_id,
                request_id,
                offerer_id,
                _money(data.offered_price),
                data.currency.value,
                data.message,
                OfferStatus.PENDING.value,
                now,
                now,
            ),
        )
        offer = self.get_offer(offer_id)
        assert offer is not None
        return offer

    def get_offer(self, offer_id: str) -> Offer | None:
        row = self._conn.execute("SELECT * FROM offers WHERE id = ?", (offer_id,)).fetchone()
        return None if row is None else Offer.model_validate(dict(row))

    def find_pending_offer(self, request_id: str, offerer_id: str) -> Offer | None:
        row = self._conn.execute(
            "SELECT * FROM offers WHERE request_id = ? AND offerer_id = ? AND status = ?",
            (request_id, offerer_id, OfferStatus.PENDING.value),
        ).fetchone()
        return None if row is None else Offer.model_validate(dict(row))

    def list_offers(self, request_id: str, offerer_id: str | None = None) -> list[Offer]:
        """Offers on a request, newest first, optionally only one offerer's."""
        sql = "SELECT * FROM offers WHERE request_id = ?"
        params: list[Any] = [request_id]
        if offerer_id is not None:
            sql += " AND offerer_id = ?"
            params.append(offerer_id)
        rows = self._conn.execute(sql + " ORDER BY created_at DESC, id", params).fetchall()
        return [Offer.model_validate(dict(row)) for row in rows]

    def list_pending_offers(self, request_id: str, exclude_offer_id: str) -> list[Offer]:
        rows = self._conn.execute(
            "SELECT * FROM offers WHERE request_id = ? AND status = ? AND id != ?",
            (request_id, OfferStatus.PENDING.value, exclude_offer_id),
        ).fetchall()
        return [Offer.model_validate(dict(row)) for row in rows]

    def transition_offer_status(
        self, offer_id: str, to_status: OfferStatus, allowed_from: Iterable[OfferStatus]
    ) -> TransitionResult:
        """Move an offer's status with an atomic guard on its current status."""
        return self._transition("offers", offer_id, to_status, allowed_from)

    def reject_pending_offers(self, request_id: str, exclude_offer_id: str) -> int:
        """Reject every other PENDING offer on *request_id*.  Returns the count."""
        cursor = self._conn.execute(
            """
            UPDATE offers SET status = ?, updated_at = ?
            WHERE request_id = ? AND id != ? AND status = ?
            """,
            (
                OfferStatus.REJECTED.value,
                to_db_time(utcnow()),
                request_id,
                exclude_offer_id,
                OfferStatus.PENDING.value,
            ),
        )
        return cursor.rowcount

    def count_accepted_offers(self, request_id: str) -> int:
        return int(
            self._conn.execute(
                "SELECT COUNT(*) FROM offers WHERE request_id = ? AND status = ?",
                (request_id, OfferStatus.ACCEPTED.value),
            ).fetchone()[0]
        )

    def accepted_offers_for_user(self, offerer_id: str) -> list[Offer]:
        rows = self._conn.execute(
            "SELECT * FROM offers WHERE offerer_id = ? AND status = ? ORDER BY updated_at DESC",
            (offerer_id, OfferStatus.ACCEPTED.value),
        ).fetchall()
        return [Offer.model_validate(dict(row)) for row in rows]

    # ------------------------------------------------------------------
    # Negotiations
    # ------------------------------------------------------------------

    def insert_negotiation(self, offer: Offer) -> Negotiation:
        """Open an IN_PROGRESS negotiation seeded with the offer's terms.

        Raises:
            sqlite3.IntegrityError: If the request already has a live
                negotiation.
        """
        now = to_db_time(utcnow())
        negotiation_id = new_id()
        self._conn.execute(
            """
            INSERT INTO negotiations (
                id, request_id, accepted_offer_id, final_price, currency,
                status, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                negotiation_id,
                offer.request_id,
                offer.id,
                _money(offer.offered_price),
                offer.currency.value,
                NegotiationStatus.IN_PROGRESS.value,
                now,
                now,
            ),
        )
        negotiation = self.get_negotiation(negotiation_id)
        assert negotiation is not None
        return negotiation

    def get_negotiation(self, negotiation_id: str) -> Negotiation | None:
        row = self._conn.execute(
            "SELECT * FROM negotiations WHERE id = ?", (negotiation_id,)
        ).fetchone()
        return None if row is None else Negotiation.model_validate(dict(row))

    def get_negotiation_for_request(self, request_id: str) -> Negotiation | None:
        """The request's live negotiation, else its most recent failed one."""
        live_marks, live = _placeholders(s.value for s in LIVE_NEGOTIATION_STATUSES)
        row = self._conn.execute(
            f"""
            SELECT * FROM negotiations WHERE request_id = ?
            ORDER BY (status IN ({live_marks})) DESC, created_at DESC
            LIMIT 1
            """,
            [request_id, *live],
        ).fetchone()
        return None if row is None else Negotiation.model_validate(dict(row))

    def get_negotiation_for_offer(self, offer_id: str) -> Negotiation | None:
        row = self._conn.execute(
            "SELECT * FROM negotiations WHERE accepted_offer_id = ?", (offer_id,)
        ).fetchone()
        return None if row is None else Negotiation.model_validate(dict(row))

    def update_negotiation_terms(
        self, negotiation_id: str, price: Decimal | None, currency: Currency | None
    ) -> bool:
        """Put new terms on the table while the negotiation is IN_PROGRESS."""
        values: dict[str, Any] = {
            "final_price": _money(price),
            "updated_at": to_db_time(utcnow()),
        }
        if currency is not None:
            values["currency"] = currency.value
        assignments = ", ".join(f"{column} = ?" for column in values)
        cursor = self._conn.execute(
            f"UPDATE negotiations SET {assignments} WHERE id = ? AND status = ?",
            [*values.values(), negotiation_id, NegotiationStatus.IN_PROGRESS.value],
        )
        return cursor.rowcount > 0

    def transition_negotiation_status(
        self,
        negotiation_id: str,
        to_status: NegotiationStatus,
        allowed_from: Iterable[NegotiationStatus],
        *,
        completed_at: datetime | None = None,
    ) -> TransitionResult:
        """Move a negotiation's status with an atomic guard on its current status."""
        updates: dict[str, Any] = {}
        if completed_at is not None:
            updates["completed_at"] = to_db_time(completed_at)
        return self._transition("negotiations", negotiation_id, to_status, allowed_from, updates)

    def stale_negotiation_ids(self, cutoff: datetime) -> list[str]:
        """IN_PROGRESS negotiations with no activity since *cutoff*."""
        rows = self._conn.execute(
            """
            SELECT n.id
            FROM negotiations n
            LEFT JOIN negotiation_messages m ON m.negotiation_id = n.id
            WHERE n.status = ?
            GROUP BY n.id
            HAVING COALESCE(MAX(m.created_at), n.created_at) < ?
            ORDER BY n.created_at
            """,
            (NegotiationStatus.IN_PROGRESS.value, to_db_time(cutoff)),
        ).fetchall()
        return [row["id"] for row in rows]

    def count_negotiations(self, status: NegotiationStatus) -> int:
        return int(
            self._conn.execute(
                "SELECT COUNT(*) FROM negotiations WHERE status = ?", (status.value,)
            ).fetchone()[0]
        )

    def is_stale(self, negotiation_id: str, cutoff: datetime) -> bool:
        """Whether the negotiation has had no activity since *cutoff*."""
        row = self._conn.execute(
            """
            SELECT COALESCE(MAX(m.created_at), n.created_at) AS last_activity
            FROM negotiations n
            LEFT JOIN negotiation_messages m ON m.negotiation_id = n.id
            WHERE n.id = ?
            GROUP BY n.id
            """,
            (negotiation_id,),
        ).fetchone()
        return row is not None and row["last_activity"] < to_db_time(cutoff)

    # ------------------------------------------------------------------
    # Messages and acceptances
    # ------------------------------------------------------------------

    def insert_message(
        self,
        negotiation_id: str,
        sender_id: str,
        data: NegotiationMessageInput,
        *,
        price_offer: Decimal | None = None,
        currency: Currency | None = None,
    ) -> NegotiationMessage:
        """Append a message to the negotiation log.

        *price_offer* and *currency* override the input's values; ACCEPT
        messages use them to record the terms that were accepted.
        """
        message_id = new_id()
        price = price_offer if price_offer is not None else data.price_offer
        money_currency = currency if currency is not None else data.currency
        self._conn.execute(
            """
            INSERT INTO negotiation_messages (
                id, negotiation_id, sender_id, message_type, content,
                price_offer, currency, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message_id,
                negotiation_id,
                sender_id,
                data.message_type.value,
                data.content,
                _money(price),
                None if money_currency is None else money_currency.value,
                to_db_time(utcnow()),
            ),
        )
        row = self._conn.execute(
            "SELECT * FROM negotiation_messages WHERE id = ?", (message_id,)
        ).fetchone()
        return NegotiationMessage.model_validate(dict(row))

    def list_messages(self, negotiation_id: str) -> list[NegotiationMessage]:
        """The negotiation's log in creation order."""
        rows = self._conn.execute(
            "SELECT * FROM negotiation_messages WHERE negotiation_id = ? ORDER BY seq",
            (negotiation_id,),
        ).fetchall()
        return [NegotiationMessage.model_validate(dict(row)) for row in rows]

    def record_acceptance(self, negotiation_id: str, participant_id: str, message_id: str) -> bool:
        """Mark *participant_id* as having accepted.

        Returns:
            ``False`` if the participant had already accepted.
        """
        try:
            self._conn.execute(
                """
                INSERT INTO negotiation_acceptances (
                    negotiation_id, participant_id, message_id, accepted_at
                ) VALUES (?, ?, ?, ?)
                """,
                (negotiation_id, participant_id, message_id, to_db_time(utcnow())),
            )
        except sqlite3.IntegrityError:
            return False
        return True

    def accepted_participants(self, negotiation_id: str) -> set[str]:
        rows = self._conn.execute(
            "SELECT participant_id FROM negotiation_acceptances WHERE negotiation_id = ?",
            (negotiation_id,),
        ).fetchall()
        return {row["participant_id"] for row in rows}
