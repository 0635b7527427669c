"""Convenience class for inserting audit trail entries.

Each method builds a properly structured :class:`AuditEntry` and inserts it
via :func:`insert_audit_entry` on the shared connection, so the entry commits
or rolls back together with the change it describes.
"""

from __future__ import annotations

import sqlite3

from marketplace.audit.models import AuditEntry, EventType
from marketplace.audit.store import insert_audit_entry


class AuditLogger:
    """Typed convenience API for inserting audit entries.

    Args:
        conn: The marketplace database connection.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def log_request_created(self, actor_id: str, request_id: str, request_type: str) -> int:
        """Log a newly posted request."""
        entry = AuditEntry(
            event_type=EventType.REQUEST_CREATED,
            actor_id=actor_id,
            request_id=request_id,
            to_status="OPEN",
            metadata={"request_type": request_type},
        )
        return insert_audit_entry(self._conn, entry)

    def log_request_updated(self, actor_id: str, request_id: str, fields: list[str]) -> int:
        """Log an edit of an open request's fields."""
        entry = AuditEntry(
            event_type=EventType.REQUEST_UPDATED,
            actor_id=actor_id,
            request_id=request_id,
            metadata={"fields": ",".join(sorted(fields))},
        )
        return insert_audit_entry(self._conn, entry)

    def log_request_transition(
        self,
        actor_id: str | None,
        request_id: str,
        from_status: str,
        to_status: str,
        event: str,
    ) -> int:
        """Log a request lifecycle transition.

        Args:
            actor_id: The user who caused it, ``None`` for system sweeps.
            request_id: The request that moved.
            from_status: Status before the transition.
            to_status: Status after the transition.
            event: The lifecycle event that was applied.

        Returns:
            The row ID of the inserted audit entry.
        """
        entry = AuditEntry(
            event_type=EventType.REQUEST_STATUS_CHANGED,
            actor_id=actor_id,
            request_id=request_id,
            from_status=from_status,
            to_status=to_status,
            metadata={"event": event},
        )
        return insert_audit_entry(self._conn, entry)

    def log_offer_created(self, actor_id: str, request_id: str, offer_id: str) -> int:
        """Log a new PENDING offer."""
        entry = AuditEntry(
            event_type=EventType.OFFER_CREATED,
            actor_id=actor_id,
            request_id=request_id,
            offer_id=offer_id,
            to_status="PENDING",
        )
        return insert_audit_entry(self._conn, entry)

    def log_offer_transition(
        self,
        actor_id: str | None,
        request_id: str,
        offer_id: str,
        from_status: str,
        to_status: str,
    ) -> int:
        """Log an offer status change, including cascaded rejections."""
        entry = AuditEntry(
            event_type=EventType.OFFER_STATUS_CHANGED,
            actor_id=actor_id,
            request_id=request_id,
            offer_id=offer_id,
            from_status=from_status,
            to_status=to_status,
        )
        return insert_audit_entry(self._conn, entry)

    def log_negotiation_opened(
        self, actor_id: str, request_id: str, offer_id: str, negotiation_id: str
    ) -> int:
        """Log the negotiation created by an offer acceptance."""
        entry = AuditEntry(
            event_type=EventType.NEGOTIATION_OPENED,
            actor_id=actor_id,
            request_id=request_id,
            offer_id=offer_id,
            negotiation_id=negotiation_id,
            to_status="IN_PROGRESS",
        )
        return insert_audit_entry(self._conn, entry)

    def log_message(
        self,
        actor_id: str,
        request_id: str,
        negotiation_id: str,
        message_id: str,
        message_type: str,
    ) -> int:
        """Log a message appended to a negotiation."""
        entry = AuditEntry(
            event_type=EventType.NEGOTIATION_MESSAGE,
            actor_id=actor_id,
            request_id=request_id,
            negotiation_id=negotiation_id,
            metadata={"message_id": message_id, "message_type": message_type},
        )
        return insert_audit_entry(self._conn, entry)

    def log_negotiation_transition(
        self,
        actor_id: str | None,
        request_id: str,
        negotiation_id: str,
        from_status: str,
        to_status: str,
        reason: str,
    ) -> int:
        """Log a negotiation status change (agreement, rejection, expiry)."""
        entry = AuditEntry(
            event_type=EventType.NEGOTIATION_STATUS_CHANGED,
            actor_id=actor_id,
            request_id=request_id,
            negotiation_id=negotiation_id,
            from_status=from_status,
            to_status=to_status,
            metadata={"reason": reason},
        )
        return insert_audit_entry(self._conn, entry)
