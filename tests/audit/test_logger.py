"""Tests for AuditLogger convenience methods."""

from marketplace.audit.logger import AuditLogger
from marketplace.audit.store import query_audit_trail
from marketplace.store.database import Database


class TestAuditLogger:
    """Each method writes one correctly shaped row."""

    def test_log_request_created(self, db: Database) -> None:
        row_id = AuditLogger(db.conn).log_request_created("alice", "r1", "ITEM")
        assert row_id > 0
        [row] = query_audit_trail(db.conn, request_id="r1")
        assert row["event_type"] == "request_created"
        assert row["actor_id"] == "alice"
        assert row["to_status"] == "OPEN"
        assert row["metadata"] == {"request_type": "ITEM"}

    def test_log_request_updated_sorts_fields(self, db: Database) -> None:
        AuditLogger(db.conn).log_request_updated("alice", "r1", ["title", "currency"])
        [row] = query_audit_trail(db.conn, request_id="r1")
        assert row["metadata"] == {"fields": "currency,title"}

    def test_log_request_transition(self, db: Database) -> None:
        AuditLogger(db.conn).log_request_transition(
            None, "r1", "IN_NEGOTIATION", "OPEN", "negotiation_failed"
        )
        [row] = query_audit_trail(db.conn, event_type="request_status_changed")
        assert row["actor_id"] is None
        assert row["from_status"] == "IN_NEGOTIATION"
        assert row["to_status"] == "OPEN"
        assert row["metadata"] == {"event": "negotiation_failed"}

    def test_log_offer_created_and_transition(self, db: Database) -> None:
        audit = AuditLogger(db.conn)
        audit.log_offer_created("bob", "r1", "o1")
        audit.log_offer_transition("alice", "r1", "o1", "PENDING", "ACCEPTED")
        rows = query_audit_trail(db.conn, request_id="r1")
        assert {r["event_type"] for r in rows} == {"offer_created", "offer_status_changed"}
        assert all(r["offer_id"] == "o1" for r in rows)

    def test_log_negotiation_opened(self, db: Database) -> None:
        AuditLogger(db.conn).log_negotiation_opened("alice", "r1", "o1", "n1")
        [row] = query_audit_trail(db.conn, negotiation_id="n1")
        assert row["event_type"] == "negotiation_opened"
        assert row["offer_id"] == "o1"
        assert row["to_status"] == "IN_PROGRESS"

    def test_log_message(self, db: Database) -> None:
        AuditLogger(db.conn).log_message("bob", "r1", "n1", "m1", "COUNTER_OFFER")
        [row] = query_audit_trail(db.conn, negotiation_id="n1")
        assert row["metadata"] == {"message_id": "m1", "message_type": "COUNTER_OFFER"}

    def test_log_negotiation_transition(self, db: Database) -> None:
        AuditLogger(db.conn).log_negotiation_transition(
            "bob", "r1", "n1", "IN_PROGRESS", "AGREED", "both_accepted"
        )
        [row] = query_audit_trail(db.conn, negotiation_id="n1")
        assert row["event_type"] == "negotiation_status_changed"
        assert row["metadata"] == {"reason": "both_accepted"}

    def test_rows_roll_back_with_their_transaction(self, db: Database) -> None:
        try:
            with db.transaction():
                AuditLogger(db.conn).log_request_created("alice", "r1", "GENERAL")
                raise RuntimeError("abort")
        except RuntimeError:
            pass
        assert query_audit_trail(db.conn) == []
