"""Tests for the CLI query interface for the audit trail."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from marketplace.audit.cli import (
    build_parser,
    format_json,
    format_table,
    main,
    parse_last_duration,
)
from marketplace.audit.logger import AuditLogger
from marketplace.store.database import Database


class TestBuildParser:
    def test_accepts_all_arguments(self) -> None:
        args = build_parser().parse_args([
            "--request",
            "r1",
            "--negotiation",
            "n1",
            "--actor",
            "alice",
            "--from-date",
            "2026-01-01",
            "--to-date",
            "2026-02-01",
            "--event-type",
            "offer_created",
            "--last",
            "7d",
            "--format",
            "json",
            "--limit",
            "100",
            "--db",
            "/tmp/test.db",
        ])
        assert args.request == "r1"
        assert args.negotiation == "n1"
        assert args.actor == "alice"
        assert args.event_type == "offer_created"
        assert args.output_format == "json"
        assert args.limit == 100
        assert args.db == "/tmp/test.db"

    def test_default_values(self) -> None:
        args = build_parser().parse_args([])
        assert args.request is None
        assert args.output_format == "table"
        assert args.limit == 50
        assert args.db == "data/marketplace.db"

    def test_rejects_unknown_event_type(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--event-type", "email_sent"])


class TestParseLastDuration:
    def test_converts_7d(self) -> None:
        result = parse_last_duration("7d")
        expected = datetime.now(tz=UTC) - timedelta(days=7)
        result_dt = datetime.strptime(result, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
        assert abs((result_dt - expected).total_seconds()) < 2

    def test_converts_24h(self) -> None:
        result = parse_last_duration("24h")
        expected = datetime.now(tz=UTC) - timedelta(hours=24)
        result_dt = datetime.strptime(result, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=UTC)
        assert abs((result_dt - expected).total_seconds()) < 2

    @pytest.mark.parametrize("bad", ["", "d", "7w", "xd"])
    def test_rejects_bad_format(self, bad: str) -> None:
        with pytest.raises(ValueError, match="Unrecognized duration format"):
            parse_last_duration(bad)


class TestFormatters:
    ROWS = [
        {
            "timestamp": "2026-03-01T10:00:00Z",
            "event_type": "request_status_changed",
            "actor_id": None,
            "request_id": "0123456789abcdef",
            "negotiation_id": None,
            "from_status": "IN_NEGOTIATION",
            "to_status": "OPEN",
        }
    ]

    def test_empty_table(self) -> None:
        assert format_table([]) == "No results found."

    def test_table_shows_transition_and_system_actor(self) -> None:
        output = format_table(self.ROWS)
        lines = output.splitlines()
        assert lines[0].startswith("Timestamp")
        assert "IN_NEGOTIATION -> OPEN" in lines[2]
        assert "system" in lines[2]
        assert "01234567" in lines[2]
        assert "0123456789" not in lines[2]

    def test_json(self) -> None:
        assert json.loads(format_json(self.ROWS)) == self.ROWS


class TestMain:
    def test_prints_json_for_request(self, tmp_path: Path, capsys) -> None:
        db_path = tmp_path / "marketplace.db"
        db = Database.open(db_path)
        audit = AuditLogger(db.conn)
        audit.log_request_created("alice", "r1", "GENERAL")
        audit.log_request_created("bob", "r2", "GENERAL")
        db.conn.close()

        main(["--db", str(db_path), "--request", "r1", "--format", "json"])

        results = json.loads(capsys.readouterr().out)
        assert len(results) == 1
        assert results[0]["actor_id"] == "alice"

    def test_empty_database_prints_no_results(self, tmp_path: Path, capsys) -> None:
        main(["--db", str(tmp_path / "fresh" / "marketplace.db")])
        assert "No results found." in capsys.readouterr().out
