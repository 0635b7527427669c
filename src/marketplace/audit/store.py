"""SQLite-backed audit trail store with indexed queries.

Audit rows are written on the same connection, and inside the same
transaction, as the state change they record: ``insert_audit_entry`` never
commits on its own.  Uses parameterized queries exclusively.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime
from typing import Any

from marketplace.audit.models import AuditEntry


def init_audit_table(conn: sqlite3.Connection) -> None:
    """Create the audit_log table and its indexes if they do not already exist.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            event_type TEXT NOT NULL,
            actor_id TEXT,
            request_id TEXT,
            offer_id TEXT,
            negotiation_id TEXT,
            from_status TEXT,
            to_status TEXT,
            metadata TEXT
        )
    """)

    conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_request ON audit_log (request_id)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_audit_negotiation ON audit_log (negotiation_id)"
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_audit_timestamp ON audit_log (timestamp)")


def insert_audit_entry(conn: sqlite3.Connection, entry: AuditEntry) -> int:
    """Insert an audit entry without committing.

    Args:
        conn: An open database connection, normally inside a transaction.
        entry: The audit entry to insert.

    Returns:
        The row ID of the inserted entry.
    """
    metadata_json: str | None = None
    if entry.metadata is not None:
        metadata_json = json.dumps(entry.metadata)

    timestamp = datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")

    cursor = conn.execute(
        """
        INSERT INTO audit_log (
            timestamp, event_type, actor_id, request_id, offer_id,
            negotiation_id, from_status, to_status, metadata
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            timestamp,
            entry.event_type.value,
            entry.actor_id,
            entry.request_id,
            entry.offer_id,
            entry.negotiation_id,
            entry.from_status,
            entry.to_status,
            metadata_json,
        ),
    )
    return cursor.lastrowid or 0


def query_audit_trail(
    conn: sqlite3.Connection,
    *,
    request_id: str | None = None,
    negotiation_id: str | None = None,
    actor_id: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    event_type: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Query the audit trail with flexible filtering.

    All filters are optional.  Results are ordered newest first.

    Args:
        conn: An open database connection.
        request_id: Filter by request ID (exact match).
        negotiation_id: Filter by negotiation ID (exact match).
        actor_id: Filter by the user who caused the event.
        from_date: Filter entries on or after this ISO 8601 date.
        to_date: Filter entries on or before this ISO 8601 date.
        event_type: Filter by event type (exact match).
        limit: Maximum number of results to return (default 50).

    Returns:
        A list of dicts, one per matching audit entry, newest first.
    """
    conn.row_factory = sqlite3.Row

    conditions: list[str] = []
    params: list[str | int] = []

    for column, value in (
        ("request_id", request_id),
        ("negotiation_id", negotiation_id),
        ("actor_id", actor_id),
        ("event_type", event_type),
    ):
        if value is not None:
            conditions.append(f"{column} = ?")
            params.append(value)

    if from_date is not None:
        conditions.append("timestamp >= ?")
        params.append(from_date)

    if to_date is not None:
        conditions.append("timestamp <= ?")
        params.append(to_date)

    where_clause = ""
    if conditions:
        where_clause = "WHERE " + " AND ".join(conditions)

    query = f"SELECT * FROM audit_log {where_clause} ORDER BY timestamp DESC, id DESC LIMIT ?"
    params.append(limit)

    rows = conn.execute(query, params).fetchall()

    results: list[dict[str, Any]] = []
    for row in rows:
        row_dict = dict(row)
        if row_dict.get("metadata") is not None:
            row_dict["metadata"] = json.loads(row_dict["metadata"])
        results.append(row_dict)

    return results
