"""SQLite connection handling and explicit transaction scopes.

Connections are opened in autocommit mode (``isolation_level=None``) so the
engine controls transaction boundaries itself: every operation runs inside
``Database.transaction()``, which issues ``BEGIN IMMEDIATE`` so the write lock
is taken before the first read and the reads that drive a write see the state
the write will commit against.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

import structlog

from marketplace.store.schema import init_marketplace_schema

logger = structlog.get_logger()

BUSY_TIMEOUT_SECONDS = 5.0


def utcnow() -> datetime:
    """Return the current UTC time (tz-aware)."""
    return datetime.now(tz=UTC)


def to_db_time(value: datetime) -> str:
    """Serialize a datetime as a sortable ISO 8601 string with microseconds."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open a connection with WAL mode, foreign keys, and dict-style rows.

    Args:
        db_path: Path to the database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection in autocommit mode, usable from any thread.
    """
    conn = sqlite3.connect(
        str(db_path),
        isolation_level=None,
        check_same_thread=False,
        timeout=BUSY_TIMEOUT_SECONDS,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


class Database:
    """A single shared connection plus the transaction discipline around it.

    The connection is shared by every thread in the process, so a re-entrant
    lock serializes transaction blocks.  A ``transaction()`` opened while
    another is active on the same thread joins the outer one instead of
    nesting.

    Args:
        conn: An open connection from :func:`open_database`.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = threading.RLock()
        self._depth = 0

    @classmethod
    def open(cls, db_path: Path | str) -> Database:
        """Open *db_path*, create the schema if needed, and wrap it."""
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = open_database(db_path)
        init_marketplace_schema(conn)
        return cls(conn)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed block as one atomic transaction.

        Commits when the block exits normally and rolls back when it raises,
        re-raising the original exception.

        Yields:
            The shared connection.
        """
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield self.conn
                finally:
                    self._depth -= 1
                return

            self.conn.execute("BEGIN IMMEDIATE")
            self._depth = 1
            try:
                yield self.conn
            except BaseException:
                if self.conn.in_transaction:
                    self.conn.execute("ROLLBACK")
                raise
            else:
                self.conn.execute("COMMIT")
            finally:
                self._depth = 0

    def ping(self) -> None:
        """Execute a trivial query; raises if the connection is unusable."""
        with self._lock:
            self.conn.execute("SELECT 1")

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self.conn.close()
        logger.info("marketplace_db_closed")
