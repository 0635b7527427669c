"""SQLite schema for requests, offers, negotiations, and their message log.

Besides the tables, the DDL carries the invariants the store must never
violate regardless of what the services check:

- one PENDING offer per (request, offerer) -- partial unique index
- one live (IN_PROGRESS or AGREED) negotiation per request -- partial unique index
- one ACCEPT per participant per negotiation -- acceptance primary key
"""

from __future__ import annotations

import sqlite3

from marketplace.audit.store import init_audit_table


def init_marketplace_schema(conn: sqlite3.Connection) -> None:
    """Create all marketplace tables and indexes if they do not already exist.

    Also creates the ``audit_log`` table so audit rows can be written inside
    the same transaction as the state change they describe.

    Args:
        conn: An open sqlite3.Connection with foreign keys enabled.
    """
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS requests (
            id TEXT PRIMARY KEY,
            requester_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            request_type TEXT NOT NULL CHECK (request_type IN ('ITEM', 'GENERAL')),
            item_id TEXT,
            item_quantity INTEGER,
            suggested_price TEXT,
            currency TEXT NOT NULL DEFAULT 'emeralds',
            status TEXT NOT NULL DEFAULT 'OPEN',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            completed_at TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_requests_status ON requests (status);
        CREATE INDEX IF NOT EXISTS idx_requests_requester ON requests (requester_id);

        CREATE TABLE IF NOT EXISTS offers (
            id TEXT PRIMARY KEY,
            request_id TEXT NOT NULL REFERENCES requests (id),
            offerer_id TEXT NOT NULL,
            offered_price TEXT,
            currency TEXT NOT NULL DEFAULT 'emeralds',
            message TEXT,
            status TEXT NOT NULL DEFAULT 'PENDING',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_offers_request ON offers (request_id, status);
        CREATE INDEX IF NOT EXISTS idx_offers_offerer ON offers (offerer_id, status);
        CREATE UNIQUE INDEX IF NOT EXISTS uq_offers_one_pending
            ON offers (request_id, offerer_id) WHERE status = 'PENDING';

        CREATE TABLE IF NOT EXISTS negotiations (
            id TEXT PRIMARY KEY,
            request_id TEXT NOT NULL REFERENCES requests (id),
            accepted_offer_id TEXT NOT NULL UNIQUE REFERENCES offers (id),
            final_price TEXT,
            currency TEXT NOT NULL DEFAULT 'emeralds',
            status TEXT NOT NULL DEFAULT 'IN_PROGRESS',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            completed_at TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_negotiations_request ON negotiations (request_id);
        CREATE INDEX IF NOT EXISTS idx_negotiations_status ON negotiations (status);
        CREATE UNIQUE INDEX IF NOT EXISTS uq_negotiations_live
            ON negotiations (request_id) WHERE status IN ('IN_PROGRESS', 'AGREED');

        CREATE TABLE IF NOT EXISTS negotiation_messages (
            seq INTEGER PRIMARY KEY AUTOINCREMENT,
            id TEXT NOT NULL UNIQUE,
            negotiation_id TEXT NOT NULL REFERENCES negotiations (id),
            sender_id TEXT NOT NULL,
            message_type TEXT NOT NULL,
            content TEXT NOT NULL,
            price_offer TEXT,
            currency TEXT,
            created_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_messages_negotiation
            ON negotiation_messages (negotiation_id, seq);

        CREATE TABLE IF NOT EXISTS negotiation_acceptances (
            negotiation_id TEXT NOT NULL REFERENCES negotiations (id),
            participant_id TEXT NOT NULL,
            message_id TEXT NOT NULL REFERENCES negotiation_messages (id),
            accepted_at TEXT NOT NULL,
            PRIMARY KEY (negotiation_id, participant_id)
        );
    """)

    init_audit_table(conn)
