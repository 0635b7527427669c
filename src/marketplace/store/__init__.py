"""SQLite persistence for marketplace entities."""

from marketplace.store.database import Database, open_database, to_db_time, utcnow
from marketplace.store.repository import MarketplaceStore, TransitionResult
from marketplace.store.schema import init_marketplace_schema

__all__ = [
    "Database",
    "MarketplaceStore",
    "TransitionResult",
    "init_marketplace_schema",
    "open_database",
    "to_db_time",
    "utcnow",
]
