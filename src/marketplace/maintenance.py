"""Maintenance command: fail negotiations that have gone quiet.

Usage::

    marketplace-expire --db data/marketplace.db --days 14
"""

from __future__ import annotations

import argparse
import sys

import structlog

from marketplace.actions import MarketplaceActions
from marketplace.app import configure_logging
from marketplace.config import get_settings
from marketplace.store.database import Database

logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Expire stale marketplace negotiations")
    parser.add_argument(
        "--db",
        type=str,
        default=str(settings.database_path),
        help=f"Path to marketplace database (default: {settings.database_path})",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=settings.negotiation_expiry_days,
        help="Idle days before a negotiation expires; 0 disables (default: from settings)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run one expiry sweep and print the ids of expired negotiations."""
    args = build_parser().parse_args(argv)
    configure_logging(production=get_settings().production, file=sys.stderr)

    db = Database.open(args.db)
    try:
        result = MarketplaceActions(db, expiry_days=args.days).expire_stale_negotiations()
    finally:
        db.close()

    if result.error is not None:
        logger.error("expiry_sweep_failed", kind=result.error.kind.value)
        return 1

    for negotiation_id in result.data or []:
        print(negotiation_id)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
