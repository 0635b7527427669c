"""CLI query interface for the marketplace audit trail.

Provides an argparse-based command-line tool for querying audit entries
with filters by request, negotiation, actor, date range, event type, and
a shorthand ``--last`` duration. Output formats: table (default) or JSON.

Usage::

    marketplace-audit --request 4f2a... --last 7d
    marketplace-audit --actor user_1 --event-type offer_status_changed --format json
"""

from __future__ import annotations

import argparse
import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from marketplace.audit.models import EventType
from marketplace.audit.store import query_audit_trail
from marketplace.store.database import open_database
from marketplace.store.schema import init_marketplace_schema


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for audit trail queries.

    Returns:
        A configured :class:`argparse.ArgumentParser`.
    """
    parser = argparse.ArgumentParser(description="Query marketplace audit trail")

    parser.add_argument("--request", type=str, help="Filter by request ID")
    parser.add_argument("--negotiation", type=str, help="Filter by negotiation ID")
    parser.add_argument("--actor", type=str, help="Filter by the user who caused the event")
    parser.add_argument("--from-date", type=str, help="Start date (YYYY-MM-DD)")
    parser.add_argument("--to-date", type=str, help="End date (YYYY-MM-DD)")
    parser.add_argument(
        "--event-type",
        type=str,
        choices=[event.value for event in EventType],
        help="Filter by event type",
    )
    parser.add_argument(
        "--last",
        type=str,
        help='Shorthand duration (e.g., "7d", "24h", "30d")',
    )
    parser.add_argument(
        "--format",
        type=str,
        choices=["table", "json"],
        default="table",
        dest="output_format",
        help="Output format (default: table)",
    )
    parser.add_argument("--limit", type=int, default=50, help="Maximum results (default: 50)")
    parser.add_argument(
        "--db",
        type=str,
        default="data/marketplace.db",
        help="Path to marketplace database (default: data/marketplace.db)",
    )

    return parser


def parse_last_duration(last: str) -> str:
    """Convert a shorthand duration to an ISO 8601 date string.

    Supported formats:
        - ``Nd``: N days ago (e.g., ``7d``)
        - ``Nh``: N hours ago (e.g., ``24h``)

    Raises:
        ValueError: If the format is not recognized.
    """
    if not last or len(last) < 2:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg)

    unit = last[-1]
    try:
        value = int(last[:-1])
    except ValueError:
        msg = f"Unrecognized duration format: {last!r}"
        raise ValueError(msg) from None

    now = datetime.now(tz=UTC)

    if unit == "d":
        result = now - timedelta(days=value)
    elif unit == "h":
        result = now - timedelta(hours=value)
    else:
        msg = f"Unrecognized duration format: {last!r}. Use 'd' for days or 'h' for hours."
        raise ValueError(msg)

    return result.strftime("%Y-%m-%dT%H:%M:%SZ")


def _short_id(value: str | None) -> str:
    return (value or "")[:8]


def format_table(results: list[dict[str, Any]]) -> str:
    """Format audit results as a human-readable table.

    Columns: Timestamp, Event, Actor, Request, Negotiation, Transition.
    Entity ids are shortened to their first eight characters.
    """
    if not results:
        return "No results found."

    headers = ["Timestamp", "Event", "Actor", "Request", "Negotiation", "Transition"]
    widths = [20, 26, 16, 8, 11, 28]

    def truncate(value: str | None, width: int) -> str:
        s = str(value or "")
        if len(s) > width:
            return s[: width - 3] + "..."
        return s

    lines: list[str] = []

    header_line = "  ".join(h.ljust(w) for h, w in zip(headers, widths, strict=True))
    lines.append(header_line)
    lines.append("-" * len(header_line))

    for row in results:
        transition = ""
        if row.get("to_status"):
            transition = f"{row.get('from_status') or '-'} -> {row['to_status']}"
        cells = [
            truncate(row.get("timestamp"), widths[0]),
            truncate(row.get("event_type"), widths[1]),
            truncate(row.get("actor_id") or "system", widths[2]),
            _short_id(row.get("request_id")),
            _short_id(row.get("negotiation_id")),
            truncate(transition, widths[5]),
        ]
        lines.append("  ".join(c.ljust(w) for c, w in zip(cells, widths, strict=True)))

    return "\n".join(lines)


def format_json(results: list[dict[str, Any]]) -> str:
    """Format audit results as a pretty-printed JSON string."""
    return json.dumps(results, indent=2)


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, query audit trail, and print results."""
    parser = build_parser()
    args = parser.parse_args(argv)

    from_date = args.from_date
    if args.last:
        from_date = parse_last_duration(args.last)

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = open_database(db_path)
    init_marketplace_schema(conn)

    try:
        results = query_audit_trail(
            conn,
            request_id=args.request,
            negotiation_id=args.negotiation,
            actor_id=args.actor,
            from_date=from_date,
            to_date=args.to_date,
            event_type=args.event_type,
            limit=args.limit,
        )

        output = format_json(results) if args.output_format == "json" else format_table(results)

        print(output)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
