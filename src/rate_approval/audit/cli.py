"""``rate-approval-audit``: read the rate-card audit trail from a terminal.

Examples::

    rate-approval-audit --rate-card 3f2a9c... --format json
    rate-approval-audit --actor "Olivia Ops" --last 7d
    rate-approval-audit --event-type rate_card_rejected --from-date 2026-01-01
"""

from __future__ import annotations

import argparse
import json
import re
from collections.abc import Sequence
from datetime import timedelta
from pathlib import Path
from typing import Any

from rate_approval.audit.models import EventType
from rate_approval.audit.store import query_audit_trail
from rate_approval.store.schema import close_rate_card_db, init_rate_card_db
from rate_approval.time_utils import format_timestamp, utc_now

DEFAULT_DB_PATH = "data/rate_cards.db"
DEFAULT_LIMIT = 50

_DURATION = re.compile(r"^(\d+)([dhm])$")
_DURATION_UNITS = {"d": "days", "h": "hours", "m": "minutes"}

# (header, row key, width); the rate card column falls back to the id.
TABLE_COLUMNS: tuple[tuple[str, str, int], ...] = (
    ("Timestamp", "timestamp", 27),
    ("Event", "event_type", 20),
    ("Rate Card", "rate_card_name", 24),
    ("Actor", "actor", 20),
    ("Channel", "channel", 8),
    ("Status", "status", 8),
)


def since_timestamp(duration: str) -> str:
    """Timestamp *duration* ago, for ``7d``, ``24h`` or ``30m`` style input.

    Raises:
        ValueError: If *duration* is not ``<number><d|h|m>``.
    """
    match = _DURATION.match(duration or "")
    if match is None:
        raise ValueError(f"Unrecognized duration {duration!r}; use e.g. 7d, 24h or 30m")
    amount, unit = match.groups()
    return format_timestamp(utc_now() - timedelta(**{_DURATION_UNITS[unit]: int(amount)}))


def end_of_day(date: str) -> str:
    """Widen a bare ``YYYY-MM-DD`` upper bound to include the whole day."""
    if len(date) == 10:
        return f"{date}T23:59:59.999999Z"
    return date


def _duration_arg(value: str) -> str:
    try:
        return since_timestamp(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for audit trail queries."""
    parser = argparse.ArgumentParser(
        prog="rate-approval-audit",
        description="Query the rate-card audit trail",
    )
    filters = parser.add_argument_group("filters")
    filters.add_argument("--rate-card", help="Only entries for this rate card ID")
    filters.add_argument("--actor", help="Only entries by this actor (case-insensitive)")
    filters.add_argument(
        "--event-type",
        choices=[event.value for event in EventType],
        help="Only entries of this event type",
    )
    filters.add_argument("--to-date", type=end_of_day, help="Upper bound (YYYY-MM-DD), inclusive")

    since = filters.add_mutually_exclusive_group()
    since.add_argument("--from-date", help="Lower bound (YYYY-MM-DD)")
    since.add_argument(
        "--last",
        dest="from_date",
        type=_duration_arg,
        help="Lower bound relative to now, e.g. 7d, 24h, 30m",
    )

    parser.add_argument(
        "--format",
        dest="output_format",
        choices=["table", "json"],
        default="table",
        help="Output format (default: table)",
    )
    parser.add_argument(
        "--limit", type=int, default=DEFAULT_LIMIT, help=f"Maximum rows (default: {DEFAULT_LIMIT})"
    )
    parser.add_argument(
        "--db", default=DEFAULT_DB_PATH, help=f"Rate-card database (default: {DEFAULT_DB_PATH})"
    )
    return parser


def _clip(value: Any, width: int) -> str:
    text = "" if value is None else str(value)
    return text if len(text) <= width else text[: width - 3] + "..."


def render_table(rows: list[dict[str, Any]]) -> str:
    """Render audit rows as fixed-width columns, newest first as queried."""
    if not rows:
        return "No results found."

    header = "  ".join(title.ljust(width) for title, _, width in TABLE_COLUMNS)
    lines = [header, "-" * len(header)]
    for row in rows:
        cells = []
        for _, key, width in TABLE_COLUMNS:
            value = row.get(key)
            if key == "rate_card_name" and not value:
                value = row.get("rate_card_id")
            cells.append(_clip(value, width).ljust(width))
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)


def render_json(rows: list[dict[str, Any]]) -> str:
    """Render audit rows as indented JSON."""
    return json.dumps(rows, indent=2, ensure_ascii=False)


def main(argv: Sequence[str] | None = None) -> None:
    """Run one audit query and print the result."""
    args = build_parser().parse_args(argv)

    db_path = Path(args.db)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = init_rate_card_db(db_path)
    try:
        rows = query_audit_trail(
            conn,
            rate_card_id=args.rate_card,
            actor=args.actor,
            from_date=args.from_date,
            to_date=args.to_date,
            event_type=args.event_type,
            limit=args.limit,
        )
    finally:
        close_rate_card_db(conn)

    print(render_json(rows) if args.output_format == "json" else render_table(rows))


if __name__ == "__main__":
    main()
