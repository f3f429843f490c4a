"""The ``audit_log`` table: one row per rate-card lifecycle event.

Rows are appended with the connection's current transaction, so an entry for
a create, edit or decision commits or rolls back together with that write.
The table has no foreign key to ``rate_cards``; deleting a card keeps its
history.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Any

from rate_approval.audit.models import AuditEntry
from rate_approval.time_utils import format_timestamp, utc_now

AUDIT_COLUMNS = (
    "id",
    "timestamp",
    "event_type",
    "rate_card_id",
    "rate_card_name",
    "actor",
    "channel",
    "status",
    "metadata",
)

_INDEXES = (
    ("idx_audit_rate_card", "rate_card_id"),
    ("idx_audit_actor", "actor"),
    ("idx_audit_timestamp", "timestamp"),
)

# Query keyword -> WHERE fragment.
_FILTERS = {
    "rate_card_id": "rate_card_id = ?",
    "actor": "actor = ? COLLATE NOCASE",
    "event_type": "event_type = ?",
    "from_date": "timestamp >= ?",
    "to_date": "timestamp <= ?",
}


def init_audit_table(conn: sqlite3.Connection) -> None:
    """Create ``audit_log`` and its lookup indexes when missing."""
    conn.execute("""
        CREATE TABLE IF NOT EXISTS audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp TEXT NOT NULL,
            event_type TEXT NOT NULL,
            rate_card_id TEXT NOT NULL,
            rate_card_name TEXT,
            actor TEXT,
            channel TEXT,
            status TEXT,
            metadata TEXT
        )
    """)
    for index, column in _INDEXES:
        conn.execute(f"CREATE INDEX IF NOT EXISTS {index} ON audit_log ({column})")


def insert_audit_entry(conn: sqlite3.Connection, entry: AuditEntry) -> int:
    """Append *entry*, stamped with the current UTC time.

    Returns:
        The new row id.
    """
    cursor = conn.execute(
        f"INSERT INTO audit_log ({', '.join(AUDIT_COLUMNS[1:])}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
        (
            format_timestamp(utc_now()),
            entry.event_type.value,
            entry.rate_card_id,
            entry.rate_card_name,
            entry.actor,
            entry.channel,
            entry.status,
            json.dumps(entry.metadata) if entry.metadata is not None else None,
        ),
    )
    return cursor.lastrowid or 0


def _row_to_dict(row: sqlite3.Row | tuple[Any, ...]) -> dict[str, Any]:
    result = dict(zip(AUDIT_COLUMNS, tuple(row), strict=True))
    if result["metadata"]:
        result["metadata"] = json.loads(result["metadata"])
    return result


def query_audit_trail(
    conn: sqlite3.Connection,
    *,
    rate_card_id: str | None = None,
    actor: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
    event_type: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    """Return audit rows matching every given filter, newest first.

    Args:
        conn: An open database connection.
        rate_card_id: Exact rate card id.
        actor: Actor name, compared case-insensitively.
        from_date: Inclusive lower bound on the stored ISO-8601 timestamp.
        to_date: Inclusive upper bound on the stored ISO-8601 timestamp.
        event_type: Exact :class:`~rate_approval.audit.models.EventType` value.
        limit: Maximum number of rows.

    Returns:
        One dict per row keyed by column name, with ``metadata`` decoded.
    """
    given = {
        "rate_card_id": rate_card_id,
        "actor": actor,
        "event_type": event_type,
        "from_date": from_date,
        "to_date": to_date,
    }
    active = {name: value for name, value in given.items() if value is not None}
    where = " AND ".join(_FILTERS[name] for name in active)

    sql = f"SELECT {', '.join(AUDIT_COLUMNS)} FROM audit_log"
    if where:
        sql += f" WHERE {where}"
    sql += " ORDER BY timestamp DESC, id DESC LIMIT ?"

    rows = conn.execute(sql, [*active.values(), limit]).fetchall()
    return [_row_to_dict(row) for row in rows]
