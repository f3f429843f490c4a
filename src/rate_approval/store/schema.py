"""SQLite schema for rate cards, approval tokens, and the audit trail.

All tables live in one database file so a state transition, the token
consumption it implies, and the resulting audit row can share a connection.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from rate_approval.audit.store import init_audit_table


def _casefold(value: Any) -> str | None:
    return None if value is None else str(value).casefold()


def init_rate_card_db(db_path: Path | str) -> sqlite3.Connection:
    """Open the database, enable WAL and foreign keys, and create all tables.

    Registers a ``casefold`` SQL function for Unicode case-insensitive search.

    The connection runs in autocommit mode (``isolation_level=None``); every
    multi-statement write opens its own explicit transaction.  It may be
    shared between threads; callers serialise access (see
    :class:`~rate_approval.store.repository.RateCardRepository`).

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.

    Returns:
        An open sqlite3.Connection.
    """
    conn = sqlite3.connect(str(db_path), isolation_level=None, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")
    # SQLite's lower() only folds ASCII.
    conn.create_function("casefold", 1, _casefold, deterministic=True)

    init_rate_card_tables(conn)
    init_audit_table(conn)
    return conn


def init_rate_card_tables(conn: sqlite3.Connection) -> None:
    """Create the rate_cards and approval_tokens tables if they do not exist.

    ``pricing_json`` holds the compact pricing document (zero-valued cells are
    omitted).  Scalar fields used for filtering or conditional writes are
    stored as columns.

    Args:
        conn: An open sqlite3.Connection.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS rate_cards (
            id TEXT PRIMARY KEY,
            seq INTEGER NOT NULL,
            name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            pricing_json TEXT NOT NULL,
            created_by TEXT NOT NULL,
            approved_by TEXT,
            approval_channel TEXT NOT NULL DEFAULT 'none',
            rejected_by TEXT,
            rejection_reason TEXT,
            client_email TEXT,
            client_name TEXT,
            client_company TEXT,
            notes TEXT,
            corporate_client_id TEXT,
            email_sent_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            approved_at TEXT,
            rejected_at TEXT
        )
    """)
    conn.execute("CREATE INDEX IF NOT EXISTS idx_rate_cards_status ON rate_cards (status)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_rate_cards_name ON rate_cards (name)")
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_rate_cards_created ON rate_cards (created_at DESC, seq DESC)"
    )
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_rate_cards_corporate ON rate_cards (corporate_client_id)"
    )

    conn.execute("""
        CREATE TABLE IF NOT EXISTS approval_tokens (
            token TEXT PRIMARY KEY,
            rate_card_id TEXT NOT NULL REFERENCES rate_cards (id) ON DELETE CASCADE,
            created_at TEXT NOT NULL,
            consumed_at TEXT,
            revoked_at TEXT
        )
    """)
    conn.execute(
        "CREATE INDEX IF NOT EXISTS idx_tokens_rate_card ON approval_tokens (rate_card_id)"
    )


def close_rate_card_db(conn: sqlite3.Connection) -> None:
    """Close the database connection.

    Args:
        conn: The connection to close.
    """
    conn.close()
