"""SQLite-backed repository for rate cards.

Single source of truth for rate-card documents.  Every write runs inside one
``BEGIN IMMEDIATE`` transaction, so the ``status = 'pending'`` precondition and
the write are atomic even when several processes share the database file.
The in-process lock only serialises use of the shared connection object.
"""

from __future__ import annotations

import json
import math
import sqlite3
import threading
import uuid
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import structlog

from rate_approval.audit.logger import AuditLogger
from rate_approval.domain.errors import (
    DuplicateNameError,
    InvalidStateError,
    NotFoundError,
    RateCardValidationError,
    TokenInvalidError,
)
from rate_approval.domain.models import (
    PRICING_FIELDS,
    ClientContact,
    RateCard,
    RateCardInput,
    RateCardPage,
    RateCardPatch,
    parse_model,
)
from rate_approval.domain.types import RateCardStatus
from rate_approval.time_utils import format_timestamp, parse_timestamp, utc_now

logger = structlog.get_logger()

_COLUMNS = (
    "id, name, status, pricing_json, created_by, approved_by, approval_channel, "
    "rejected_by, rejection_reason, client_email, client_name, client_company, notes, "
    "corporate_client_id, email_sent_at, created_at, updated_at, approved_at, rejected_at"
)

_TIMESTAMP_COLUMNS = ("email_sent_at", "created_at", "updated_at", "approved_at", "rejected_at")

# Statuses that reserve a rate-card name.
_NAME_RESERVING_STATUSES = (RateCardStatus.PENDING.value, RateCardStatus.APPROVED.value)


def _pricing_json(card: RateCard) -> str:
    """Serialise the pricing tables compactly; zero-valued cells are omitted."""
    document = card.model_dump(
        mode="json",
        by_alias=True,
        include=set(PRICING_FIELDS),
        exclude_defaults=True,
    )
    return json.dumps(document, separators=(",", ":"), sort_keys=True)


def _row_to_card(row: Mapping[str, Any]) -> RateCard:
    """Rebuild a RateCard from a database row, re-expanding omitted zero cells."""
    data: dict[str, Any] = json.loads(row["pricing_json"])
    contact = None
    if row["client_email"] or row["client_name"] or row["client_company"]:
        contact = {
            "email": row["client_email"],
            "name": row["client_name"],
            "company": row["client_company"],
        }
    data.update(
        id=row["id"],
        name=row["name"],
        status=row["status"],
        created_by=row["created_by"],
        approved_by=row["approved_by"],
        approval_channel=row["approval_channel"],
        rejected_by=row["rejected_by"],
        rejection_reason=row["rejection_reason"],
        client_contact=contact,
        notes=row["notes"],
        corporate_client_id=row["corporate_client_id"],
    )
    for column in _TIMESTAMP_COLUMNS:
        data[column] = parse_timestamp(row[column])
    return RateCard.model_validate(data)


class RateCardRepository:
    """Create, read, update, delete, and list rate cards.

    Args:
        conn: A connection opened by
            :func:`~rate_approval.store.schema.init_rate_card_db`.
        audit_logger: Optional audit logger; when given, each write records an
            audit row inside the same transaction.
        clock: Source of the current time (injectable for tests).
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        audit_logger: AuditLogger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._conn = conn
        self._conn.row_factory = sqlite3.Row
        self._audit = audit_logger
        self._clock = clock
        self._lock = threading.RLock()

    @property
    def audit_logger(self) -> AuditLogger | None:
        """The audit logger writes are recorded with, if any."""
        return self._audit

    def now(self) -> datetime:
        """Return the repository clock's current time."""
        return self._clock()

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside one write transaction.

        Commits on success and rolls back on any exception, so a failed write
        leaves the stored documents untouched.

        Yields:
            The underlying connection.
        """
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self._conn
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
            else:
                self._conn.execute("COMMIT")

    @contextmanager
    def reading(self) -> Iterator[sqlite3.Connection]:
        """Run a read-only block with exclusive use of the connection."""
        with self._lock:
            yield self._conn

    @staticmethod
    def fetch(conn: sqlite3.Connection, rate_card_id: str) -> RateCard:
        """Load a rate card on an already-held connection, or raise NotFoundError."""
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM rate_cards WHERE id = ?", (rate_card_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Rate card '{rate_card_id}' not found")
        return _row_to_card(row)

    @staticmethod
    def _ensure_name_available(
        conn: sqlite3.Connection, name: str, exclude_id: str | None = None
    ) -> None:
        row = conn.execute(
            "SELECT id FROM rate_cards WHERE name = ? AND status IN (?, ?) AND id != ?",
            (name, *_NAME_RESERVING_STATUSES, exclude_id or ""),
        ).fetchone()
        if row is not None:
            raise DuplicateNameError(f"A rate card named '{name}' already exists")

    @staticmethod
    def _ensure_token_live(conn: sqlite3.Connection, token: str, rate_card_id: str) -> None:
        row = conn.execute(
            """
            SELECT 1 FROM approval_tokens
            WHERE token = ? AND rate_card_id = ? AND consumed_at IS NULL AND revoked_at IS NULL
            """,
            (token, rate_card_id),
        ).fetchone()
        if row is None:
            raise TokenInvalidError()

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def create(self, data: RateCardInput | Mapping[str, Any], created_by: str) -> RateCard:
        """Validate input and persist a new pending rate card.

        Args:
            data: A ``RateCardInput`` or its raw (camelCase or snake_case) dict.
            created_by: Identity of the operator creating the card.

        Returns:
            The stored rate card.

        Raises:
            RateCardValidationError: If the input shape is invalid.
            DuplicateNameError: If a pending or approved card has the same name.
        """
        payload = parse_model(RateCardInput, data)
        now = self._clock()
        card = parse_model(
            RateCard,
            {
                **payload.model_dump(),
                "id": uuid.uuid4().hex,
                "status": RateCardStatus.PENDING,
                "created_by": created_by,
                "created_at": now,
                "updated_at": now,
            },
        )
        contact = card.client_contact or ClientContact()

        with self.transaction() as conn:
            self._ensure_name_available(conn, card.name)
            conn.execute(
                """
                INSERT INTO rate_cards (
                    id, seq, name, status, pricing_json, created_by,
                    client_email, client_name, client_company, notes,
                    created_at, updated_at
                ) VALUES (
                    ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM rate_cards),
                    ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
                )
                """,
                (
                    card.id,
                    card.name,
                    card.status.value,
                    _pricing_json(card),
                    card.created_by,
                    contact.email,
                    contact.name,
                    contact.company,
                    card.notes,
                    format_timestamp(card.created_at),
                    format_timestamp(card.updated_at),
                ),
            )
            if self._audit is not None:
                self._audit.log_created(card)

        logger.info("Rate card created", rate_card_id=card.id, name=card.name, created_by=created_by)
        return card

    def update(
        self, rate_card_id: str, patch: RateCardPatch | Mapping[str, Any], actor: str
    ) -> RateCard:
        """Apply a typed patch to a pending rate card.

        Args:
            rate_card_id: The card to edit.
            patch: A ``RateCardPatch`` or its raw dict; unknown fields are rejected.
            actor: Identity of the editor.

        Returns:
            The updated rate card.

        Raises:
            RateCardValidationError: If the patch or the merged card is invalid.
            NotFoundError: If the card does not exist.
            InvalidStateError: If the card is no longer pending.
            DuplicateNameError: If the new name collides with another card.
        """
        patch = parse_model(RateCardPatch, patch)
        changes = patch.changes()

        with self.transaction() as conn:
            current = self.fetch(conn, rate_card_id)
            if not current.is_pending:
                raise InvalidStateError(
                    f"Rate card '{rate_card_id}' is {current.status} and can no longer be edited"
                )
            updated = parse_model(
                RateCard,
                {**current.model_dump(), **changes, "updated_at": self._clock()},
            )
            if updated.name != current.name:
                self._ensure_name_available(conn, updated.name, exclude_id=rate_card_id)

            cursor = conn.execute(
                """
                UPDATE rate_cards
                SET name = ?, pricing_json = ?, notes = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    updated.name,
                    _pricing_json(updated),
                    updated.notes,
                    format_timestamp(updated.updated_at),
                    rate_card_id,
                    RateCardStatus.PENDING.value,
                ),
            )
            if cursor.rowcount != 1:
                raise InvalidStateError(f"Rate card '{rate_card_id}' can no longer be edited")
            if self._audit is not None:
                fields = [RateCardPatch.model_fields[name].alias or name for name in changes]
                self._audit.log_updated(updated, actor, fields)

        logger.info("Rate card updated", rate_card_id=rate_card_id, actor=actor)
        return updated

    def update_client_contact(
        self, rate_card_id: str, contact: ClientContact | Mapping[str, Any]
    ) -> RateCard:
        """Replace the client contact of a pending rate card.

        Raises:
            NotFoundError: If the card does not exist.
            InvalidStateError: If the card is no longer pending.
        """
        contact = parse_model(ClientContact, contact)
        with self.transaction() as conn:
            current = self.fetch(conn, rate_card_id)
            if not current.is_pending:
                raise InvalidStateError(
                    f"Rate card '{rate_card_id}' is {current.status}; "
                    "only pending rate cards can be sent for approval"
                )
            updated = current.model_copy(
                update={"client_contact": contact, "updated_at": self._clock()}
            )
            conn.execute(
                """
                UPDATE rate_cards
                SET client_email = ?, client_name = ?, client_company = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    contact.email,
                    contact.name,
                    contact.company,
                    format_timestamp(updated.updated_at),
                    rate_card_id,
                    RateCardStatus.PENDING.value,
                ),
            )
        return updated

    def mark_email_sent(self, rate_card_id: str, actor: str) -> RateCard:
        """Stamp ``email_sent_at`` after the approval email was handed off.

        Raises:
            NotFoundError: If the card does not exist.
            InvalidStateError: If the card was decided after the email was composed.
        """
        now = self._clock()
        with self.transaction() as conn:
            current = self.fetch(conn, rate_card_id)
            updated = current.model_copy(update={"email_sent_at": now, "updated_at": now})
            cursor = conn.execute(
                "UPDATE rate_cards SET email_sent_at = ?, updated_at = ? "
                "WHERE id = ? AND status = ?",
                (
                    format_timestamp(now),
                    format_timestamp(now),
                    rate_card_id,
                    RateCardStatus.PENDING.value,
                ),
            )
            if cursor.rowcount != 1:
                raise InvalidStateError(
                    f"Rate card '{rate_card_id}' is {current.status}; "
                    "only pending rate cards can be sent for approval"
                )
            if self._audit is not None and updated.client_contact is not None:
                self._audit.log_approval_email_sent(
                    updated, actor, updated.client_contact.email or ""
                )
        return updated

    def apply_transition(
        self, rate_card_id: str, changes: Mapping[str, Any], token: str | None = None
    ) -> RateCard | None:
        """Atomically move a pending card to a terminal state.

        Writes the terminal fields with a conditional update keyed on
        ``status = 'pending'`` and consumes every outstanding approval token of
        the card in the same transaction.

        Args:
            rate_card_id: The card to transition.
            changes: Terminal field values (status, approver/rejector, channel,
                reason, timestamps) keyed by attribute name.
            token: When given, the decision is only written while this token
                is still live for the card.

        Returns:
            The updated card, or ``None`` if the card was no longer pending.

        Raises:
            NotFoundError: If the card does not exist.
            TokenInvalidError: If *token* was revoked or consumed since it was
                resolved.
        """
        with self.transaction() as conn:
            current = self.fetch(conn, rate_card_id)
            if not current.is_pending:
                return None
            if token is not None:
                self._ensure_token_live(conn, token, rate_card_id)
            updated = parse_model(RateCard, {**current.model_dump(), **changes})

            cursor = conn.execute(
                """
                UPDATE rate_cards
                SET status = ?, approved_by = ?, approval_channel = ?, rejected_by = ?,
                    rejection_reason = ?, approved_at = ?, rejected_at = ?, updated_at = ?
                WHERE id = ? AND status = ?
                """,
                (
                    updated.status.value,
                    updated.approved_by,
                    updated.approval_channel.value,
                    updated.rejected_by,
                    updated.rejection_reason,
                    format_timestamp(updated.approved_at),
                    format_timestamp(updated.rejected_at),
                    format_timestamp(updated.updated_at),
                    rate_card_id,
                    RateCardStatus.PENDING.value,
                ),
            )
            if cursor.rowcount != 1:
                return None

            conn.execute(
                """
                UPDATE approval_tokens SET consumed_at = ?
                WHERE rate_card_id = ? AND consumed_at IS NULL
                """,
                (format_timestamp(updated.updated_at), rate_card_id),
            )
            if self._audit is not None:
                self._audit.log_transition(updated)

        return updated

    def assign_corporate(
        self, rate_card_id: str, corporate_client_id: str, actor: str
    ) -> RateCard:
        """Bind an approved rate card to a corporate client.

        Any other card bound to the same corporate is unbound, so each
        corporate has at most one active rate card.

        Raises:
            RateCardValidationError: If ``corporate_client_id`` is blank.
            NotFoundError: If the card does not exist.
            InvalidStateError: If the card is not approved.
        """
        corporate_client_id = corporate_client_id.strip()
        if not corporate_client_id:
            raise RateCardValidationError("corporateClientId is required")

        now = self._clock()
        with self.transaction() as conn:
            current = self.fetch(conn, rate_card_id)
            if current.status is not RateCardStatus.APPROVED:
                raise InvalidStateError(
                    "Only approved rate cards can be connected to corporate clients. "
                    f"Current status: {current.status}"
                )
            conn.execute(
                "UPDATE rate_cards SET corporate_client_id = NULL, updated_at = ? "
                "WHERE corporate_client_id = ? AND id != ?",
                (format_timestamp(now), corporate_client_id, rate_card_id),
            )
            conn.execute(
                "UPDATE rate_cards SET corporate_client_id = ?, updated_at = ? WHERE id = ?",
                (corporate_client_id, format_timestamp(now), rate_card_id),
            )
            updated = current.model_copy(
                update={"corporate_client_id": corporate_client_id, "updated_at": now}
            )
            if self._audit is not None:
                self._audit.log_corporate_assigned(updated, actor)

        logger.info(
            "Rate card assigned to corporate",
            rate_card_id=rate_card_id,
            corporate_client_id=corporate_client_id,
            actor=actor,
        )
        return updated

    def delete(self, rate_card_id: str, actor: str) -> RateCard:
        """Hard-delete a rate card in any status, cascading to its tokens.

        Returns:
            The card as it was before deletion.

        Raises:
            NotFoundError: If the card does not exist.
        """
        with self.transaction() as conn:
            current = self.fetch(conn, rate_card_id)
            conn.execute("DELETE FROM approval_tokens WHERE rate_card_id = ?", (rate_card_id,))
            conn.execute("DELETE FROM rate_cards WHERE id = ?", (rate_card_id,))
            if self._audit is not None:
                self._audit.log_deleted(current, actor)

        logger.info("Rate card deleted", rate_card_id=rate_card_id, actor=actor)
        return current

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get(self, rate_card_id: str) -> RateCard:
        """Return the rate card with *rate_card_id*.

        Raises:
            NotFoundError: If the card does not exist.
        """
        with self.reading() as conn:
            return self.fetch(conn, rate_card_id)

    def list(
        self,
        *,
        search: str | None = None,
        status: RateCardStatus | str | None = None,
        page: int = 1,
        page_size: int = 10,
        unassigned_only: bool = False,
    ) -> RateCardPage:
        """Return one page of rate cards, newest first.

        Args:
            search: Case-insensitive substring matched against the name, client
                company, and client email.
            status: Exact status filter.
            page: 1-indexed page number; pages past the end are empty.
            page_size: Positive number of items per page.
            unassigned_only: Only cards not bound to a corporate client.

        Returns:
            The requested page with total count and page count.

        Raises:
            RateCardValidationError: If paging arguments or status are invalid.
        """
        if page < 1:
            raise RateCardValidationError("page must be a positive integer")
        if page_size < 1:
            raise RateCardValidationError("pageSize must be a positive integer")

        conditions: list[str] = []
        params: list[str | int] = []

        if search and search.strip():
            term = search.strip().casefold()
            conditions.append(
                "(instr(casefold(name), ?) > 0"
                " OR instr(casefold(COALESCE(client_company, '')), ?) > 0"
                " OR instr(casefold(COALESCE(client_email, '')), ?) > 0)"
            )
            params.extend([term, term, term])

        if status:
            try:
                status = RateCardStatus(status)
            except ValueError:
                raise RateCardValidationError(f"Unknown status: {status!r}") from None
            conditions.append("status = ?")
            params.append(status.value)

        if unassigned_only:
            conditions.append("corporate_client_id IS NULL")

        where_clause = ""
        if conditions:
            where_clause = "WHERE " + " AND ".join(conditions)

        offset = (page - 1) * page_size
        with self.reading() as conn:
            total_count = conn.execute(
                f"SELECT COUNT(*) FROM rate_cards {where_clause}", params
            ).fetchone()[0]
            rows: list[sqlite3.Row] = []
            # Past the end; the offset may not fit in an SQLite integer.
            if offset < total_count:
                rows = conn.execute(
                    f"SELECT {_COLUMNS} FROM rate_cards {where_clause} "
                    "ORDER BY created_at DESC, seq DESC LIMIT ? OFFSET ?",
                    [*params, min(page_size, total_count), offset],
                ).fetchall()

        return RateCardPage(
            items=[_row_to_card(row) for row in rows],
            total_count=total_count,
            total_pages=math.ceil(total_count / page_size),
            page=page,
            page_size=page_size,
        )

    def find_active_for_corporate(self, corporate_client_id: str) -> RateCard:
        """Return the approved rate card bound to a corporate client.

        Raises:
            NotFoundError: If no approved rate card is assigned.
        """
        with self.reading() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM rate_cards "
                "WHERE corporate_client_id = ? AND status = ? "
                "ORDER BY approved_at DESC LIMIT 1",
                (corporate_client_id, RateCardStatus.APPROVED.value),
            ).fetchone()
        if row is None:
            raise NotFoundError(
                "No pricing plan has been assigned to this corporate account yet."
            )
        return _row_to_card(row)

    def count_by_status(self, status: RateCardStatus) -> int:
        """Return the number of rate cards currently in *status*."""
        with self.reading() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM rate_cards WHERE status = ?", (status.value,)
            ).fetchone()[0]
