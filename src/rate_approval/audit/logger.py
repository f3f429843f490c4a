"""Convenience class for inserting rate-card audit trail entries.

Each method builds a properly structured :class:`AuditEntry` from a
:class:`~rate_approval.domain.models.RateCard` and inserts it via
:func:`insert_audit_entry`.  Callers that hold an open transaction get the
audit row committed atomically with their write.
"""

from __future__ import annotations

import sqlite3

from rate_approval.audit.models import AuditEntry, EventType
from rate_approval.audit.store import insert_audit_entry
from rate_approval.domain.models import RateCard
from rate_approval.domain.types import RateCardStatus


class AuditLogger:
    """Typed convenience API for inserting audit entries.

    Args:
        conn: An open SQLite connection to the rate-card database.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def _log(
        self,
        event_type: EventType,
        card: RateCard,
        actor: str | None = None,
        channel: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> int:
        entry = AuditEntry(
            event_type=event_type,
            rate_card_id=card.id,
            rate_card_name=card.name,
            actor=actor,
            channel=channel,
            status=card.status.value,
            metadata=metadata,
        )
        return insert_audit_entry(self._conn, entry)

    def log_created(self, card: RateCard) -> int:
        """Log the creation of a rate card by its author."""
        return self._log(EventType.RATE_CARD_CREATED, card, actor=card.created_by)

    def log_updated(self, card: RateCard, actor: str, fields: list[str]) -> int:
        """Log an edit of a pending rate card.

        Args:
            card: The rate card after the update.
            actor: Who performed the edit.
            fields: Wire names of the fields that were patched.

        Returns:
            The row ID of the inserted audit entry.
        """
        return self._log(
            EventType.RATE_CARD_UPDATED,
            card,
            actor=actor,
            metadata={"fields": ",".join(sorted(fields))},
        )

    def log_deleted(self, card: RateCard, actor: str) -> int:
        """Log the hard deletion of a rate card."""
        return self._log(EventType.RATE_CARD_DELETED, card, actor=actor)

    def log_token_issued(self, card: RateCard) -> int:
        """Log issuance of a public approval token (the token itself is never logged)."""
        return self._log(EventType.TOKEN_ISSUED, card)

    def log_approval_email_sent(self, card: RateCard, actor: str, recipient: str) -> int:
        """Log dispatch of the approval email to the client."""
        return self._log(
            EventType.APPROVAL_EMAIL_SENT,
            card,
            actor=actor,
            metadata={"recipient": recipient},
        )

    def log_transition(self, card: RateCard) -> int:
        """Log a terminal transition, taking actor and channel from the card.

        Args:
            card: The rate card after it reached ``approved`` or ``rejected``.

        Returns:
            The row ID of the inserted audit entry.
        """
        if card.status is RateCardStatus.APPROVED:
            return self._log(
                EventType.RATE_CARD_APPROVED,
                card,
                actor=card.approved_by,
                channel=card.approval_channel.value,
            )
        return self._log(
            EventType.RATE_CARD_REJECTED,
            card,
            actor=card.rejected_by,
            channel=card.approval_channel.value,
            metadata={"reason": card.rejection_reason or ""},
        )

    def log_corporate_assigned(self, card: RateCard, actor: str) -> int:
        """Log binding an approved rate card to a corporate client."""
        return self._log(
            EventType.CORPORATE_ASSIGNED,
            card,
            actor=actor,
            metadata={"corporate_client_id": card.corporate_client_id or ""},
        )
