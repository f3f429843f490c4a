"""Audit trail models for tracking every rate-card lifecycle event.

Each entry records which rate card was touched, who acted, through which
channel, the resulting status, and optional key-value metadata.
"""

from enum import StrEnum

from pydantic import BaseModel


class EventType(StrEnum):
    """Types of events tracked in the audit trail."""

    RATE_CARD_CREATED = "rate_card_created"
    RATE_CARD_UPDATED = "rate_card_updated"
    RATE_CARD_DELETED = "rate_card_deleted"
    TOKEN_ISSUED = "token_issued"
    APPROVAL_EMAIL_SENT = "approval_email_sent"
    RATE_CARD_APPROVED = "rate_card_approved"
    RATE_CARD_REJECTED = "rate_card_rejected"
    CORPORATE_ASSIGNED = "corporate_assigned"


class AuditEntry(BaseModel):
    """A single audit trail entry.

    Only ``event_type`` and ``rate_card_id`` are required; the rest depends on
    the event (a token issuance has no actor, a creation has no channel).
    """

    event_type: EventType
    rate_card_id: str
    rate_card_name: str | None = None
    actor: str | None = None
    channel: str | None = None
    status: str | None = None
    metadata: dict[str, str] | None = None
