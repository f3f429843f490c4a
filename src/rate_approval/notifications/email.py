"""Approval emails sent to clients with single-use approve/reject links.

Provides ``approval_links`` (the two public URLs for a token),
``compose_approval_email`` (an RFC 5322 ``EmailMessage``),
``compose_confirmation_email`` (the notice sent once the client decided), the
``ApprovalMailer`` protocol that delivery backends implement, and
``LoggingMailer``, the default backend, which only records the dispatch.
"""

from __future__ import annotations

from collections import deque
from decimal import Decimal
from email.message import EmailMessage
from typing import Protocol

import structlog
from pydantic import BaseModel

from rate_approval.domain.errors import RateCardValidationError
from rate_approval.domain.models import RateCard
from rate_approval.domain.types import RateCardStatus

logger = structlog.get_logger()

DEFAULT_SENDER = "pricing@localhost"
SENT_HISTORY = 100


class ApprovalLinks(BaseModel):
    """The public approve and reject URLs for one token."""

    approve_url: str
    reject_url: str


def approval_links(public_base_url: str, token: str) -> ApprovalLinks:
    """Build the approve/reject URLs for *token* under *public_base_url*."""
    base = f"{public_base_url.rstrip('/')}/pricing-approval/{token}"
    return ApprovalLinks(approve_url=f"{base}/approve", reject_url=f"{base}/reject")


def _percentage(value: Decimal) -> str:
    return f"{value.normalize():f}%"


def compose_approval_email(
    card: RateCard,
    token: str,
    public_base_url: str,
    sender: str = "",
) -> EmailMessage:
    """Compose the approval request email for a pending rate card.

    Args:
        card: The rate card awaiting the client's decision.
        token: The freshly issued approval token.
        public_base_url: Base URL of the public approval pages.
        sender: ``From`` address; falls back to ``DEFAULT_SENDER``.

    Returns:
        A plain-text ``EmailMessage`` addressed to the client contact.

    Raises:
        RateCardValidationError: If the card has no client email.
    """
    contact = card.client_contact
    if contact is None or not contact.email:
        raise RateCardValidationError("clientContact.email is required to send a rate card for approval")

    links = approval_links(public_base_url, token)
    greeting = f"Dear {contact.name}," if contact.name else "Hello,"
    lines = [
        greeting,
        "",
        f"A new pricing proposal, \"{card.name}\", has been prepared for "
        f"{contact.company or 'your company'}.",
        f"Fuel surcharge: {_percentage(card.fuel_charge_percentage)}",
    ]
    if card.notes:
        lines += ["", f"Notes: {card.notes}"]
    lines += [
        "",
        "Please review the proposal and record your decision:",
        "",
        f"Approve: {links.approve_url}",
        f"Reject:  {links.reject_url}",
        "",
        "Each link can be used once. A newer email replaces the links in this one.",
    ]

    message = EmailMessage()
    message.set_content("\n".join(lines))
    message["To"] = contact.email
    message["From"] = sender or DEFAULT_SENDER
    message["Subject"] = f"Pricing proposal for approval: {card.name}"
    return message


def compose_confirmation_email(card: RateCard, sender: str = "") -> EmailMessage | None:
    """Compose the notice confirming a client's decision on *card*.

    Returns:
        The message, or ``None`` when the card is still pending or has no
        client email to write to.
    """
    contact = card.client_contact
    if contact is None or not contact.email or card.is_pending:
        return None

    if card.status is RateCardStatus.APPROVED:
        subject = f"Pricing approved: {card.name}"
        outcome = f"Your pricing proposal \"{card.name}\" has been approved and is now active."
    else:
        subject = f"Pricing rejected: {card.name}"
        outcome = (
            f"Your pricing proposal \"{card.name}\" has been rejected. "
            "Please contact us for further discussion."
        )

    message = EmailMessage()
    message.set_content(
        "\n".join([f"Dear {contact.name or 'Valued Client'},", "", outcome, "", "Thank you."])
    )
    message["To"] = contact.email
    message["From"] = sender or DEFAULT_SENDER
    message["Subject"] = subject
    return message


class ApprovalMailer(Protocol):
    """Delivery backend for approval emails."""

    def send(self, message: EmailMessage) -> None:
        """Deliver *message*, raising on failure."""
        ...


class LoggingMailer:
    """Mailer that records each dispatch in the log instead of delivering it.

    The most recent messages are kept in ``sent`` for inspection.
    """

    def __init__(self) -> None:
        self.sent: deque[EmailMessage] = deque(maxlen=SENT_HISTORY)

    def send(self, message: EmailMessage) -> None:
        """Log the dispatch of *message*."""
        self.sent.append(message)
        logger.info(
            "Approval email dispatched",
            to=message["To"],
            subject=message["Subject"],
        )
