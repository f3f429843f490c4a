"""Admin and public entry points to the rate-card approval workflow.

``AdminApprovalGateway`` serves authenticated operators: the full document
lifecycle plus approve/reject on the ``internal`` channel.  The
``PublicApprovalGateway`` serves clients holding an emailed token and can only
view, approve or reject the one card the token is bound to, on the ``public``
channel.  Both converge on the same :class:`ApprovalStateMachine`.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import structlog
from pydantic import BaseModel

from rate_approval.approval.machine import ApprovalStateMachine
from rate_approval.domain.errors import EmailDeliveryError, RateCardError
from rate_approval.domain.models import (
    ClientContact,
    RateCard,
    RateCardInput,
    RateCardPage,
    RateCardPatch,
)
from rate_approval.domain.types import ApprovalChannel, RateCardStatus
from rate_approval.notifications.email import (
    ApprovalMailer,
    LoggingMailer,
    compose_approval_email,
    compose_confirmation_email,
)
from rate_approval.observability.metrics import APPROVAL_EMAILS, refresh_pending
from rate_approval.pricing.lookup import ShipmentQuery, calculate_base_charge
from rate_approval.store.repository import RateCardRepository
from rate_approval.tokens.issuer import ApprovalTokenIssuer

logger = structlog.get_logger()

DEFAULT_PUBLIC_APPROVER = "Email Approval"
DEFAULT_PUBLIC_REJECTOR = "Email Rejection"


class CreateResult(BaseModel):
    """Outcome of creating a rate card, optionally with its approval email."""

    card: RateCard
    email_sent: bool = False
    email_error: str | None = None


class AdminApprovalGateway:
    """Operator-facing operations on rate cards.

    Args:
        repository: Rate-card storage.
        machine: The shared approval state machine.
        issuer: Approval token issuer used when emailing clients.
        mailer: Delivery backend for approval emails.
        public_base_url: Base URL of the public approval pages.
        mail_sender: ``From`` address for approval emails.
    """

    def __init__(
        self,
        repository: RateCardRepository,
        machine: ApprovalStateMachine,
        issuer: ApprovalTokenIssuer,
        mailer: ApprovalMailer | None = None,
        public_base_url: str = "http://localhost:3000",
        mail_sender: str = "",
    ) -> None:
        self._repository = repository
        self._machine = machine
        self._issuer = issuer
        self._mailer = mailer or LoggingMailer()
        self._public_base_url = public_base_url
        self._mail_sender = mail_sender

    def create(
        self,
        data: RateCardInput | Mapping[str, Any],
        created_by: str,
        send_approval_email: bool = False,
    ) -> CreateResult:
        """Create a pending rate card, optionally emailing it to the client.

        A failed email dispatch is logged and reported in the result; the card
        stays created.

        Args:
            data: Rate-card input (pricing tables, name, client contact, notes).
            created_by: Identity of the operator.
            send_approval_email: Email the approval links right away.

        Returns:
            The created card and the email outcome.
        """
        card = self._repository.create(data, created_by)
        refresh_pending(self._repository)
        if not send_approval_email:
            return CreateResult(card=card)

        try:
            card = self.send_approval_email(card.id, created_by)
        except RateCardError as exc:
            logger.warning(
                "Approval email failed after rate card creation",
                rate_card_id=card.id,
                error=exc.message,
            )
            return CreateResult(card=card, email_sent=False, email_error=exc.message)
        return CreateResult(card=card, email_sent=True)

    def list(
        self,
        *,
        search: str | None = None,
        status: RateCardStatus | str | None = None,
        page: int = 1,
        page_size: int = 10,
        unassigned_only: bool = False,
    ) -> RateCardPage:
        """Return one page of rate cards, newest first."""
        return self._repository.list(
            search=search,
            status=status,
            page=page,
            page_size=page_size,
            unassigned_only=unassigned_only,
        )

    def get(self, rate_card_id: str) -> RateCard:
        """Return a rate card by id."""
        return self._repository.get(rate_card_id)

    def update(
        self, rate_card_id: str, patch: RateCardPatch | Mapping[str, Any], actor: str
    ) -> RateCard:
        """Edit a pending rate card."""
        return self._repository.update(rate_card_id, patch, actor)

    def delete(self, rate_card_id: str, actor: str) -> RateCard:
        """Delete a rate card in any status, invalidating its tokens."""
        card = self._repository.delete(rate_card_id, actor)
        refresh_pending(self._repository)
        return card

    def approve(self, rate_card_id: str, approver_name: str) -> RateCard:
        """Approve a pending rate card on the internal channel."""
        return self._machine.approve(rate_card_id, approver_name, ApprovalChannel.INTERNAL)

    def reject(self, rate_card_id: str, rejector_name: str, reason: str | None) -> RateCard:
        """Reject a pending rate card on the internal channel."""
        return self._machine.reject(
            rate_card_id, rejector_name, reason, ApprovalChannel.INTERNAL
        )

    def send_approval_email(
        self,
        rate_card_id: str,
        actor: str,
        contact: ClientContact | Mapping[str, Any] | None = None,
    ) -> RateCard:
        """Email the client a fresh pair of approve/reject links.

        Issuing a new token revokes the links of any earlier email.

        Args:
            rate_card_id: A pending rate card.
            actor: Identity of the operator sending the email.
            contact: Replacement client contact, applied before sending.

        Returns:
            The card with ``email_sent_at`` stamped.

        Raises:
            NotFoundError: If the card does not exist.
            InvalidStateError: If the card is not pending.
            RateCardValidationError: If there is no client email.
            EmailDeliveryError: If the mailer fails.
        """
        if contact is not None:
            self._repository.update_client_contact(rate_card_id, contact)

        token = self._issuer.issue(rate_card_id)
        card = self._repository.get(rate_card_id)
        message = compose_approval_email(card, token, self._public_base_url, self._mail_sender)
        try:
            self._mailer.send(message)
        except Exception as exc:
            APPROVAL_EMAILS.labels(outcome="failed").inc()
            logger.error("Approval email delivery failed", rate_card_id=rate_card_id, exc_info=True)
            raise EmailDeliveryError(f"Failed to send approval email: {exc}") from exc

        APPROVAL_EMAILS.labels(outcome="sent").inc()
        card = self._repository.mark_email_sent(rate_card_id, actor)
        logger.info("Approval email sent", rate_card_id=rate_card_id, actor=actor)
        return card

    def assign_corporate(self, rate_card_id: str, corporate_client_id: str, actor: str) -> RateCard:
        """Make an approved rate card the active card of a corporate client."""
        return self._repository.assign_corporate(rate_card_id, corporate_client_id, actor)

    def active_for_corporate(self, corporate_client_id: str) -> RateCard:
        """Return the approved rate card assigned to a corporate client."""
        return self._repository.find_active_for_corporate(corporate_client_id)

    def quote(
        self, corporate_client_id: str, query: ShipmentQuery | dict[str, Any]
    ) -> tuple[RateCard, Decimal]:
        """Price a shipment under the corporate client's active rate card.

        Returns:
            The active card and the base charge before fuel surcharge.

        Raises:
            NotFoundError: If no approved rate card is assigned.
            RateCardValidationError: If the shipment is incomplete.
        """
        card = self.active_for_corporate(corporate_client_id)
        return card, calculate_base_charge(card, query)


class PublicApprovalGateway:
    """Token-authorised view and decision on a single rate card.

    After a decision the client gets a confirmation email.  Delivery is best
    effort: a mailer failure is logged and counted, the decision stands.

    Args:
        issuer: Token issuer used to resolve the bound rate card.
        machine: The shared approval state machine.
        mailer: Delivery backend for confirmation emails.
        mail_sender: ``From`` address for confirmation emails.
    """

    def __init__(
        self,
        issuer: ApprovalTokenIssuer,
        machine: ApprovalStateMachine,
        mailer: ApprovalMailer | None = None,
        mail_sender: str = "",
    ) -> None:
        self._issuer = issuer
        self._machine = machine
        self._mailer = mailer or LoggingMailer()
        self._mail_sender = mail_sender

    def fetch(self, token: str) -> RateCard:
        """Return the pending rate card *token* is bound to.

        Raises:
            TokenInvalidError: If the token no longer authorises anything.
        """
        return self._issuer.resolve(token)

    def approve(self, token: str, approver_name: str | None = None) -> RateCard:
        """Approve the bound rate card on the public channel.

        Without an approver name, the client contact's name is recorded,
        then ``"Email Approval"``.
        """
        card = self._issuer.resolve(token)
        name = _default_name(approver_name, card, DEFAULT_PUBLIC_APPROVER)
        decided = self._machine.approve(card.id, name, ApprovalChannel.PUBLIC, token=token)
        self._confirm(decided)
        return decided

    def reject(
        self, token: str, rejector_name: str | None = None, reason: str | None = None
    ) -> RateCard:
        """Reject the bound rate card on the public channel; *reason* is required."""
        card = self._issuer.resolve(token)
        name = _default_name(rejector_name, card, DEFAULT_PUBLIC_REJECTOR)
        decided = self._machine.reject(card.id, name, reason, ApprovalChannel.PUBLIC, token=token)
        self._confirm(decided)
        return decided

    def _confirm(self, card: RateCard) -> None:
        message = compose_confirmation_email(card, self._mail_sender)
        if message is None:
            return
        try:
            self._mailer.send(message)
        except Exception:
            APPROVAL_EMAILS.labels(outcome="failed").inc()
            logger.error(
                "Confirmation email delivery failed",
                rate_card_id=card.id,
                status=card.status.value,
                exc_info=True,
            )
            return
        APPROVAL_EMAILS.labels(outcome="sent").inc()
        logger.info("Confirmation email sent", rate_card_id=card.id, status=card.status.value)


def _default_name(given: str | None, card: RateCard, fallback: str) -> str:
    if given and given.strip():
        return given
    if card.client_contact is not None and card.client_contact.name:
        return card.client_contact.name
    return fallback
