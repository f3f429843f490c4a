"""Tests for the admin and public approval gateways and the end-to-end scenarios."""

from __future__ import annotations

import re
import sqlite3
from decimal import Decimal
from email.message import EmailMessage
from typing import Any
from unittest.mock import MagicMock

import pytest

from rate_approval.approval.gateways import AdminApprovalGateway, PublicApprovalGateway
from rate_approval.approval.machine import ApprovalStateMachine
from rate_approval.audit.store import query_audit_trail
from rate_approval.domain.errors import (
    AlreadyProcessedError,
    EmailDeliveryError,
    InvalidStateError,
    NotFoundError,
    RateCardValidationError,
    TokenInvalidError,
)
from rate_approval.domain.types import ApprovalChannel, RateCardStatus
from rate_approval.notifications.email import LoggingMailer
from rate_approval.store.repository import RateCardRepository
from rate_approval.tokens.issuer import ApprovalTokenIssuer

TOKEN_IN_LINK = re.compile(r"/pricing-approval/([0-9a-f]{64})/approve")


def _token_from(message: EmailMessage) -> str:
    match = TOKEN_IN_LINK.search(message.get_content())
    assert match is not None
    return match.group(1)


# ---------------------------------------------------------------------------
# Admin gateway
# ---------------------------------------------------------------------------


class TestAdminCreate:
    def test_create_without_email(
        self,
        admin_gateway: AdminApprovalGateway,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        result = admin_gateway.create(sample_input, "admin")
        assert result.card.is_pending
        assert result.email_sent is False
        assert len(mailer.sent) == 0

    def test_create_and_send_email(
        self,
        admin_gateway: AdminApprovalGateway,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        result = admin_gateway.create(sample_input, "admin", send_approval_email=True)

        assert result.email_sent is True
        assert result.card.email_sent_at is not None
        message = mailer.sent[-1]
        assert message["To"] == "buyer@acme.example.com"
        assert message["From"] == "pricing@example.com"
        body = message.get_content()
        assert "https://pricing.example.com/pricing-approval/" in body
        assert "/reject" in body

    def test_failed_email_keeps_the_card(
        self,
        repository: RateCardRepository,
        machine: ApprovalStateMachine,
        issuer: ApprovalTokenIssuer,
        sample_input: dict[str, Any],
    ) -> None:
        broken = MagicMock()
        broken.send.side_effect = ConnectionError("smtp down")
        gateway = AdminApprovalGateway(repository, machine, issuer, mailer=broken)

        result = gateway.create(sample_input, "admin", send_approval_email=True)

        assert result.email_sent is False
        assert result.email_error is not None
        assert "smtp down" in result.email_error
        stored = repository.get(result.card.id)
        assert stored.is_pending
        assert stored.email_sent_at is None

    def test_email_without_client_address_is_reported(
        self, admin_gateway: AdminApprovalGateway
    ) -> None:
        result = admin_gateway.create({"name": "No contact"}, "admin", send_approval_email=True)
        assert result.email_sent is False
        assert result.email_error is not None
        assert "clientContact.email" in result.email_error


class TestAdminSendApprovalEmail:
    def test_updates_contact_before_sending(
        self,
        admin_gateway: AdminApprovalGateway,
        mailer: LoggingMailer,
    ) -> None:
        card = admin_gateway.create({"name": "Later contact"}, "admin").card

        sent = admin_gateway.send_approval_email(
            card.id, "admin", {"email": "new@client.example", "name": "New Client"}
        )

        assert sent.client_contact is not None
        assert sent.client_contact.email == "new@client.example"
        assert mailer.sent[-1]["To"] == "new@client.example"

    def test_resend_revokes_previous_link(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin", send_approval_email=True).card
        first = _token_from(mailer.sent[-1])
        admin_gateway.send_approval_email(card.id, "admin")
        second = _token_from(mailer.sent[-1])

        with pytest.raises(TokenInvalidError):
            public_gateway.fetch(first)
        assert public_gateway.fetch(second).id == card.id

    def test_decided_card_cannot_be_emailed(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        admin_gateway.approve(card.id, "Jane")
        with pytest.raises(InvalidStateError):
            admin_gateway.send_approval_email(card.id, "admin")

    def test_mailer_failure_raises_delivery_error(
        self,
        repository: RateCardRepository,
        machine: ApprovalStateMachine,
        issuer: ApprovalTokenIssuer,
        sample_input: dict[str, Any],
    ) -> None:
        broken = MagicMock()
        broken.send.side_effect = OSError("refused")
        gateway = AdminApprovalGateway(repository, machine, issuer, mailer=broken)
        card = gateway.create(sample_input, "admin").card

        with pytest.raises(EmailDeliveryError):
            gateway.send_approval_email(card.id, "admin")

    def test_email_dispatch_is_audited(
        self,
        admin_gateway: AdminApprovalGateway,
        conn: sqlite3.Connection,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin", send_approval_email=True).card
        rows = query_audit_trail(conn, rate_card_id=card.id, event_type="approval_email_sent")
        assert rows[0]["metadata"] == {"recipient": "buyer@acme.example.com"}


class TestAdminDecisions:
    def test_internal_channel(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        approved = admin_gateway.approve(card.id, "Head of Sales")
        assert approved.approval_channel is ApprovalChannel.INTERNAL
        assert approved.approved_by == "Head of Sales"

    def test_reject_requires_reason(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        with pytest.raises(RateCardValidationError):
            admin_gateway.reject(card.id, "admin", None)
        assert admin_gateway.get(card.id).is_pending

    def test_corporate_binding(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        admin_gateway.approve(card.id, "Jane")
        admin_gateway.assign_corporate(card.id, "corp-42", "admin")
        assert admin_gateway.active_for_corporate("corp-42").id == card.id

    def test_quote_prices_with_the_active_card(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        admin_gateway.approve(card.id, "Jane")
        admin_gateway.assign_corporate(card.id, "corp-42", "admin")

        quoted, charge = admin_gateway.quote(
            "corp-42", {"shipmentType": "non-dox", "weightKg": "2", "region": "restOfIndia"}
        )

        assert quoted.id == card.id
        assert charge == Decimal("25.00")

    def test_quote_needs_an_assigned_card(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        admin_gateway.approve(card.id, "Jane")
        with pytest.raises(NotFoundError):
            admin_gateway.quote(
                "corp-42", {"shipmentType": "dox", "weightKg": "1", "region": "assam"}
            )


# ---------------------------------------------------------------------------
# Public gateway
# ---------------------------------------------------------------------------


class TestPublicGateway:
    def test_defaults_approver_to_client_name(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        issuer: ApprovalTokenIssuer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        token = issuer.issue(card.id)

        approved = public_gateway.approve(token)

        assert approved.approved_by == "Jane Buyer"
        assert approved.approval_channel is ApprovalChannel.PUBLIC

    def test_falls_back_to_generic_names(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        issuer: ApprovalTokenIssuer,
    ) -> None:
        first = admin_gateway.create(
            {"name": "One", "clientContact": {"email": "a@client.example"}}, "admin"
        ).card
        second = admin_gateway.create(
            {"name": "Two", "clientContact": {"email": "b@client.example"}}, "admin"
        ).card

        approved = public_gateway.approve(issuer.issue(first.id), "  ")
        rejected = public_gateway.reject(issuer.issue(second.id), None, "Over budget")

        assert approved.approved_by == "Email Approval"
        assert rejected.rejected_by == "Email Rejection"

    def test_reject_still_requires_reason(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        issuer: ApprovalTokenIssuer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        token = issuer.issue(card.id)
        with pytest.raises(RateCardValidationError):
            public_gateway.reject(token, "Jane", "")
        # The failed attempt did not burn the token.
        assert public_gateway.fetch(token).id == card.id

    def test_invalid_token(self, public_gateway: PublicApprovalGateway) -> None:
        with pytest.raises(TokenInvalidError):
            public_gateway.approve("f" * 64, "Jane")

    def test_link_superseded_after_resolve_cannot_decide(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        issuer: ApprovalTokenIssuer,
        monkeypatch: pytest.MonkeyPatch,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        old_token = issuer.issue(card.id)
        resolve = issuer.resolve

        def resolve_then_resend(token: str) -> Any:
            resolved = resolve(token)
            issuer.issue(card.id)
            return resolved

        monkeypatch.setattr(issuer, "resolve", resolve_then_resend)

        with pytest.raises(TokenInvalidError):
            public_gateway.approve(old_token, "Jane")
        assert admin_gateway.get(card.id).is_pending

    def test_decision_is_confirmed_by_email(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        issuer: ApprovalTokenIssuer,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        public_gateway.approve(issuer.issue(card.id))

        confirmation = mailer.sent[-1]
        assert confirmation["To"] == "buyer@acme.example.com"
        assert confirmation["Subject"] == "Pricing approved: Acme Logistics 2026"
        assert "has been approved" in confirmation.get_content()

    def test_failed_confirmation_keeps_the_decision(
        self,
        admin_gateway: AdminApprovalGateway,
        issuer: ApprovalTokenIssuer,
        machine: ApprovalStateMachine,
        sample_input: dict[str, Any],
    ) -> None:
        broken = MagicMock()
        broken.send.side_effect = OSError("refused")
        gateway = PublicApprovalGateway(issuer, machine, mailer=broken)
        card = admin_gateway.create(sample_input, "admin").card

        rejected = gateway.reject(issuer.issue(card.id), "Jane", "Over budget")

        assert rejected.status is RateCardStatus.REJECTED
        assert admin_gateway.get(card.id).status is RateCardStatus.REJECTED
        broken.send.assert_called_once()


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_public_approval_then_admin_cannot_decide(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin", send_approval_email=True).card
        token = _token_from(mailer.sent[-1])

        assert public_gateway.fetch(token).name == "Acme Logistics 2026"
        approved = public_gateway.approve(token, "Jane Buyer")
        assert approved.status is RateCardStatus.APPROVED

        with pytest.raises(AlreadyProcessedError):
            admin_gateway.reject(card.id, "admin", "changed my mind")
        with pytest.raises(TokenInvalidError):
            public_gateway.approve(token, "Jane Buyer")

    def test_admin_rejection_kills_outstanding_link(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin", send_approval_email=True).card
        token = _token_from(mailer.sent[-1])

        rejected = admin_gateway.reject(card.id, "admin", "Superseded by new terms")
        assert rejected.rejection_reason == "Superseded by new terms"

        with pytest.raises(TokenInvalidError):
            public_gateway.fetch(token)

    def test_edit_then_approve_then_edit_is_blocked(
        self, admin_gateway: AdminApprovalGateway, sample_input: dict[str, Any]
    ) -> None:
        card = admin_gateway.create(sample_input, "admin").card
        admin_gateway.update(card.id, {"fuelChargePercentage": 18}, "admin")
        admin_gateway.approve(card.id, "Jane")

        with pytest.raises(InvalidStateError):
            admin_gateway.update(card.id, {"fuelChargePercentage": 20}, "admin")
        assert admin_gateway.get(card.id).fuel_charge_percentage == Decimal("18")

    def test_deleted_card_is_gone_everywhere(
        self,
        admin_gateway: AdminApprovalGateway,
        public_gateway: PublicApprovalGateway,
        mailer: LoggingMailer,
        sample_input: dict[str, Any],
    ) -> None:
        card = admin_gateway.create(sample_input, "admin", send_approval_email=True).card
        token = _token_from(mailer.sent[-1])

        admin_gateway.delete(card.id, "admin")

        with pytest.raises(NotFoundError):
            admin_gateway.get(card.id)
        with pytest.raises(TokenInvalidError):
            public_gateway.fetch(token)
