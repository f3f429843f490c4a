"""Admin routes: rate-card lifecycle, internal decisions, and corporate binding.

Every route requires the ``X-Admin-Key`` / ``X-Admin-Name`` headers checked by
:func:`~rate_approval.api.deps.require_admin`.  Gateways are synchronous and
SQLite-bound, so handlers are plain ``def`` and run in the threadpool.
"""

from __future__ import annotations

from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Query

from rate_approval.api.deps import AdminGateway, AdminName, AppSettings, require_admin
from rate_approval.api.envelope import ok, pagination
from rate_approval.domain.models import CamelModel, ClientContact, RateCardInput, RateCardPatch
from rate_approval.domain.types import RateCardStatus
from rate_approval.pricing.lookup import ShipmentQuery

logger = structlog.get_logger()

router = APIRouter(dependencies=[Depends(require_admin)])


class CreateRateCardRequest(RateCardInput):
    """Body of ``POST /rate-cards``."""

    send_email_approval: bool = False


class ApproveRequest(CamelModel):
    """Body of ``PATCH /rate-cards/{id}/approve``."""

    approved_by: str | None = None


class RejectRequest(CamelModel):
    """Body of ``PATCH /rate-cards/{id}/reject``."""

    rejection_reason: str | None = None


class SendApprovalEmailRequest(CamelModel):
    """Body of ``POST /rate-cards/{id}/send-approval-email``."""

    client_contact: ClientContact | None = None


class AssignCorporateRequest(CamelModel):
    """Body of ``PATCH /rate-cards/{id}/assign``."""

    corporate_client_id: str = ""


@router.post("/rate-cards")
def create_rate_card(
    body: CreateRateCardRequest, admin: AdminName, gateway: AdminGateway
) -> dict[str, Any]:
    """Create a pending rate card, optionally emailing the client."""
    data = RateCardInput.model_validate(body.model_dump(exclude={"send_email_approval"}))
    result = gateway.create(data, admin, send_approval_email=body.send_email_approval)
    extra: dict[str, Any] = {}
    if body.send_email_approval:
        extra["emailSent"] = result.email_sent
        if result.email_error:
            extra["emailError"] = result.email_error
    return ok(result.card.to_wire(), **extra)


@router.get("/rate-cards")
def list_rate_cards(
    gateway: AdminGateway,
    settings: AppSettings,
    search: str | None = None,
    status: RateCardStatus | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(alias="pageSize", ge=1)] = None,
    exclude_assigned: Annotated[bool, Query(alias="excludeAssigned")] = False,
) -> dict[str, Any]:
    """List rate cards, newest first, with search, status filter and paging."""
    size = min(page_size or settings.default_page_size, settings.max_page_size)
    result = gateway.list(
        search=search,
        status=status,
        page=page,
        page_size=size,
        unassigned_only=exclude_assigned,
    )
    return ok([card.to_wire() for card in result.items], pagination=pagination(result))


@router.get("/rate-cards/{rate_card_id}")
def get_rate_card(rate_card_id: str, gateway: AdminGateway) -> dict[str, Any]:
    """Return one rate card."""
    return ok(gateway.get(rate_card_id).to_wire())


@router.put("/rate-cards/{rate_card_id}")
def update_rate_card(
    rate_card_id: str, body: RateCardPatch, admin: AdminName, gateway: AdminGateway
) -> dict[str, Any]:
    """Edit a pending rate card; 409 once it has been decided."""
    return ok(gateway.update(rate_card_id, body, admin).to_wire())


@router.delete("/rate-cards/{rate_card_id}")
def delete_rate_card(rate_card_id: str, admin: AdminName, gateway: AdminGateway) -> dict[str, Any]:
    """Delete a rate card in any status."""
    card = gateway.delete(rate_card_id, admin)
    return ok(message=f"Rate card '{card.name}' deleted")


@router.patch("/rate-cards/{rate_card_id}/approve")
def approve_rate_card(
    rate_card_id: str,
    admin: AdminName,
    gateway: AdminGateway,
    body: ApproveRequest | None = None,
) -> dict[str, Any]:
    """Approve on the internal channel; the approver defaults to the admin."""
    approver = body.approved_by if body and body.approved_by and body.approved_by.strip() else admin
    return ok(gateway.approve(rate_card_id, approver).to_wire())


@router.patch("/rate-cards/{rate_card_id}/reject")
def reject_rate_card(
    rate_card_id: str,
    admin: AdminName,
    gateway: AdminGateway,
    body: RejectRequest | None = None,
) -> dict[str, Any]:
    """Reject on the internal channel; a rejection reason is required."""
    reason = body.rejection_reason if body else None
    return ok(gateway.reject(rate_card_id, admin, reason).to_wire())


@router.post("/rate-cards/{rate_card_id}/send-approval-email")
def send_approval_email(
    rate_card_id: str,
    admin: AdminName,
    gateway: AdminGateway,
    body: SendApprovalEmailRequest | None = None,
) -> dict[str, Any]:
    """Email the client fresh approve/reject links for a pending rate card."""
    contact = body.client_contact if body else None
    card = gateway.send_approval_email(rate_card_id, admin, contact)
    return ok(card.to_wire(), message="Approval email sent")


@router.patch("/rate-cards/{rate_card_id}/assign")
def assign_rate_card(
    rate_card_id: str, body: AssignCorporateRequest, admin: AdminName, gateway: AdminGateway
) -> dict[str, Any]:
    """Make an approved rate card the active card of a corporate client."""
    card = gateway.assign_corporate(rate_card_id, body.corporate_client_id, admin)
    return ok(card.to_wire())


@router.get("/corporates/{corporate_client_id}/rate-card")
def corporate_rate_card(corporate_client_id: str, gateway: AdminGateway) -> dict[str, Any]:
    """Return the corporate client's active rate card without internal fields."""
    return ok(gateway.active_for_corporate(corporate_client_id).to_corporate_view())


@router.post("/corporates/{corporate_client_id}/quote")
def quote_for_corporate(
    corporate_client_id: str, body: ShipmentQuery, gateway: AdminGateway
) -> dict[str, Any]:
    """Price a shipment under the corporate client's active rate card.

    The base charge excludes the fuel surcharge; its percentage is returned
    alongside for invoicing.
    """
    card, charge = gateway.quote(corporate_client_id, body)
    return ok(
        {
            "rateCardId": card.id,
            "rateCardName": card.name,
            "baseCharge": float(charge),
            "fuelChargePercentage": float(card.fuel_charge_percentage),
        }
    )
