"""Public routes for clients holding an emailed approval token.

No credentials: the token in the path is the only authority, and it only
reaches the one rate card it was issued for.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from rate_approval.api.deps import PublicGateway
from rate_approval.api.envelope import ok
from rate_approval.domain.models import CamelModel

router = APIRouter(prefix="/public/rate-cards")


class PublicApproveRequest(CamelModel):
    """Body of ``POST /public/rate-cards/{token}/approve``."""

    approved_by: str | None = None


class PublicRejectRequest(CamelModel):
    """Body of ``POST /public/rate-cards/{token}/reject``."""

    rejected_by: str | None = None
    rejection_reason: str | None = None


@router.get("/{token}")
def view_rate_card(token: str, gateway: PublicGateway) -> dict[str, Any]:
    """Return the pending rate card bound to *token*."""
    return ok(gateway.fetch(token).to_wire())


@router.post("/{token}/approve")
def approve_rate_card(
    token: str, gateway: PublicGateway, body: PublicApproveRequest | None = None
) -> dict[str, Any]:
    """Approve the bound rate card on the public channel."""
    name = body.approved_by if body else None
    card = gateway.approve(token, name)
    return ok(card.to_wire(), message="Rate card approved")


@router.post("/{token}/reject")
def reject_rate_card(
    token: str, gateway: PublicGateway, body: PublicRejectRequest | None = None
) -> dict[str, Any]:
    """Reject the bound rate card on the public channel."""
    name = body.rejected_by if body else None
    reason = body.rejection_reason if body else None
    card = gateway.reject(token, name, reason)
    return ok(card.to_wire(), message="Rate card rejected")
