"""FastAPI dependencies: admin authentication and service lookup."""

from __future__ import annotations

import hmac
from typing import Annotated

from fastapi import Depends, Header, Request

from rate_approval.approval.gateways import AdminApprovalGateway, PublicApprovalGateway
from rate_approval.config import Settings
from rate_approval.domain.errors import UnauthorizedError


def get_settings_dep(request: Request) -> Settings:
    """Return the settings the app was created with."""
    return request.app.state.settings


def get_admin_gateway(request: Request) -> AdminApprovalGateway:
    """Return the admin gateway from the app's services."""
    return request.app.state.services["admin_gateway"]


def get_public_gateway(request: Request) -> PublicApprovalGateway:
    """Return the public gateway from the app's services."""
    return request.app.state.services["public_gateway"]


def require_admin(
    settings: Annotated[Settings, Depends(get_settings_dep)],
    x_admin_key: Annotated[str | None, Header()] = None,
    x_admin_name: Annotated[str | None, Header()] = None,
) -> str:
    """Authenticate an admin request and return the admin's identity.

    The shared key is compared in constant time.  An unset key disables the
    admin API entirely.

    Raises:
        UnauthorizedError: If the key is unset, missing, or wrong, or no
            ``X-Admin-Name`` identity was supplied.
    """
    expected = settings.admin_api_key.get_secret_value()
    if not expected or not x_admin_key:
        raise UnauthorizedError("Admin credentials are required")
    if not hmac.compare_digest(x_admin_key.encode(), expected.encode()):
        raise UnauthorizedError("Invalid admin credentials")
    name = (x_admin_name or "").strip()
    if not name:
        raise UnauthorizedError("X-Admin-Name header is required")
    return name


AdminName = Annotated[str, Depends(require_admin)]
AdminGateway = Annotated[AdminApprovalGateway, Depends(get_admin_gateway)]
PublicGateway = Annotated[PublicApprovalGateway, Depends(get_public_gateway)]
AppSettings = Annotated[Settings, Depends(get_settings_dep)]
