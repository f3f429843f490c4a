"""Domain-specific exception classes for the rate-card approval service.

Each class carries the HTTP status it is surfaced with, so the API layer can
translate the whole hierarchy with a single exception handler.
"""

from __future__ import annotations

from typing import Any

from rate_approval.domain.types import RateCardStatus


class RateCardError(Exception):
    """Base class for all domain errors in the rate-card approval service."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class RateCardValidationError(RateCardError):
    """Raised when input is malformed or a required field is missing.

    Attributes:
        errors: Optional structured error list (as produced by pydantic).
    """

    status_code = 400

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(RateCardError):
    """Raised when a rate card id is unknown."""

    status_code = 404


class TokenInvalidError(RateCardError):
    """Raised when an approval token is unknown, consumed, revoked, or stale."""

    status_code = 404

    def __init__(self, message: str = "This approval link has expired or has already been used.") -> None:
        super().__init__(message)


class UnauthorizedError(RateCardError):
    """Raised when admin credentials are missing or invalid."""

    status_code = 401


class ConflictError(RateCardError):
    """Base class for state conflicts surfaced as HTTP 409."""

    status_code = 409


class AlreadyProcessedError(ConflictError):
    """Raised when an approve/reject targets a rate card that is no longer pending.

    Attributes:
        rate_card_id: The rate card that was targeted.
        current_status: The status observed when the transition was refused.
    """

    def __init__(self, rate_card_id: str, current_status: RateCardStatus | str) -> None:
        self.rate_card_id = rate_card_id
        self.current_status = current_status
        super().__init__(f"Rate card '{rate_card_id}' has already been {current_status}")


class InvalidStateError(ConflictError):
    """Raised when an operation requires a status the rate card is not in."""


class DuplicateNameError(ConflictError):
    """Raised when a pending or approved rate card already uses the same name."""


class EmailDeliveryError(RateCardError):
    """Raised when the mailer fails to hand off an approval email."""

    status_code = 502
