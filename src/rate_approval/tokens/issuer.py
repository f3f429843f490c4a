"""Single-use approval tokens for the public (emailed link) approval channel.

A token is 256 bits from :mod:`secrets`, hex-encoded.  It is bound to one rate
card and stops authorising anything as soon as that card leaves ``pending``,
whichever channel moved it.  Consumption happens inside
:meth:`RateCardRepository.apply_transition`; this module only issues and
resolves.
"""

from __future__ import annotations

import secrets

import structlog

from rate_approval.domain.errors import (
    InvalidStateError,
    NotFoundError,
    RateCardValidationError,
    TokenInvalidError,
)
from rate_approval.domain.models import RateCard
from rate_approval.store.repository import RateCardRepository
from rate_approval.time_utils import format_timestamp

logger = structlog.get_logger()

TOKEN_BYTES = 32


class ApprovalTokenIssuer:
    """Issue and resolve approval tokens.

    Args:
        repository: The rate-card repository (its connection also holds the
            ``approval_tokens`` table).
        token_bytes: Random bytes per token; at least 16 (128 bits).
    """

    def __init__(self, repository: RateCardRepository, token_bytes: int = TOKEN_BYTES) -> None:
        if token_bytes < 16:
            raise ValueError("token_bytes must be at least 16 (128 bits of entropy)")
        self._repository = repository
        self._token_bytes = token_bytes

    def issue(self, rate_card_id: str) -> str:
        """Create a new token for a pending rate card with a client email.

        Earlier outstanding tokens for the same card are revoked, so only the
        most recently emailed link works.

        Args:
            rate_card_id: The card the token will authorise.

        Returns:
            The opaque token string, for inclusion in the approval email.

        Raises:
            NotFoundError: If the card does not exist.
            InvalidStateError: If the card is not pending.
            RateCardValidationError: If the card has no client email.
        """
        token = secrets.token_hex(self._token_bytes)
        now = format_timestamp(self._repository.now())

        with self._repository.transaction() as conn:
            card = self._repository.fetch(conn, rate_card_id)
            if not card.is_pending:
                raise InvalidStateError(
                    f"Rate card '{rate_card_id}' is {card.status}; "
                    "only pending rate cards can be sent for approval"
                )
            if card.client_contact is None or not card.client_contact.email:
                raise RateCardValidationError(
                    "clientContact.email is required to send a rate card for approval"
                )

            conn.execute(
                """
                UPDATE approval_tokens SET revoked_at = ?
                WHERE rate_card_id = ? AND consumed_at IS NULL AND revoked_at IS NULL
                """,
                (now, rate_card_id),
            )
            conn.execute(
                "INSERT INTO approval_tokens (token, rate_card_id, created_at) VALUES (?, ?, ?)",
                (token, rate_card_id, now),
            )
            audit_logger = self._repository.audit_logger
            if audit_logger is not None:
                audit_logger.log_token_issued(card)

        logger.info("Approval token issued", rate_card_id=rate_card_id)
        return token

    def resolve(self, token: str) -> RateCard:
        """Return the pending rate card a token authorises, without consuming it.

        Args:
            token: The token from the approval link.

        Returns:
            The bound rate card, in full.

        Raises:
            TokenInvalidError: If the token is unknown, consumed, revoked, or
                its rate card is no longer pending (or was deleted).
        """
        if not token:
            raise TokenInvalidError()

        with self._repository.reading() as conn:
            row = conn.execute(
                """
                SELECT rate_card_id FROM approval_tokens
                WHERE token = ? AND consumed_at IS NULL AND revoked_at IS NULL
                """,
                (token,),
            ).fetchone()
            if row is None:
                raise TokenInvalidError()
            try:
                card = self._repository.fetch(conn, row[0])
            except NotFoundError:
                raise TokenInvalidError() from None

        if not card.is_pending:
            raise TokenInvalidError()
        return card
