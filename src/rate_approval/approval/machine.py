"""ApprovalStateMachine: the one place rate cards reach a terminal state.

Both the admin gateway and the public (token) gateway delegate here.  The
precondition check and the write happen in a single conditional update in
:meth:`RateCardRepository.apply_transition`, so when two channels race on the
same card exactly one succeeds and the other gets
:class:`~rate_approval.domain.errors.AlreadyProcessedError`.
"""

from __future__ import annotations

from typing import Any

import structlog

from rate_approval.approval.transitions import TERMINAL_STATES, TRANSITIONS, ApprovalEvent
from rate_approval.domain.errors import AlreadyProcessedError, RateCardValidationError
from rate_approval.domain.models import MAX_NAME_LENGTH, MAX_REASON_LENGTH, RateCard
from rate_approval.domain.types import ApprovalChannel, RateCardStatus
from rate_approval.observability.metrics import RATE_CARD_TRANSITIONS, refresh_pending
from rate_approval.store.repository import RateCardRepository

logger = structlog.get_logger()


def _require_text(value: str | None, field: str, max_length: int) -> str:
    value = (value or "").strip()
    if not value:
        raise RateCardValidationError(f"{field} is required")
    if len(value) > max_length:
        raise RateCardValidationError(f"{field} cannot be longer than {max_length} characters")
    return value


class ApprovalStateMachine:
    """Validate and apply ``approve``/``reject`` transitions on rate cards.

    Usage::

        machine = ApprovalStateMachine(repository)
        machine.approve(card_id, "Jane Doe", ApprovalChannel.PUBLIC)

    Args:
        repository: The rate-card repository used for loading and the
            atomic terminal write.
    """

    def __init__(self, repository: RateCardRepository) -> None:
        self._repository = repository

    @staticmethod
    def next_status(status: RateCardStatus, event: ApprovalEvent) -> RateCardStatus | None:
        """Return the status *event* leads to from *status*, or ``None`` if not allowed."""
        if status in TERMINAL_STATES:
            return None
        return TRANSITIONS.get((status, event))

    def approve(
        self,
        rate_card_id: str,
        approver_name: str | None,
        channel: ApprovalChannel,
        token: str | None = None,
    ) -> RateCard:
        """Approve a pending rate card.

        Args:
            rate_card_id: The card to approve.
            approver_name: Admin identity or the client's freeform name.
            channel: Which gateway the decision arrived through.
            token: Approval token the decision was made with, re-checked
                inside the write.

        Returns:
            The approved rate card.

        Raises:
            NotFoundError: If the card does not exist.
            AlreadyProcessedError: If the card is no longer pending, including
                when a concurrent caller won the race.
            TokenInvalidError: If *token* was revoked or consumed meanwhile.
            RateCardValidationError: If *approver_name* is blank.
        """

        def build(now: Any) -> dict[str, Any]:
            return {
                "status": RateCardStatus.APPROVED,
                "approved_by": _require_text(approver_name, "approvedBy", MAX_NAME_LENGTH),
                "approval_channel": channel,
                "approved_at": now,
                "updated_at": now,
            }

        return self._transition(rate_card_id, ApprovalEvent.APPROVE, channel, build, token)

    def reject(
        self,
        rate_card_id: str,
        rejector_name: str | None,
        reason: str | None,
        channel: ApprovalChannel,
        token: str | None = None,
    ) -> RateCard:
        """Reject a pending rate card with a reason.

        Args:
            rate_card_id: The card to reject.
            rejector_name: Admin identity or the client's freeform name.
            reason: Why the proposal was rejected; must not be blank.
            channel: Which gateway the decision arrived through.
            token: Approval token the decision was made with.

        Returns:
            The rejected rate card.

        Raises:
            NotFoundError: If the card does not exist.
            AlreadyProcessedError: If the card is no longer pending.
            TokenInvalidError: If *token* was revoked or consumed meanwhile.
            RateCardValidationError: If *rejector_name* or *reason* is blank.
        """

        def build(now: Any) -> dict[str, Any]:
            return {
                "status": RateCardStatus.REJECTED,
                "rejected_by": _require_text(rejector_name, "rejectedBy", MAX_NAME_LENGTH),
                "rejection_reason": _require_text(reason, "rejectionReason", MAX_REASON_LENGTH),
                "approval_channel": channel,
                "rejected_at": now,
                "updated_at": now,
            }

        return self._transition(rate_card_id, ApprovalEvent.REJECT, channel, build, token)

    def _transition(
        self,
        rate_card_id: str,
        event: ApprovalEvent,
        channel: ApprovalChannel,
        build: Any,
        token: str | None = None,
    ) -> RateCard:
        channel = ApprovalChannel(channel)
        if channel is ApprovalChannel.NONE:
            raise RateCardValidationError("A terminal transition needs an approval channel")

        current = self._repository.get(rate_card_id)
        if self.next_status(current.status, event) is None:
            raise AlreadyProcessedError(rate_card_id, current.status)

        changes = build(self._repository.now())
        updated = self._repository.apply_transition(rate_card_id, changes, token=token)
        if updated is None:
            # Lost the race: another caller resolved the card in between.
            latest = self._repository.get(rate_card_id)
            logger.info(
                "Rate card transition lost to concurrent decision",
                rate_card_id=rate_card_id,
                attempted=event.value,
                channel=channel.value,
                status=latest.status.value,
            )
            raise AlreadyProcessedError(rate_card_id, latest.status)

        RATE_CARD_TRANSITIONS.labels(status=updated.status.value, channel=channel.value).inc()
        refresh_pending(self._repository)
        logger.info(
            "Rate card resolved",
            rate_card_id=rate_card_id,
            status=updated.status.value,
            channel=channel.value,
        )
        return updated
