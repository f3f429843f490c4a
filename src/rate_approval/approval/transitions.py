"""Transition map defining all valid (status, event) -> status mappings."""

from enum import StrEnum

from rate_approval.domain.types import TERMINAL_STATUSES, RateCardStatus


class ApprovalEvent(StrEnum):
    """Events that can resolve a rate-card proposal."""

    APPROVE = "approve"
    REJECT = "reject"


# Any pair not in this dict is an invalid transition.
TRANSITIONS: dict[tuple[RateCardStatus, ApprovalEvent], RateCardStatus] = {
    (RateCardStatus.PENDING, ApprovalEvent.APPROVE): RateCardStatus.APPROVED,
    (RateCardStatus.PENDING, ApprovalEvent.REJECT): RateCardStatus.REJECTED,
}

# States that reject all events -- no outgoing transitions allowed.
TERMINAL_STATES: frozenset[RateCardStatus] = TERMINAL_STATUSES
