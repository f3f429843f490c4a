"""Approval state machine and the admin/public gateways that drive it."""

from rate_approval.approval.gateways import (
    AdminApprovalGateway,
    CreateResult,
    PublicApprovalGateway,
)
from rate_approval.approval.machine import ApprovalStateMachine
from rate_approval.approval.transitions import TERMINAL_STATES, TRANSITIONS, ApprovalEvent

__all__ = [
    "TERMINAL_STATES",
    "TRANSITIONS",
    "AdminApprovalGateway",
    "ApprovalEvent",
    "ApprovalStateMachine",
    "CreateResult",
    "PublicApprovalGateway",
]
