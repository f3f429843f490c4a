"""Approval email composition and delivery backends."""

from rate_approval.notifications.email import (
    ApprovalLinks,
    ApprovalMailer,
    LoggingMailer,
    approval_links,
    compose_approval_email,
    compose_confirmation_email,
)

__all__ = [
    "ApprovalLinks",
    "ApprovalMailer",
    "LoggingMailer",
    "approval_links",
    "compose_approval_email",
    "compose_confirmation_email",
]
