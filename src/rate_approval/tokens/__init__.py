"""Single-use approval tokens for the emailed approval links."""

from rate_approval.tokens.issuer import ApprovalTokenIssuer

__all__ = ["ApprovalTokenIssuer"]
