"""Audit trail: models, storage, and the typed logger for rate-card events.

The query CLI lives in :mod:`rate_approval.audit.cli`.
"""

from rate_approval.audit.logger import AuditLogger
from rate_approval.audit.models import AuditEntry, EventType
from rate_approval.audit.store import init_audit_table, insert_audit_entry, query_audit_trail

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "EventType",
    "init_audit_table",
    "insert_audit_entry",
    "query_audit_trail",
]
