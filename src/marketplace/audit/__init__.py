"""Audit trail for marketplace state changes."""

from marketplace.audit.logger import AuditLogger
from marketplace.audit.models import AuditEntry, EventType
from marketplace.audit.store import init_audit_table, insert_audit_entry, query_audit_trail

__all__ = [
    "AuditEntry",
    "AuditLogger",
    "EventType",
    "init_audit_table",
    "insert_audit_entry",
    "query_audit_trail",
]
