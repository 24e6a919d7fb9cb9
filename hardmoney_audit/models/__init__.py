"""Models module - imports the audit models so SQLModel registers the table."""

from hardmoney_audit.models.audit_event import (
    AuditAction,
    AuditEvent,
    AuditEventCreate,
    AuditEventRecord,
    Outcome,
    Severity,
)

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditEventCreate",
    "AuditEventRecord",
    "Outcome",
    "Severity",
]
