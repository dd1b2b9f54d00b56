"""Audit trail recording."""

from taskgate.audit.recorder import AuditRecord, AuditRecorder

__all__ = ["AuditRecord", "AuditRecorder"]
