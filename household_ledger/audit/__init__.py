"""Audit recording package."""

from household_ledger.audit.recorder import AuditRecorder, configure_logging

__all__ = ["AuditRecorder", "configure_logging"]
