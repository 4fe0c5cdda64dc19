"""
Audit Recorder

DESIGN DECISION: Every attribution mutation is recorded.
This provides:
1. Complete traceability of money moved between incomes and payments
2. Debugging capability
3. A household can see who changed what, and when

The recorder:
- Appends inside the caller's unit of work, so the record commits
  with the mutation or not at all
- Never swallows a failed append: an unaudited mutation must roll back
- Mirrors every record to the structured log
"""

import logging
import sys
from typing import Optional

import structlog

from household_ledger.config import LoggingSettings, get_settings
from household_ledger.models.audit import AuditEvent, AuditSeverity
from household_ledger.services.storage import AuditAppendError, LedgerUnitOfWork


def configure_logging(settings: Optional[LoggingSettings] = None) -> None:
    """Configure structlog on top of stdlib logging."""
    settings = settings or get_settings().logging

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.level),
    )

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Configure structlog for local logging
configure_logging()


class AuditRecorder:
    """
    Central audit recording service.

    Records events both to:
    1. The unit of work (persisted with the mutation)
    2. Structured local log (for debugging)
    """

    def __init__(self):
        self._logger = structlog.get_logger(__name__)

    async def record(self, uow: LedgerUnitOfWork, event: AuditEvent) -> None:
        """
        Append an audit event to the unit of work.

        Raises:
            AuditAppendError: If the append fails for any reason.
                              The unit of work must then be abandoned.
        """
        try:
            await uow.append_audit(event)
        except Exception as e:
            self._logger.error(
                "audit_append_failed",
                error=str(e),
                event_id=str(event.event_id),
                entity_id=str(event.entity_id),
            )
            raise AuditAppendError(
                f"Could not append audit event {event.event_id}: {e}"
            ) from e

        log_dict = event.to_log_dict()
        if event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)
