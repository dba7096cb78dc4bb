"""
Audit Logger

DESIGN DECISION: Every change to the user's data is logged.
This provides:
1. Traceability of imports and restores
2. Debugging capability when a document is reset
3. A short in-process history the UI can show

The audit logger:
- Is synchronous (the whole core is)
- Supports correlation IDs to trace all events of one import
"""

import logging
import sys
from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from ahorros.models.audit import AuditEvent, AuditEventBuilder, AuditEventType


# Configure structlog for local logging
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
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

_PKG_LOGGER_NAME = "ahorros"
_configured = False


def configure_logging(level: str = "INFO") -> None:
    """
    Attach a single stderr handler to the ``ahorros`` logger.

    Meant to be called once by the host application. Library modules only
    call ``structlog.get_logger(__name__)``.
    """
    global _configured
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    logger.setLevel(level)
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    _configured = True


class AuditLogger:
    """
    Central audit logging service.

    Logs events to the structured local log and keeps the most recent
    ones in memory.
    """

    def __init__(self, history_size: int = 200):
        self._history: deque[AuditEvent] = deque(maxlen=history_size)
        self._logger = structlog.get_logger("ahorros.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event at its severity."""
        self._history.append(event)
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def recent_events(self, limit: int = 50) -> list[AuditEvent]:
        """Most recent events, newest first."""
        events = list(self._history)[-limit:]
        events.reverse()
        return events

    def events_for(self, correlation_id: UUID) -> list[AuditEvent]:
        """All events of one import attempt, in chronological order."""
        return [e for e in self._history if e.correlation_id == correlation_id]

    def log_import_parsed(
        self,
        source_format: str,
        row_count: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.import_parsed(
            source_format=source_format,
            row_count=row_count,
            correlation_id=correlation_id,
        ))

    def log_import_committed(
        self,
        source_format: str,
        imported: int,
        rejected: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.import_committed(
            source_format=source_format,
            imported=imported,
            rejected=rejected,
            correlation_id=correlation_id,
        ))

    def log_rows_rejected(
        self,
        rejections: list[dict],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.rows_rejected(
            rejections=rejections,
            correlation_id=correlation_id,
        ))

    def log_import_failed(
        self,
        source_format: str,
        error: Exception,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.import_failed(
            source_format=source_format,
            error_type=type(error).__name__,
            error_message=str(error),
            correlation_id=correlation_id,
        ))

    def log_backup_restored(
        self,
        transactions: int,
        goals: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.backup_restored(
            transactions=transactions,
            goals=goals,
            correlation_id=correlation_id,
        ))

    def log_backup_exported(self, filename: str) -> None:
        self.log(AuditEventBuilder.backup_exported(filename))

    def log_state_initialized(self, currency: str) -> None:
        self.log(AuditEventBuilder.state_initialized(currency))

    def log_state_reset(self, reason: str, found_version: Optional[str] = None) -> None:
        self.log(AuditEventBuilder.state_reset(reason, found_version))

    def log_save_failed(self, error: Exception) -> None:
        self.log(AuditEventBuilder.save_failed(str(error)))

    def log_entity_changed(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        name: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.log(AuditEventBuilder.entity_changed(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            name=name,
            details=details,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an import attempt and pass it through
    every subsequent step.
    """
    return uuid4()
