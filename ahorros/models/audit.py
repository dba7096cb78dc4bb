"""
Audit Models for Ahorros

Every mutation of the document and every import attempt produces an
audit event. Events are emitted as structured log lines so a user (or a
developer) can reconstruct what happened to their data.

DESIGN DECISION: Audit events are append-only and never stored inside the
application document; the document holds financial data only.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ahorros.models.finance import utc_now


DESCRIPTION_MAX_LENGTH = 500

# Longest user-supplied text (names, reasons) embedded in a description
LABEL_MAX_LENGTH = 80


def clip(text: str, limit: int = LABEL_MAX_LENGTH) -> str:
    """Shorten ``text`` to at most ``limit`` characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Import pipeline
    IMPORT_PARSED = "import_parsed"
    IMPORT_COMMITTED = "import_committed"
    IMPORT_FAILED = "import_failed"
    ROWS_REJECTED = "rows_rejected"

    # Backup
    BACKUP_RESTORED = "backup_restored"
    BACKUP_EXPORTED = "backup_exported"

    # Document lifecycle
    STATE_INITIALIZED = "state_initialized"
    STATE_RESET = "state_reset"
    SAVE_FAILED = "save_failed"

    # Entities
    TRANSACTION_ADDED = "transaction_added"
    TRANSACTION_UPDATED = "transaction_updated"
    TRANSACTION_DELETED = "transaction_deleted"
    GOAL_ADDED = "goal_added"
    GOAL_UPDATED = "goal_updated"
    GOAL_DELETED = "goal_deleted"
    GOAL_DEPOSIT = "goal_deposit"
    SETTINGS_UPDATED = "settings_updated"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """A single audit event."""

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utc_now)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'document')"
    )
    entity_id: Optional[str] = None

    # Ties together every event of one import attempt
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=DESCRIPTION_MAX_LENGTH)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.import_committed("csv", 12, 1, correlation_id)
        event = AuditEventBuilder.entity_changed(AuditEventType.GOAL_ADDED, "goal", goal.id, goal.name)
    """

    @staticmethod
    def import_parsed(
        source_format: str,
        row_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_PARSED,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Parsed {row_count} rows from {source_format}",
            details={"format": source_format, "row_count": row_count},
        )

    @staticmethod
    def import_committed(
        source_format: str,
        imported: int,
        rejected: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMMITTED,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Imported {imported} transactions from {source_format}",
            details={
                "format": source_format,
                "imported_count": imported,
                "rejected_count": rejected,
            },
        )

    @staticmethod
    def rows_rejected(
        rejections: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ROWS_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"{len(rejections)} rows were skipped",
            details={"rejections": rejections},
        )

    @staticmethod
    def import_failed(
        source_format: str,
        error_type: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="import",
            correlation_id=correlation_id,
            description=f"Import from {source_format} failed: {error_type}",
            details={"format": source_format, "error_type": error_type},
            error_message=error_message,
        )

    @staticmethod
    def backup_restored(
        transactions: int,
        goals: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_RESTORED,
            entity_type="document",
            correlation_id=correlation_id,
            description="Document replaced from backup",
            details={"transactions": transactions, "goals": goals},
        )

    @staticmethod
    def backup_exported(filename: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_EXPORTED,
            entity_type="document",
            description=f"Backup exported as {clip(filename)}",
            details={"filename": filename},
        )

    @staticmethod
    def state_initialized(currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_INITIALIZED,
            entity_type="document",
            description="New document created with defaults",
            details={"currency": currency},
        )

    @staticmethod
    def state_reset(reason: str, found_version: Optional[str] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="document",
            description=f"Document reset to defaults: {clip(reason)}",
            details={"reason": reason, "found_version": found_version},
        )

    @staticmethod
    def save_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="document",
            description="Document could not be saved",
            error_message=error_message,
        )

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        name: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        verb = event_type.value.rsplit("_", 1)[-1]
        label = f" '{clip(name)}'" if name else ""
        return AuditEvent(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()}{label} {verb}",
            details=details or {},
        )
