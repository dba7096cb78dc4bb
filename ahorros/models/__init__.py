"""
Data Models Package

This package contains all Pydantic models used by Ahorros.
All data flowing through the system must conform to these schemas.
"""

from ahorros.models.finance import (
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    SCHEMA_VERSION,
    AppState,
    DocumentMeta,
    Goal,
    InvalidDepositError,
    Recurrence,
    Transaction,
    TransactionType,
    UserSettings,
    categories_for,
    generate_id,
    utc_now,
)
from ahorros.models.importing import (
    REQUIRED_FIELDS,
    Candidate,
    ImportFlowError,
    ImportFormat,
    ImportInProgressError,
    ImportPreview,
    ImportResult,
    MissingRequiredMapping,
    NormalizationReport,
    NoValidRows,
    RowRecord,
    RowRejection,
    SemanticField,
    UploadTooLargeError,
)
from ahorros.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "EXPENSE_CATEGORIES",
    "INCOME_CATEGORIES",
    "SCHEMA_VERSION",
    "AppState",
    "DocumentMeta",
    "Goal",
    "InvalidDepositError",
    "Recurrence",
    "Transaction",
    "TransactionType",
    "UserSettings",
    "categories_for",
    "generate_id",
    "utc_now",
    # Import models
    "REQUIRED_FIELDS",
    "Candidate",
    "ImportFlowError",
    "ImportFormat",
    "ImportInProgressError",
    "ImportPreview",
    "ImportResult",
    "MissingRequiredMapping",
    "NormalizationReport",
    "NoValidRows",
    "RowRecord",
    "RowRejection",
    "SemanticField",
    "UploadTooLargeError",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
