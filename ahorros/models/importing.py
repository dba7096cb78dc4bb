"""
Import Pipeline Models

Everything in this module is EPHEMERAL: it only exists while an import
session runs and is never written to the document.

Pipeline shapes:
    payload -> list[RowRecord] -> list[Candidate] -> NormalizationReport
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from ahorros.models.finance import Transaction, utc_now


# A raw row: column header -> raw string value.
RowRecord = dict[str, str]


class ImportFormat(str, Enum):
    """Supported import sources."""
    BACKUP = "backup"            # JSON document exported by this app
    CSV = "csv"                  # Delimited text (bank statements)
    SPREADSHEET = "spreadsheet"  # .xlsx workbook, first sheet only
    PASTED = "pasted"            # Tab-separated text copied from a sheet


class SemanticField(str, Enum):
    """The six transaction fields a source column can be mapped to."""
    NAME = "name"
    AMOUNT = "amount"
    CATEGORY = "category"
    TYPE = "type"
    RECURRENCE = "recurrence"
    DATE = "date"


# Fields the user must map before anything is normalized.
REQUIRED_FIELDS = (SemanticField.NAME, SemanticField.AMOUNT)


class Candidate(BaseModel):
    """
    A row projected onto the semantic fields.

    CRITICAL: This is UNVALIDATED data. Every value is the raw string the
    mapping resolved to ("" when unmapped). Previews show these as-is.
    """

    name: str = ""
    amount: str = ""
    category: str = ""
    type: str = ""
    recurrence: str = ""
    date: str = ""


class RowRejection(BaseModel):
    """Why a single row did not become a transaction."""

    row_index: int = Field(
        ...,
        ge=0,
        description="Zero-based index of the row in the parsed input"
    )
    reason: str


class NormalizationReport(BaseModel):
    """Outcome of normalizing a batch of candidates."""

    transactions: list[Transaction] = Field(default_factory=list)
    rejections: list[RowRejection] = Field(default_factory=list)

    @property
    def accepted_count(self) -> int:
        return len(self.transactions)

    @property
    def rejected_count(self) -> int:
        return len(self.rejections)

    @property
    def total_rows(self) -> int:
        return self.accepted_count + self.rejected_count


class ImportPreview(BaseModel):
    """First rows of a source, raw and mapped, before anything is committed."""

    format: ImportFormat
    headers: list[str] = Field(default_factory=list)
    total_rows: int = Field(ge=0)
    rows: list[dict[str, str]] = Field(default_factory=list)
    candidates: list[Candidate] = Field(default_factory=list)


class ImportResult(BaseModel):
    """What an import committed to the store."""

    correlation_id: UUID = Field(default_factory=uuid4)
    format: ImportFormat
    completed_at: datetime = Field(default_factory=utc_now)
    imported_count: int = Field(ge=0)
    rejected_count: int = Field(ge=0)
    rejections: list[RowRejection] = Field(default_factory=list)
    transaction_ids: list[str] = Field(default_factory=list)

    @property
    def summary(self) -> str:
        """One-line message for the user."""
        text = f"{self.imported_count} transactions imported"
        if self.rejected_count:
            text += f", {self.rejected_count} rows skipped"
        return text


# =============================================================================
# ERRORS
# =============================================================================

class ImportFlowError(Exception):
    """Base exception for import flow failures (surfaced to the user)."""
    pass


class MissingRequiredMapping(ImportFlowError):
    """The user did not map every required semantic field."""

    def __init__(self, missing: list[str], message: Optional[str] = None):
        self.missing = missing
        super().__init__(
            message or f"Map at least these fields: {', '.join(missing)}"
        )


class NoValidRows(ImportFlowError):
    """Normalization accepted zero rows; nothing was imported."""

    def __init__(self, total_rows: int):
        self.total_rows = total_rows
        super().__init__(
            f"No valid transactions were found in {total_rows} rows"
        )


class ImportInProgressError(ImportFlowError):
    """Another read or import is still running for this flow."""
    pass


class UploadTooLargeError(ImportFlowError):
    """The uploaded file exceeds the configured size limit."""
    pass
