"""
Format Parsers

Four independent parsers turn a raw payload into an ordered list of row
records (column header -> raw string value):

- Backup:       JSON document exported by this app (restore, not mapping)
- Delimited:    CSV / bank statement text
- Spreadsheet:  first sheet of an .xlsx workbook
- Pasted:       tab-separated text copied from Excel / Sheets / Notion

DESIGN DECISION: Every tabular parser converges on the SAME row-record
shape. The field mapper and the normalizer never know which format a row
came from, so there is one pipeline instead of four.

Parsers fail loudly with a ParseError subclass when the payload as a
whole is unusable. Individual bad rows are NOT a parse failure; they are
handled (and rejected) by the normalizer.
"""

import csv
import io
import json
import zipfile
from datetime import date, datetime, time
from typing import Optional, Union

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ahorros.models.importing import ImportFormat, RowRecord


logger = structlog.get_logger(__name__)

Payload = Union[str, bytes]

# Tried in this order when no delimiter is configured
CANDIDATE_DELIMITERS = (",", ";", "\t", "|")

BACKUP_REQUIRED_KEYS = ("meta", "transactions", "goals")


class ParseError(Exception):
    """Base exception for parse failures. The message is user-facing."""
    pass


class InvalidBackupFormat(ParseError):
    """Backup document is not JSON or lacks meta/transactions/goals."""
    pass


class UnparsableDelimitedText(ParseError):
    """Delimited text produced no rows and the tokenizer reported errors."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(
            "The CSV file could not be parsed: " + "; ".join(errors[:3])
        )


class EmptySpreadsheet(ParseError):
    """The first sheet of the workbook has no data rows."""
    pass


class UnreadableSpreadsheet(ParseError):
    """The payload is not a readable .xlsx workbook."""
    pass


class InsufficientRows(ParseError):
    """Pasted text needs a header line and at least one data line."""
    pass


class UnsupportedFormatError(ParseError):
    """Unknown import format."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def _decode(payload: Payload) -> str:
    """Decode text payloads; bytes are UTF-8 with an optional BOM."""
    if isinstance(payload, bytes):
        try:
            return payload.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"The file is not valid UTF-8 text: {e.reason}") from e
    return payload.lstrip("\ufeff")


def _unique_headers(raw: list[str]) -> list[str]:
    """
    Make header names usable as dict keys.

    Blank headers become ``__EMPTY``, ``__EMPTY_1``...; repeated headers get
    a ``_1``, ``_2``... suffix so no column silently overwrites another.
    """
    seen: dict[str, int] = {}
    headers = []
    for name in raw:
        base = name.strip() or "__EMPTY"
        count = seen.get(base, 0)
        seen[base] = count + 1
        headers.append(base if count == 0 else f"{base}_{count}")
    return headers


def _detect_delimiter(text: str) -> str:
    """Pick the candidate delimiter that splits the header line the most."""
    first_line = text.split("\n", 1)[0]
    best, best_count = ",", 0
    for candidate in CANDIDATE_DELIMITERS:
        count = first_line.count(candidate)
        if count > best_count:
            best, best_count = candidate, count
    return best


def _cell_text(value) -> str:
    """Render a spreadsheet cell as the string a user would see."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def headers_of(rows: list[RowRecord]) -> list[str]:
    """Column headers of a parsed source (empty when there are no rows)."""
    if not rows:
        return []
    return list(rows[0].keys())


# =============================================================================
# PARSERS
# =============================================================================

def parse_backup(payload: Payload) -> dict:
    """
    Parse a backup document.

    Returns the document unchanged; validation against the current schema
    happens when the store restores it.

    Raises:
        InvalidBackupFormat: not JSON, or meta/transactions/goals missing
            or of the wrong shape
    """
    try:
        document = json.loads(_decode(payload))
    except json.JSONDecodeError as e:
        raise InvalidBackupFormat(f"The backup is not valid JSON: {e.msg}") from e

    if not isinstance(document, dict):
        raise InvalidBackupFormat("The file does not have the expected backup format.")

    missing = [key for key in BACKUP_REQUIRED_KEYS if key not in document]
    if missing:
        raise InvalidBackupFormat(
            f"The file does not have the expected backup format (missing: {', '.join(missing)})."
        )
    if not isinstance(document["meta"], dict):
        raise InvalidBackupFormat("Backup 'meta' must be an object.")
    if not isinstance(document["transactions"], list):
        raise InvalidBackupFormat("Backup 'transactions' must be a list.")
    if not isinstance(document["goals"], list):
        raise InvalidBackupFormat("Backup 'goals' must be a list.")

    return document


def parse_delimited(
    payload: Payload,
    delimiter: Optional[str] = None,
) -> list[RowRecord]:
    """
    Parse delimited text whose first row holds the field names.

    Empty lines are skipped. Rows with too few fields are padded with "",
    rows with too many keep the known columns. Such problems are recorded
    as errors but the rows are KEPT.

    Raises:
        UnparsableDelimitedText: only when zero rows resulted AND errors
            were recorded
    """
    text = _decode(payload).strip()
    if not text:
        return []

    delimiter = delimiter or _detect_delimiter(text)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, strict=True)

    headers: Optional[list[str]] = None
    rows: list[RowRecord] = []
    errors: list[str] = []

    while True:
        # A malformed line is skipped and recorded; tokenizing resumes on
        # the next line.
        try:
            record = next(reader)
        except StopIteration:
            break
        except csv.Error as e:
            errors.append(f"Line {reader.line_num}: {e}")
            continue

        if not record or all(not field.strip() for field in record):
            continue

        if headers is None:
            headers = _unique_headers(record)
            continue

        if len(record) != len(headers):
            errors.append(
                f"Line {reader.line_num}: expected {len(headers)} fields, "
                f"found {len(record)}"
            )
        padded = record + [""] * (len(headers) - len(record))
        rows.append(dict(zip(headers, padded)))

    if errors:
        if not rows:
            raise UnparsableDelimitedText(errors)
        logger.warning(
            "delimited_rows_recovered",
            row_count=len(rows),
            error_count=len(errors),
            errors=errors[:10],
        )

    logger.debug("delimited_parsed", row_count=len(rows), delimiter=delimiter)
    return rows


def parse_spreadsheet(payload: bytes) -> list[RowRecord]:
    """
    Parse the FIRST sheet of an .xlsx workbook.

    The first non-blank row is the header. Missing cells default to "",
    fully blank rows are skipped.

    Raises:
        UnreadableSpreadsheet: payload is not a workbook
        EmptySpreadsheet: no data rows
    """
    if isinstance(payload, str):
        raise UnreadableSpreadsheet("Spreadsheets must be read as binary data.")

    try:
        workbook = load_workbook(io.BytesIO(payload), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as e:
        raise UnreadableSpreadsheet(f"The Excel file could not be read: {e}") from e

    headers: Optional[list[str]] = None
    rows: list[RowRecord] = []
    try:
        sheet = workbook.worksheets[0]
        for values in sheet.iter_rows(values_only=True):
            cells = [_cell_text(v) for v in values]
            if all(not cell.strip() for cell in cells):
                continue

            if headers is None:
                headers = _unique_headers(cells)
                continue

            rows.append({
                header: (cells[i] if i < len(cells) else "")
                for i, header in enumerate(headers)
            })
    finally:
        workbook.close()

    if not rows:
        raise EmptySpreadsheet("The Excel file is empty.")

    logger.debug("spreadsheet_parsed", row_count=len(rows))
    return rows


def parse_pasted(payload: Payload) -> list[RowRecord]:
    """
    Parse tab-separated text pasted from a spreadsheet.

    Every header and field is trimmed; missing trailing fields become "".

    Raises:
        InsufficientRows: fewer than one header line plus one data line
    """
    text = _decode(payload).strip()
    lines = [line for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        raise InsufficientRows(
            "You need at least one header row and one data row."
        )

    headers = _unique_headers(lines[0].split("\t"))
    rows = []
    for line in lines[1:]:
        cols = line.split("\t")
        rows.append({
            header: (cols[i].strip() if i < len(cols) else "")
            for i, header in enumerate(headers)
        })

    logger.debug("pasted_parsed", row_count=len(rows))
    return rows


def parse(
    source_format: Union[ImportFormat, str],
    payload: Payload,
    delimiter: Optional[str] = None,
) -> Union[list[RowRecord], dict]:
    """
    Parse a payload in the given format.

    Returns row records for tabular formats, or the backup document for
    ``ImportFormat.BACKUP``.
    """
    try:
        fmt = ImportFormat(source_format)
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported import format: {source_format}")

    if fmt == ImportFormat.BACKUP:
        return parse_backup(payload)
    elif fmt == ImportFormat.CSV:
        return parse_delimited(payload, delimiter=delimiter)
    elif fmt == ImportFormat.SPREADSHEET:
        return parse_spreadsheet(payload)
    else:
        return parse_pasted(payload)
