"""Format parsers package."""

from ahorros.services.parsers.formats import (
    EmptySpreadsheet,
    InsufficientRows,
    InvalidBackupFormat,
    ParseError,
    UnparsableDelimitedText,
    UnreadableSpreadsheet,
    UnsupportedFormatError,
    headers_of,
    parse,
    parse_backup,
    parse_delimited,
    parse_pasted,
    parse_spreadsheet,
)

__all__ = [
    "EmptySpreadsheet",
    "InsufficientRows",
    "InvalidBackupFormat",
    "ParseError",
    "UnparsableDelimitedText",
    "UnreadableSpreadsheet",
    "UnsupportedFormatError",
    "headers_of",
    "parse",
    "parse_backup",
    "parse_delimited",
    "parse_pasted",
    "parse_spreadsheet",
]
