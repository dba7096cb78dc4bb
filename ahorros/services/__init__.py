"""Services package."""

from ahorros.services.parsers import (
    EmptySpreadsheet,
    InsufficientRows,
    InvalidBackupFormat,
    ParseError,
    UnparsableDelimitedText,
    UnreadableSpreadsheet,
    UnsupportedFormatError,
)
from ahorros.services.storage import (
    InMemoryStorage,
    LocalFileStorage,
    NotFoundError,
    StateStorageInterface,
    StorageError,
    StorageWriteFailure,
)

__all__ = [
    # Parser errors
    "EmptySpreadsheet",
    "InsufficientRows",
    "InvalidBackupFormat",
    "ParseError",
    "UnparsableDelimitedText",
    "UnreadableSpreadsheet",
    "UnsupportedFormatError",
    # Storage
    "InMemoryStorage",
    "LocalFileStorage",
    "NotFoundError",
    "StateStorageInterface",
    "StorageError",
    "StorageWriteFailure",
]
