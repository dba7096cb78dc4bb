"""
Storage Services Package

Provides the abstract document storage interface and its implementations:
local JSON files for real use, a dict for tests.
"""

from ahorros.services.storage.interface import (
    NotFoundError,
    StateStorageInterface,
    StorageError,
    StorageWriteFailure,
)
from ahorros.services.storage.local_file import LocalFileStorage
from ahorros.services.storage.memory import InMemoryStorage

__all__ = [
    # Interface
    "StateStorageInterface",
    # Exceptions
    "NotFoundError",
    "StorageError",
    "StorageWriteFailure",
    # Implementations
    "InMemoryStorage",
    "LocalFileStorage",
]
