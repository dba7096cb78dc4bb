"""
Abstract Storage Interface

DESIGN DECISION: Storage is a key -> document-text store.
The whole application state is ONE document under ONE key, so the
backend never needs to understand transactions or goals. This allows us to:
1. Swap the local file backend for anything that stores a string
2. Use in-memory storage for testing
3. Keep every write an atomic whole-document replace

The interface is intentionally tiny - read, write, delete.
"""

from abc import ABC, abstractmethod
from typing import Optional


class StateStorageInterface(ABC):
    """
    Abstract interface for document storage.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    def read_document(self, key: str) -> Optional[str]:
        """
        Read the document stored under a key.

        Args:
            key: Storage key

        Returns:
            The stored text, or None if nothing is stored

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def write_document(self, key: str, text: str) -> None:
        """
        Replace the document stored under a key.

        The write is all-or-nothing: after a failure the previous document
        is still intact.

        Raises:
            StorageWriteFailure: If the backend rejects the write
        """
        pass

    @abstractmethod
    def delete_document(self, key: str) -> bool:
        """
        Delete the document stored under a key.

        Returns:
            True if something was deleted
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageWriteFailure(StorageError):
    """The backend rejected a write (e.g., quota exceeded, disk full)."""
    pass


class NotFoundError(StorageError):
    """Entity not found in the document."""
    pass
