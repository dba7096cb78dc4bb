"""In-memory storage, used by tests and by hosts that persist elsewhere."""

from typing import Optional

from ahorros.services.storage.interface import (
    StateStorageInterface,
    StorageWriteFailure,
)


class InMemoryStorage(StateStorageInterface):
    """
    Dict-backed document storage.

    ``quota_bytes`` caps the total UTF-8 size of all stored documents;
    a write that would exceed it is rejected and the previous document
    is kept, like a browser's local storage quota.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._documents: dict[str, str] = {}
        self._quota_bytes = quota_bytes
        self.write_count = 0

    def _size_without(self, key: str) -> int:
        return sum(
            len(text.encode("utf-8"))
            for k, text in self._documents.items()
            if k != key
        )

    def read_document(self, key: str) -> Optional[str]:
        return self._documents.get(key)

    def write_document(self, key: str, text: str) -> None:
        if self._quota_bytes is not None:
            needed = self._size_without(key) + len(text.encode("utf-8"))
            if needed > self._quota_bytes:
                raise StorageWriteFailure(
                    f"Storage quota exceeded ({needed} > {self._quota_bytes} bytes)"
                )
        self._documents[key] = text
        self.write_count += 1

    def delete_document(self, key: str) -> bool:
        return self._documents.pop(key, None) is not None
