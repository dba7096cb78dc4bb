"""
Local File Storage Implementation

Each key is stored as ``<data_dir>/<key>.json``.

Writes go to a temporary file in the same directory and are moved into
place with ``os.replace``, so a crash mid-write never leaves a truncated
document behind. Transient OS errors are retried before the write is
reported as failed.
"""

import os
import re
import tempfile
from pathlib import Path
from typing import Optional

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ahorros.config import get_settings
from ahorros.services.storage.interface import (
    StateStorageInterface,
    StorageError,
    StorageWriteFailure,
)


logger = structlog.get_logger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalFileStorage(StateStorageInterface):
    """Stores documents as JSON files in a directory."""

    def __init__(self, data_dir: Optional[Path] = None):
        self._data_dir = Path(data_dir or get_settings().storage.data_dir)

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    def _path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._data_dir / f"{key}.json"

    def read_document(self, key: str) -> Optional[str]:
        """
        Read the document text, or None when the file does not exist.

        Bytes that are not UTF-8 are replaced rather than raised on, so a
        damaged file reaches the caller as unreadable JSON.
        """
        path = self._path_for(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}")

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning("document_not_utf8", path=str(path), error=str(e))
            return data.decode("utf-8", errors="replace")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, max=1),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _atomic_write(self, path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def write_document(self, key: str, text: str) -> None:
        """Atomically replace the document file."""
        path = self._path_for(key)
        try:
            self._atomic_write(path, text)
        except OSError as e:
            logger.error("document_write_failed", path=str(path), error=str(e))
            raise StorageWriteFailure(f"Could not save {path}: {e}")

    def delete_document(self, key: str) -> bool:
        path = self._path_for(key)
        try:
            path.unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}")
