"""
Main Orchestrator for Ahorros

This module ties together all the components and defines the
end-to-end flows for:
1. Tabular import (file -> parse -> map -> normalize -> append)
2. Backup restore (file -> parse -> validate -> replace document)
3. Backup export

DESIGN DECISION: The orchestrator enforces the boundaries:
- No rows are processed until the required fields are mapped
- Nothing is written unless at least one row survived normalization
- A failed import leaves the document exactly as it was
- Every attempt is audited under one correlation id

Everything is synchronous except reading the uploaded file, which runs
off the event loop. Only one read or import may be in flight per flow.
"""

import asyncio
from collections.abc import Mapping
from contextlib import contextmanager
from datetime import date
from pathlib import Path
from typing import Optional, Union

import structlog

from ahorros.audit import AuditLogger, configure_logging, create_correlation_id
from ahorros.config import get_settings
from ahorros.mapping import ColumnMapping, Resolver, map_rows, suggest_mapping
from ahorros.models.finance import AppState
from ahorros.models.importing import (
    ImportFlowError,
    ImportFormat,
    ImportInProgressError,
    ImportPreview,
    ImportResult,
    NoValidRows,
    UploadTooLargeError,
)
from ahorros.services.parsers import (
    ParseError,
    UnsupportedFormatError,
    headers_of,
    parse,
    parse_backup,
)
from ahorros.services.storage import (
    LocalFileStorage,
    StateStorageInterface,
    StorageError,
)
from ahorros.store import AppStore
from ahorros.validation import TransactionNormalizer


logger = structlog.get_logger(__name__)

Payload = Union[str, bytes]
MappingLike = Union[ColumnMapping, Mapping[str, Resolver]]


def _tabular_format(source_format: Union[ImportFormat, str]) -> ImportFormat:
    try:
        fmt = ImportFormat(source_format)
    except ValueError:
        raise UnsupportedFormatError(f"Unsupported import format: {source_format}")
    if fmt == ImportFormat.BACKUP:
        raise UnsupportedFormatError(
            "Backups replace the whole document; use restore_backup instead."
        )
    return fmt


class ImportFlow:
    """
    Orchestrates imports into the store.

    Flow (tabular):
    1. Read   -> raw bytes of the upload (async, size-limited)
    2. Preview -> first rows, raw and mapped (no validation)
    3. Import -> check mapping, parse, map, normalize, append

    Tabular imports only ever APPEND transactions. Goals and settings
    are untouched. Backups REPLACE the whole document.
    """

    def __init__(
        self,
        store: AppStore,
        audit_logger: Optional[AuditLogger] = None,
        normalizer: Optional[TransactionNormalizer] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._normalizer = normalizer or TransactionNormalizer()
        self._settings = get_settings().importing
        self._busy = False

    @property
    def in_progress(self) -> bool:
        return self._busy

    @contextmanager
    def _exclusive(self):
        if self._busy:
            raise ImportInProgressError("Another import is still running.")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    async def read_upload(self, path: Union[str, Path]) -> bytes:
        """
        Read an uploaded file without blocking the event loop.

        Raises:
            ImportInProgressError: another read or import is running
            UploadTooLargeError: the file exceeds the configured limit
        """
        path = Path(path)
        with self._exclusive():
            size = (await asyncio.to_thread(path.stat)).st_size
            limit = self._settings.max_upload_size_bytes
            if size > limit:
                raise UploadTooLargeError(
                    f"{path.name} is {size} bytes; the limit is {limit} bytes."
                )
            payload = await asyncio.to_thread(path.read_bytes)

        logger.debug("upload_read", filename=path.name, size=size)
        return payload

    def preview(
        self,
        source_format: Union[ImportFormat, str],
        payload: Payload,
        mapping: Optional[MappingLike] = None,
    ) -> ImportPreview:
        """
        Parse a source and show its first rows.

        Candidates are mapped with ``mapping`` or, when none is given, with
        the mapping suggested from the headers. Nothing is validated and
        nothing is written.
        """
        fmt = _tabular_format(source_format)
        rows = parse(fmt, payload, delimiter=self._settings.csv_delimiter)
        headers = headers_of(rows)

        if mapping is None:
            column_mapping = suggest_mapping(headers)
        else:
            column_mapping = ColumnMapping.from_dict(mapping)

        shown = rows[: self._settings.preview_rows]
        return ImportPreview(
            format=fmt,
            headers=headers,
            total_rows=len(rows),
            rows=shown,
            candidates=map_rows(shown, column_mapping),
        )

    def import_rows(
        self,
        source_format: Union[ImportFormat, str],
        payload: Payload,
        mapping: MappingLike,
    ) -> ImportResult:
        """
        Import a tabular source and append its valid rows.

        Rows that fail normalization are skipped and listed in the result.

        Raises:
            MissingRequiredMapping: name or amount not mapped (no row is
                processed)
            ParseError: the payload could not be parsed
            NoValidRows: every row was rejected; the document is unchanged
            StorageWriteFailure: the document could not be saved
        """
        fmt = _tabular_format(source_format)
        column_mapping = ColumnMapping.from_dict(mapping)
        correlation_id = create_correlation_id()

        with self._exclusive():
            try:
                column_mapping.require()

                rows = parse(fmt, payload, delimiter=self._settings.csv_delimiter)
                if self._audit_logger:
                    self._audit_logger.log_import_parsed(
                        source_format=fmt.value,
                        row_count=len(rows),
                        correlation_id=correlation_id,
                    )

                report = self._normalizer.normalize_with_report(map_rows(rows, column_mapping))
                if report.rejections and self._audit_logger:
                    self._audit_logger.log_rows_rejected(
                        rejections=[r.model_dump() for r in report.rejections],
                        correlation_id=correlation_id,
                    )

                if not report.transactions:
                    raise NoValidRows(len(rows))

                self._store.append_transactions(report.transactions)
            except (ParseError, ImportFlowError, StorageError) as e:
                logger.warning(
                    "import_failed",
                    source_format=fmt.value,
                    error_type=type(e).__name__,
                    error=str(e),
                    correlation_id=str(correlation_id),
                )
                if self._audit_logger:
                    self._audit_logger.log_import_failed(
                        source_format=fmt.value,
                        error=e,
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            self._audit_logger.log_import_committed(
                source_format=fmt.value,
                imported=report.accepted_count,
                rejected=report.rejected_count,
                correlation_id=correlation_id,
            )

        result = ImportResult(
            correlation_id=correlation_id,
            format=fmt,
            imported_count=report.accepted_count,
            rejected_count=report.rejected_count,
            rejections=report.rejections,
            transaction_ids=[t.id for t in report.transactions],
        )
        logger.info("import_committed", summary=result.summary, correlation_id=str(correlation_id))
        return result

    def restore_backup(self, payload: Payload) -> AppState:
        """
        Replace the whole document with a backup file.

        Raises:
            InvalidBackupFormat: not a backup of this version
            StorageWriteFailure: the document could not be saved
        """
        correlation_id = create_correlation_id()

        with self._exclusive():
            try:
                state = self._store.restore(parse_backup(payload))
            except (ParseError, StorageError) as e:
                logger.warning(
                    "restore_failed",
                    error_type=type(e).__name__,
                    error=str(e),
                    correlation_id=str(correlation_id),
                )
                if self._audit_logger:
                    self._audit_logger.log_import_failed(
                        source_format=ImportFormat.BACKUP.value,
                        error=e,
                        correlation_id=correlation_id,
                    )
                raise

        if self._audit_logger:
            self._audit_logger.log_backup_restored(
                transactions=len(state.transactions),
                goals=len(state.goals),
                correlation_id=correlation_id,
            )
        return state

    def export_backup(self, today: Optional[date] = None) -> tuple[str, str]:
        """(filename, json_text) of the current document."""
        return self._store.export_backup(today=today)


def create_app_components(
    storage: Optional[StateStorageInterface] = None,
) -> tuple[AppStore, ImportFlow, AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        storage: Document storage. Defaults to local files under the
                 configured data directory.

    Returns:
        (store, import_flow, audit_logger), with the store loaded
    """
    configure_logging(get_settings().app.effective_log_level)

    audit_logger = AuditLogger()
    store = AppStore(
        storage or LocalFileStorage(),
        audit_logger=audit_logger,
    )
    store.load()

    import_flow = ImportFlow(store, audit_logger=audit_logger)
    return store, import_flow, audit_logger
