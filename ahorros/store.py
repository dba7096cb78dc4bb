"""
Application Store

Holds the single persisted document and is the ONLY writer of it.

DESIGN DECISION: Every mutation is a full-document read-modify-write:
1. Copy the committed state
2. Let the mutator change the copy
3. Stamp ``meta.updated_at``
4. Write the whole document in one replace
5. Commit the copy in memory

If step 4 fails the in-memory state stays at the last version that was
actually persisted, so what the user sees never drifts from what is on
disk.

The store is an explicit object handed to every consumer. There is no
module-level instance.
"""

import json
from collections.abc import Iterable
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from ahorros.audit import AuditLogger
from ahorros.config import get_settings
from ahorros.models.audit import AuditEventType
from ahorros.models.finance import (
    SCHEMA_VERSION,
    AppState,
    Goal,
    Transaction,
    UserSettings,
    utc_now,
)
from ahorros.services.parsers import InvalidBackupFormat
from ahorros.services.storage import (
    NotFoundError,
    StateStorageInterface,
    StorageWriteFailure,
)


logger = structlog.get_logger(__name__)

Mutator = Callable[[AppState], Optional[AppState]]
ModelT = TypeVar("ModelT", bound=BaseModel)


def _apply_updates(model: ModelT, updates: dict[str, Any], kind: str) -> ModelT:
    """Validated copy of ``model`` with ``updates`` merged in."""
    unknown = [key for key in updates if key not in type(model).model_fields]
    if unknown:
        raise ValueError(f"Unknown {kind} fields: {', '.join(sorted(unknown))}")
    return type(model).model_validate({**model.model_dump(), **updates})


def _index_of(items: list, item_id: str, kind: str) -> int:
    for index, item in enumerate(items):
        if item.id == item_id:
            return index
    raise NotFoundError(f"{kind} not found: {item_id}")


class AppStore:
    """
    Versioned single-document store.

    Usage:
        store = AppStore(LocalFileStorage())
        store.load()
        store.add_transaction(Transaction.create(...))
    """

    def __init__(
        self,
        storage: StateStorageInterface,
        key: Optional[str] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._storage = storage
        self._key = key or get_settings().storage.storage_key
        self._audit_logger = audit_logger
        self._state: Optional[AppState] = None

    @property
    def key(self) -> str:
        return self._key

    @property
    def state(self) -> AppState:
        """Deep copy of the committed state (loads on first access)."""
        if self._state is None:
            self.load()
        return self._state.model_copy(deep=True)

    # =========================================================================
    # LOADING
    # =========================================================================

    def _defaults(self) -> AppState:
        app = get_settings().app
        return AppState.defaults(
            currency=app.currency,
            user_name=app.default_user_name,
            interest_rate=app.default_interest_rate,
            emergency_fund_months=app.default_emergency_fund_months,
        )

    def _decode(self, text: str) -> tuple[Optional[AppState], str, Optional[str]]:
        """
        Decode a stored document.

        Returns (state, reason, found_version); state is None when the
        document has to be discarded.
        """
        try:
            document = json.loads(text)
        except json.JSONDecodeError:
            return None, "stored document is not valid JSON", None

        meta = document.get("meta") if isinstance(document, dict) else None
        found_version = meta.get("version") if isinstance(meta, dict) else None
        if found_version != SCHEMA_VERSION:
            return None, "incompatible document version", found_version

        try:
            return AppState.model_validate(document), "", found_version
        except ValidationError as e:
            return None, f"stored document failed validation ({e.error_count()} errors)", found_version

    def _persist_defaults(self, state: AppState) -> None:
        # A failed first write must not prevent the app from starting.
        try:
            self._write(state)
        except StorageWriteFailure:
            logger.error("defaults_not_persisted", key=self._key)

    def load(self) -> AppState:
        """
        Read the document from storage.

        Missing document: defaults are created and persisted.
        Unreadable, invalid or other-version document: discarded and
        replaced by defaults (no migration is attempted).
        """
        text = self._storage.read_document(self._key)

        if text is None:
            state = self._defaults()
            self._persist_defaults(state)
            logger.info("state_initialized", key=self._key)
            if self._audit_logger:
                self._audit_logger.log_state_initialized(state.meta.currency)
        else:
            state, reason, found_version = self._decode(text)
            if state is None:
                logger.warning(
                    "state_reset",
                    key=self._key,
                    reason=reason,
                    found_version=found_version,
                    expected_version=SCHEMA_VERSION,
                )
                state = self._defaults()
                self._persist_defaults(state)
                if self._audit_logger:
                    self._audit_logger.log_state_reset(reason, found_version)

        self._state = state
        return self.state

    # =========================================================================
    # WRITING
    # =========================================================================

    def _write(self, state: AppState) -> None:
        try:
            self._storage.write_document(self._key, state.to_json())
        except StorageWriteFailure as e:
            logger.error("save_failed", key=self._key, error=str(e))
            if self._audit_logger:
                self._audit_logger.log_save_failed(e)
            raise

    def update(self, mutator: Mutator) -> AppState:
        """
        Apply ``mutator`` to a working copy and persist the result.

        The mutator may change the copy in place or return a replacement.
        Nothing is committed if it raises or if the write fails.

        Raises:
            StorageWriteFailure: the document could not be saved; the
                committed state is unchanged
        """
        working = self.state
        replacement = mutator(working)
        if replacement is not None:
            working = replacement

        working.meta.updated_at = utc_now()
        self._write(working)
        self._state = working
        return self.state

    def _audit_change(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        name: Optional[str] = None,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            self._audit_logger.log_entity_changed(
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                name=name,
                details=details,
            )

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def add_transaction(self, transaction: Transaction) -> Transaction:
        """Append one transaction."""
        def mutate(state: AppState) -> None:
            if state.find_transaction(transaction.id) is not None:
                raise ValueError(f"Transaction id already exists: {transaction.id}")
            state.transactions.append(transaction)

        self.update(mutate)
        self._audit_change(
            AuditEventType.TRANSACTION_ADDED, "transaction", transaction.id,
            name=transaction.name,
        )
        return transaction

    def edit_transaction(self, transaction_id: str, **updates: Any) -> Transaction:
        """
        Merge ``updates`` into a transaction.

        Raises:
            NotFoundError: no transaction has this id
            ValueError: unknown field, id change or invalid value
        """
        if updates.get("id", transaction_id) != transaction_id:
            raise ValueError("Transaction ids cannot be changed")

        def mutate(state: AppState) -> None:
            index = _index_of(state.transactions, transaction_id, "Transaction")
            state.transactions[index] = _apply_updates(
                state.transactions[index], updates, "transaction"
            )

        state = self.update(mutate)
        updated = state.find_transaction(transaction_id)
        self._audit_change(
            AuditEventType.TRANSACTION_UPDATED, "transaction", transaction_id,
            name=updated.name, details={"fields": sorted(updates)},
        )
        return updated

    def delete_transaction(self, transaction_id: str) -> None:
        """
        Raises:
            NotFoundError: no transaction has this id
        """
        def mutate(state: AppState) -> None:
            del state.transactions[_index_of(state.transactions, transaction_id, "Transaction")]

        self.update(mutate)
        self._audit_change(AuditEventType.TRANSACTION_DELETED, "transaction", transaction_id)

    def append_transactions(self, transactions: Iterable[Transaction]) -> AppState:
        """Append imported transactions after the existing ones, in order."""
        transactions = list(transactions)

        def mutate(state: AppState) -> None:
            state.transactions.extend(transactions)

        return self.update(mutate)

    # =========================================================================
    # GOALS
    # =========================================================================

    def add_goal(self, goal: Goal) -> Goal:
        def mutate(state: AppState) -> None:
            if state.find_goal(goal.id) is not None:
                raise ValueError(f"Goal id already exists: {goal.id}")
            state.goals.append(goal)

        self.update(mutate)
        self._audit_change(AuditEventType.GOAL_ADDED, "goal", goal.id, name=goal.name)
        return goal

    def edit_goal(self, goal_id: str, **updates: Any) -> Goal:
        """
        Merge ``updates`` into a goal.

        Raises:
            NotFoundError: no goal has this id
            ValueError: unknown field, id change or invalid value
        """
        if updates.get("id", goal_id) != goal_id:
            raise ValueError("Goal ids cannot be changed")

        def mutate(state: AppState) -> None:
            index = _index_of(state.goals, goal_id, "Goal")
            state.goals[index] = _apply_updates(state.goals[index], updates, "goal")

        state = self.update(mutate)
        updated = state.find_goal(goal_id)
        self._audit_change(
            AuditEventType.GOAL_UPDATED, "goal", goal_id,
            name=updated.name, details={"fields": sorted(updates)},
        )
        return updated

    def delete_goal(self, goal_id: str) -> None:
        def mutate(state: AppState) -> None:
            del state.goals[_index_of(state.goals, goal_id, "Goal")]

        self.update(mutate)
        self._audit_change(AuditEventType.GOAL_DELETED, "goal", goal_id)

    def deposit_to_goal(self, goal_id: str, amount: Decimal | float | str) -> Goal:
        """
        Add ``amount`` to a goal's savings.

        Raises:
            NotFoundError: no goal has this id
            InvalidDepositError: amount not positive or above what remains
        """
        def mutate(state: AppState) -> None:
            index = _index_of(state.goals, goal_id, "Goal")
            state.goals[index] = state.goals[index].with_deposit(amount)

        state = self.update(mutate)
        goal = state.find_goal(goal_id)
        self._audit_change(
            AuditEventType.GOAL_DEPOSIT, "goal", goal_id,
            name=goal.name,
            details={"amount": str(amount), "current_amount": str(goal.current_amount)},
        )
        return goal

    # =========================================================================
    # SETTINGS
    # =========================================================================

    def update_settings(self, **changes: Any) -> UserSettings:
        """Merge ``changes`` into the user settings."""
        def mutate(state: AppState) -> None:
            state.settings = _apply_updates(state.settings, changes, "settings")

        state = self.update(mutate)
        self._audit_change(
            AuditEventType.SETTINGS_UPDATED, "settings", "settings",
            details={"fields": sorted(changes)},
        )
        return state.settings

    # =========================================================================
    # WHOLE DOCUMENT
    # =========================================================================

    def restore(self, document: dict) -> AppState:
        """
        Replace the whole document with a backup.

        Raises:
            InvalidBackupFormat: the backup is from another version or does
                not validate; the current document is left untouched
        """
        meta = document.get("meta") if isinstance(document, dict) else None
        version = meta.get("version") if isinstance(meta, dict) else None
        if version != SCHEMA_VERSION:
            raise InvalidBackupFormat(
                f"Backup version {version!r} is not supported (expected {SCHEMA_VERSION})."
            )

        try:
            restored = AppState.model_validate(document)
        except ValidationError as e:
            raise InvalidBackupFormat(
                f"The backup contains invalid data ({e.error_count()} errors)."
            ) from e

        return self.update(lambda _: restored)

    def export_backup(self, today: Optional[date] = None) -> tuple[str, str]:
        """
        Serialize the document for download.

        Returns:
            (filename, json_text) with 2-space indentation
        """
        day = today or utc_now().date()
        filename = f"ahorros-backup-{day.isoformat()}.json"
        text = self.state.to_json(indent=2)
        logger.info("backup_exported", filename=filename)
        if self._audit_logger:
            self._audit_logger.log_backup_exported(filename)
        return filename, text

    def reset(self) -> AppState:
        """Discard everything and start over with defaults."""
        state = self._defaults()
        self._write(state)
        self._state = state
        logger.warning("state_reset", key=self._key, reason="requested")
        if self._audit_logger:
            self._audit_logger.log_state_reset("requested")
        return self.state
