"""
Tests for the application store and the storage backends.

In-memory storage for store behavior; pytest's tmp_path for the file
backend.
"""

import json
from datetime import date
from decimal import Decimal

import pytest

from ahorros.audit import AuditLogger
from ahorros.models.audit import DESCRIPTION_MAX_LENGTH, AuditEventType
from ahorros.models.finance import (
    SCHEMA_VERSION,
    AppState,
    Goal,
    InvalidDepositError,
    Transaction,
    TransactionType,
)
from ahorros.models.importing import Candidate
from ahorros.services.parsers import InvalidBackupFormat
from ahorros.services.storage import (
    InMemoryStorage,
    LocalFileStorage,
    NotFoundError,
    StorageError,
    StorageWriteFailure,
)
from ahorros.store import AppStore
from ahorros.validation import TransactionNormalizer


KEY = "test_doc"


class FlakyStorage(InMemoryStorage):
    """In-memory storage whose writes can be switched off."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False

    def write_document(self, key, text):
        if self.fail_writes:
            raise StorageWriteFailure("disk full")
        super().write_document(key, text)


@pytest.fixture
def storage():
    return FlakyStorage()


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def store(storage, audit_logger):
    store = AppStore(storage, key=KEY, audit_logger=audit_logger)
    store.load()
    return store


def _txn(name="Renta", amount="8000", type=TransactionType.EXPENSE):
    return Transaction(name=name, amount=Decimal(amount), type=type)


class TestLoading:
    """Tests for loading and version gating."""

    def test_missing_document_creates_defaults(self, storage, audit_logger):
        """Test first load writes the default document."""
        store = AppStore(storage, key=KEY, audit_logger=audit_logger)
        state = store.load()

        assert state.meta.version == SCHEMA_VERSION
        assert state.transactions == []
        assert storage.read_document(KEY) is not None
        assert audit_logger.recent_events(1)[0].event_type == AuditEventType.STATE_INITIALIZED

    def test_existing_document_is_loaded(self, storage, store):
        """Test that a second store sees what the first saved."""
        txn = store.add_transaction(_txn())
        other = AppStore(storage, key=KEY)
        assert other.load().transactions == [txn]

    def test_version_mismatch_resets(self, storage, audit_logger):
        """Test that a document of another version is discarded."""
        document = AppState.defaults().to_document()
        document["meta"]["version"] = "0.9.0"
        document["transactions"] = [_txn().model_dump(mode="json", by_alias=True)]
        storage.write_document(KEY, json.dumps(document))

        store = AppStore(storage, key=KEY, audit_logger=audit_logger)
        state = store.load()

        assert state.transactions == []
        assert state.meta.version == SCHEMA_VERSION
        event = audit_logger.recent_events(1)[0]
        assert event.event_type == AuditEventType.STATE_RESET
        assert event.details["found_version"] == "0.9.0"

    def test_corrupt_document_resets(self, storage):
        """Test that unreadable JSON is discarded."""
        storage.write_document(KEY, "{not json")
        state = AppStore(storage, key=KEY).load()
        assert state.transactions == []
        assert json.loads(storage.read_document(KEY))["meta"]["version"] == SCHEMA_VERSION

    def test_invalid_document_resets(self, storage):
        """Test that a current-version document with bad data is discarded."""
        document = AppState.defaults().to_document()
        document["transactions"] = [{"id": "x", "name": "Bad", "amount": -5, "type": "expense"}]
        storage.write_document(KEY, json.dumps(document))
        assert AppStore(storage, key=KEY).load().transactions == []

    def test_imported_amounts_survive_a_reload(self, storage, store):
        """Test that only storable amounts are appended and all of them reload."""
        report = TransactionNormalizer().normalize_with_report([
            Candidate(name="Renta", amount="-100"),
            Candidate(name="Enorme", amount="1e400"),
            Candidate(name="Minima", amount="1e-400"),
            Candidate(name="Casa", amount="123456789012.34"),
        ])
        store.append_transactions(report.transactions)

        reloaded = AppStore(storage, key=KEY).load()

        assert [t.name for t in reloaded.transactions] == ["Renta", "Casa"]
        assert [t.amount for t in reloaded.transactions] == [
            Decimal("100"), Decimal("123456789012.34"),
        ]

    def test_failed_first_write_still_starts(self, storage):
        """Test that defaults are used in memory when they cannot be saved."""
        storage.fail_writes = True
        state = AppStore(storage, key=KEY).load()
        assert state.meta.version == SCHEMA_VERSION

    def test_state_is_a_copy(self, store):
        """Test that callers cannot mutate the committed state."""
        state = store.state
        state.transactions.append(_txn())
        assert store.state.transactions == []


class TestTransactions:
    """Tests for transaction mutations."""

    def test_add_transaction(self, store, storage):
        """Test that adding persists the transaction."""
        txn = store.add_transaction(_txn())
        saved = AppState.model_validate_json(storage.read_document(KEY))
        assert saved.transactions == [txn]

    def test_add_stamps_updated_at(self, store):
        """Test that every save refreshes meta.updated_at."""
        before = store.state.meta.updated_at
        store.add_transaction(_txn())
        assert store.state.meta.updated_at >= before

    def test_add_duplicate_id(self, store):
        """Test that ids stay unique."""
        txn = store.add_transaction(_txn())
        with pytest.raises(ValueError):
            store.add_transaction(txn)

    def test_edit_transaction(self, store):
        """Test merging updates into a transaction."""
        txn = store.add_transaction(_txn())
        updated = store.edit_transaction(txn.id, amount=Decimal("9000"), category="Vivienda")
        assert updated.amount == Decimal("9000")
        assert updated.category == "Vivienda"
        assert updated.name == "Renta"

    def test_edit_rejects_invalid_values(self, store):
        """Test that an invalid edit changes nothing."""
        txn = store.add_transaction(_txn())
        with pytest.raises(ValueError):
            store.edit_transaction(txn.id, amount=Decimal("0"))
        with pytest.raises(ValueError):
            store.edit_transaction(txn.id, colour="red")
        assert store.state.transactions == [txn]

    def test_edit_cannot_change_id(self, store):
        """Test that ids are immutable."""
        txn = store.add_transaction(_txn())
        with pytest.raises(ValueError):
            store.edit_transaction(txn.id, id="other")

    def test_unknown_ids(self, store):
        """Test that unknown ids raise instead of doing nothing."""
        with pytest.raises(NotFoundError):
            store.edit_transaction("missing", name="X")
        with pytest.raises(NotFoundError):
            store.delete_transaction("missing")

    def test_delete_transaction(self, store, audit_logger):
        """Test deletion and its audit event."""
        txn = store.add_transaction(_txn())
        store.delete_transaction(txn.id)
        assert store.state.transactions == []
        assert audit_logger.recent_events(1)[0].event_type == AuditEventType.TRANSACTION_DELETED

    def test_long_name_is_saved_and_audited(self, store, storage, audit_logger):
        """Test that a very long name does not break auditing after the save."""
        txn = store.add_transaction(_txn(name="x" * 600))

        saved = AppState.model_validate_json(storage.read_document(KEY))
        assert saved.transactions == [txn]
        event = audit_logger.recent_events(1)[0]
        assert event.event_type == AuditEventType.TRANSACTION_ADDED
        assert len(event.description) <= DESCRIPTION_MAX_LENGTH

    def test_append_keeps_order(self, store):
        """Test that imports go after existing transactions."""
        first = store.add_transaction(_txn("A"))
        imported = [_txn("B"), _txn("C")]
        state = store.append_transactions(imported)
        assert [t.name for t in state.transactions] == ["A", "B", "C"]
        assert state.transactions[0] == first


class TestGoals:
    """Tests for goal mutations and deposits."""

    def test_goal_lifecycle(self, store):
        """Test add, edit and delete."""
        goal = store.add_goal(Goal(name="Viaje", target_amount=Decimal("10000")))
        edited = store.edit_goal(goal.id, name="Viaje a Japón")
        assert edited.name == "Viaje a Japón"
        store.delete_goal(goal.id)
        assert store.state.goals == []

    def test_deposit(self, store):
        """Test a valid deposit."""
        goal = store.add_goal(Goal(name="Viaje", target_amount=Decimal("1000")))
        updated = store.deposit_to_goal(goal.id, "400")
        assert updated.current_amount == Decimal("400")
        assert store.state.find_goal(goal.id).current_amount == Decimal("400")

    def test_deposit_larger_than_remaining(self, store):
        """Test that overshooting is rejected and nothing is saved."""
        goal = store.add_goal(Goal(name="Viaje", target_amount=Decimal("1000")))
        store.deposit_to_goal(goal.id, 900)
        with pytest.raises(InvalidDepositError):
            store.deposit_to_goal(goal.id, 200)
        saved = store.state.find_goal(goal.id)
        assert saved.current_amount == Decimal("900")
        assert saved.current_amount <= saved.target_amount

    def test_deposit_unknown_goal(self, store):
        """Test deposits into a missing goal."""
        with pytest.raises(NotFoundError):
            store.deposit_to_goal("missing", 10)


class TestSettings:
    """Tests for user settings."""

    def test_update_settings(self, store, storage):
        """Test partial settings updates."""
        settings = store.update_settings(user_name="Ana", monthly_interest_rate=10.5)
        assert settings.user_name == "Ana"
        assert settings.emergency_fund_months == 3
        saved = AppState.model_validate_json(storage.read_document(KEY))
        assert saved.settings.monthly_interest_rate == 10.5

    def test_unknown_setting(self, store):
        """Test that unknown keys are rejected."""
        with pytest.raises(ValueError):
            store.update_settings(theme="dark")


class TestSaveFailures:
    """Tests for persistence failures."""

    def test_failed_write_keeps_last_saved_state(self, store, storage, audit_logger):
        """Test that a failed save does not change the in-memory state."""
        store.add_transaction(_txn("A"))
        storage.fail_writes = True

        with pytest.raises(StorageWriteFailure):
            store.add_transaction(_txn("B"))

        assert [t.name for t in store.state.transactions] == ["A"]
        assert audit_logger.recent_events(1)[0].event_type == AuditEventType.SAVE_FAILED

    def test_quota_exceeded(self):
        """Test the in-memory quota."""
        storage = InMemoryStorage(quota_bytes=10)
        with pytest.raises(StorageWriteFailure):
            storage.write_document(KEY, "x" * 11)
        assert storage.read_document(KEY) is None


class TestBackup:
    """Tests for export, restore and reset."""

    def test_export_filename_and_format(self, store):
        """Test the backup file name and indentation."""
        filename, text = store.export_backup(today=date(2024, 3, 1))
        assert filename == "ahorros-backup-2024-03-01.json"
        assert text.startswith("{\n  ")
        assert json.loads(text)["meta"]["version"] == SCHEMA_VERSION

    def test_export_then_restore(self, store, storage):
        """Test that a backup restores identical transactions and goals."""
        store.add_transaction(_txn("A"))
        store.add_transaction(_txn("B", "20000", TransactionType.INCOME))
        store.add_goal(Goal(name="Viaje", target_amount=Decimal("5000"), current_amount=Decimal("100")))
        _, text = store.export_backup()
        exported = store.state

        fresh = AppStore(InMemoryStorage(), key=KEY)
        fresh.load()
        restored = fresh.restore(json.loads(text))

        assert restored.transactions == exported.transactions
        assert restored.goals == exported.goals
        assert restored.settings == exported.settings

    def test_restore_wrong_version(self, store):
        """Test that other versions are rejected without touching the state."""
        store.add_transaction(_txn())
        document = AppState.defaults().to_document()
        document["meta"]["version"] = "2.0.0"
        with pytest.raises(InvalidBackupFormat):
            store.restore(document)
        assert len(store.state.transactions) == 1

    def test_restore_invalid_data(self, store):
        """Test that schema-invalid backups are rejected."""
        document = AppState.defaults().to_document()
        document["goals"] = [{"id": "g", "name": "X", "targetAmount": 0}]
        with pytest.raises(InvalidBackupFormat):
            store.restore(document)

    def test_reset(self, store, audit_logger):
        """Test that reset starts over."""
        store.add_transaction(_txn())
        state = store.reset()
        assert state.transactions == []
        assert audit_logger.recent_events(1)[0].event_type == AuditEventType.STATE_RESET


class TestLocalFileStorage:
    """Tests for the file backend."""

    def test_round_trip(self, tmp_path):
        """Test write then read."""
        storage = LocalFileStorage(tmp_path)
        storage.write_document(KEY, '{"a": 1}')
        assert storage.read_document(KEY) == '{"a": 1}'
        assert (tmp_path / f"{KEY}.json").exists()

    def test_no_temp_files_left(self, tmp_path):
        """Test that the atomic write cleans up after itself."""
        storage = LocalFileStorage(tmp_path)
        storage.write_document(KEY, "one")
        storage.write_document(KEY, "two")
        assert [p.name for p in tmp_path.iterdir()] == [f"{KEY}.json"]
        assert storage.read_document(KEY) == "two"

    def test_missing_document(self, tmp_path):
        """Test reading and deleting a key that was never written."""
        storage = LocalFileStorage(tmp_path)
        assert storage.read_document(KEY) is None
        assert storage.delete_document(KEY) is False

    def test_delete(self, tmp_path):
        """Test deletion."""
        storage = LocalFileStorage(tmp_path)
        storage.write_document(KEY, "x")
        assert storage.delete_document(KEY) is True
        assert storage.read_document(KEY) is None

    def test_non_utf8_document_resets(self, tmp_path, audit_logger):
        """Test that a damaged file on disk is discarded instead of raised."""
        (tmp_path / f"{KEY}.json").write_bytes(b"\xff\xfe garbage")
        store = AppStore(LocalFileStorage(tmp_path), key=KEY, audit_logger=audit_logger)

        state = store.load()

        assert state.transactions == []
        assert audit_logger.recent_events(1)[0].event_type == AuditEventType.STATE_RESET
        reread = LocalFileStorage(tmp_path).read_document(KEY)
        assert json.loads(reread)["meta"]["version"] == SCHEMA_VERSION

    def test_invalid_key(self, tmp_path):
        """Test that keys cannot escape the data directory."""
        with pytest.raises(StorageError):
            LocalFileStorage(tmp_path).read_document("../etc/passwd")

    def test_store_on_disk(self, tmp_path):
        """Test the store end to end on the file backend."""
        store = AppStore(LocalFileStorage(tmp_path), key=KEY)
        store.load()
        txn = store.add_transaction(_txn())
        reopened = AppStore(LocalFileStorage(tmp_path), key=KEY)
        assert reopened.load().transactions == [txn]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
