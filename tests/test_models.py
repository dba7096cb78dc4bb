"""
Tests for Ahorros

Test strategy:
1. Unit tests for individual components (models, parsers, normalizer)
2. Integration tests for flows (with in-memory storage)
3. No files outside pytest's tmp_path, no network
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from pydantic import ValidationError

from ahorros.models.finance import (
    DEFAULT_CATEGORY,
    DEFAULT_GOAL_ICON,
    EXPENSE_CATEGORIES,
    INCOME_CATEGORIES,
    MAX_MONEY,
    SCHEMA_VERSION,
    AppState,
    Goal,
    InvalidDepositError,
    Recurrence,
    Transaction,
    TransactionType,
    categories_for,
)
from ahorros.models.audit import (
    DESCRIPTION_MAX_LENGTH,
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModel:
    """Tests for the Transaction model."""

    def test_transaction_creation(self):
        """Test Transaction model creation with defaults."""
        txn = Transaction(
            name="Renta",
            amount=Decimal("8000"),
            type=TransactionType.EXPENSE,
        )
        assert txn.id.startswith("txn_")
        assert txn.category == DEFAULT_CATEGORY
        assert txn.recurrence == Recurrence.VARIABLE
        assert txn.created_at.tzinfo is not None

    def test_transaction_strips_whitespace(self):
        """Test that whitespace is stripped from the name."""
        txn = Transaction(name="  Renta  ", amount=Decimal("1"), type="expense")
        assert txn.name == "Renta"

    def test_transaction_rejects_zero_and_negative_amounts(self):
        """Test that amounts must be strictly positive."""
        with pytest.raises(ValidationError):
            Transaction(name="X", amount=Decimal("0"), type="income")
        with pytest.raises(ValidationError):
            Transaction(name="X", amount=Decimal("-10"), type="income")

    def test_transaction_rejects_amounts_a_float_cannot_carry(self):
        """Test the upper bound and the cent precision of amounts."""
        for amount in ("1e400", "1e13", "0.001", "12.345"):
            with pytest.raises(ValidationError):
                Transaction(name="X", amount=Decimal(amount), type="income")
        txn = Transaction(name="X", amount=Decimal("9999999999999.99"), type="income")
        assert txn.amount == MAX_MONEY - Decimal("0.01")

    def test_money_survives_the_json_document(self):
        """Test that the largest accepted amount reloads unchanged."""
        txn = Transaction(name="X", amount=Decimal("9999999999999.99"), type="income")
        reloaded = Transaction.model_validate_json(txn.model_dump_json(by_alias=True))
        assert reloaded.amount == txn.amount

    def test_signed_amount(self):
        """Test that expenses carry a negative signed amount."""
        expense = Transaction(name="Cafe", amount=Decimal("50"), type="expense")
        income = Transaction(name="Sueldo", amount=Decimal("50"), type="income")
        assert expense.signed_amount == Decimal("-50")
        assert income.signed_amount == Decimal("50")

    def test_naive_created_at_is_read_as_utc(self):
        """Test that naive timestamps become aware UTC timestamps."""
        txn = Transaction(
            name="X",
            amount=Decimal("1"),
            type="income",
            created_at=datetime(2024, 1, 15, 10, 0),
        )
        assert txn.created_at == datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)

    def test_wire_format_is_camel_case(self):
        """Test JSON dump uses camelCase keys and plain numbers."""
        txn = Transaction(name="Renta", amount=Decimal("1200.50"), type="expense")
        data = txn.model_dump(mode="json", by_alias=True)
        assert "createdAt" in data
        assert data["amount"] == 1200.5
        assert data["type"] == "expense"

    def test_accepts_camel_case_input(self):
        """Test that documents written with camelCase keys load."""
        txn = Transaction.model_validate({
            "id": "abc",
            "name": "Renta",
            "amount": 100,
            "category": "Vivienda",
            "type": "expense",
            "recurrence": "fixed",
            "createdAt": "2024-01-15T00:00:00.000Z",
        })
        assert txn.id == "abc"
        assert txn.recurrence == Recurrence.FIXED
        assert txn.created_at.year == 2024


class TestTransactionCreate:
    """Tests for manual entry through Transaction.create."""

    def test_create_valid(self):
        """Test a valid manual entry."""
        txn = Transaction.create("Sueldo", "25000", "Trabajo", TransactionType.INCOME)
        assert txn.amount == Decimal("25000")
        assert txn.recurrence == Recurrence.FIXED

    def test_create_requires_name(self):
        """Test that a blank name is rejected."""
        with pytest.raises(ValueError, match="Name"):
            Transaction.create("   ", 10, "Trabajo", TransactionType.INCOME)

    def test_create_requires_positive_amount(self):
        """Test that zero and non-numeric amounts are rejected."""
        with pytest.raises(ValueError):
            Transaction.create("X", 0, "Trabajo", TransactionType.INCOME)
        with pytest.raises(ValueError):
            Transaction.create("X", "abc", "Trabajo", TransactionType.INCOME)

    def test_create_enforces_category_vocabulary(self):
        """Test that an expense category is rejected for income."""
        with pytest.raises(ValueError, match="category"):
            Transaction.create("X", 10, "Vivienda", TransactionType.INCOME)

    def test_create_without_category_enforcement(self):
        """Test that enforcement can be disabled."""
        txn = Transaction.create(
            "X", 10, "Mascotas", TransactionType.EXPENSE, enforce_category=False
        )
        assert txn.category == "Mascotas"


class TestGoalModel:
    """Tests for the Goal model and deposits."""

    def test_goal_creation(self):
        """Test Goal creation with defaults."""
        goal = Goal(name="Viaje", target_amount=Decimal("10000"))
        assert goal.id.startswith("goal_")
        assert goal.current_amount == Decimal("0")
        assert goal.icon == DEFAULT_GOAL_ICON
        assert goal.remaining == Decimal("10000")
        assert not goal.is_complete

    def test_goal_rejects_non_positive_target(self):
        """Test that the target must be positive."""
        with pytest.raises(ValidationError):
            Goal(name="Viaje", target_amount=Decimal("0"))

    def test_progress_is_clamped(self):
        """Test that progress never exceeds 100 percent."""
        goal = Goal(
            name="Viaje",
            target_amount=Decimal("100"),
            current_amount=Decimal("150"),
        )
        assert goal.progress_percent == 100.0
        assert goal.remaining == Decimal("0")

    def test_deposit_adds_to_current_amount(self):
        """Test a valid deposit."""
        goal = Goal(name="Viaje", target_amount=Decimal("1000"), current_amount=Decimal("200"))
        updated = goal.with_deposit("300")
        assert updated.current_amount == Decimal("500")
        assert goal.current_amount == Decimal("200")

    def test_deposit_up_to_the_target(self):
        """Test that depositing exactly the remainder completes the goal."""
        goal = Goal(name="Viaje", target_amount=Decimal("1000"), current_amount=Decimal("200"))
        updated = goal.with_deposit(800)
        assert updated.current_amount == updated.target_amount
        assert updated.is_complete

    def test_deposit_larger_than_remaining_is_rejected(self):
        """Test that overshooting the target is rejected."""
        goal = Goal(name="Viaje", target_amount=Decimal("1000"), current_amount=Decimal("200"))
        with pytest.raises(InvalidDepositError):
            goal.with_deposit(900)

    def test_deposit_must_be_positive(self):
        """Test that zero, negative and non-numeric deposits are rejected."""
        goal = Goal(name="Viaje", target_amount=Decimal("1000"))
        for amount in (0, -5, "abc"):
            with pytest.raises(InvalidDepositError):
                goal.with_deposit(amount)

    def test_deposit_in_fractions_of_a_cent_is_rejected(self):
        """Test that deposits follow the same precision as amounts."""
        goal = Goal(name="Viaje", target_amount=Decimal("1000"))
        with pytest.raises(InvalidDepositError):
            goal.with_deposit("10.005")


class TestAppState:
    """Tests for the persisted application document."""

    def test_defaults(self):
        """Test the fresh document."""
        state = AppState.defaults()
        assert state.meta.version == SCHEMA_VERSION
        assert state.meta.currency == "MXN"
        assert state.settings.user_name == "Usuario"
        assert state.settings.monthly_interest_rate == 11.0
        assert state.settings.emergency_fund_months == 3
        assert state.transactions == []
        assert state.goals == []

    def test_document_layout(self):
        """Test the wire layout of the document."""
        document = AppState.defaults().to_document()
        assert set(document) == {"meta", "settings", "transactions", "goals"}
        assert set(document["meta"]) == {"version", "createdAt", "updatedAt", "currency"}
        assert set(document["settings"]) == {
            "userName", "monthlyInterestRate", "emergencyFundMonths",
        }

    def test_document_round_trip(self):
        """Test that a document survives dump and reload."""
        state = AppState.defaults()
        state.transactions.append(
            Transaction(name="Renta", amount=Decimal("1200.50"), type="expense")
        )
        state.goals.append(Goal(name="Viaje", target_amount=Decimal("5000")))

        reloaded = AppState.model_validate_json(state.to_json())
        assert reloaded.transactions == state.transactions
        assert reloaded.goals == state.goals

    def test_find_by_id(self):
        """Test lookups by id."""
        state = AppState.defaults()
        txn = Transaction(name="Renta", amount=Decimal("1"), type="expense")
        state.transactions.append(txn)
        assert state.find_transaction(txn.id) is txn
        assert state.find_transaction("missing") is None
        assert state.find_goal("missing") is None


class TestCategories:
    """Tests for the category vocabularies."""

    def test_categories_for_type(self):
        """Test that each type gets its own vocabulary."""
        assert categories_for(TransactionType.INCOME) == INCOME_CATEGORIES
        assert categories_for(TransactionType.EXPENSE) == EXPENSE_CATEGORIES

    def test_other_is_always_available(self):
        """Test that the default category exists for both types."""
        assert DEFAULT_CATEGORY in INCOME_CATEGORIES
        assert DEFAULT_CATEGORY in EXPENSE_CATEGORIES


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_ADDED,
            entity_type="transaction",
            description="Transaction added",
        )
        assert event.event_id is not None
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEventBuilder.import_committed("csv", 3, 1, correlation_id)
        log_dict = event.to_log_dict()

        assert log_dict["event_type"] == "import_committed"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["details"]["imported_count"] == 3
        assert log_dict["details"]["rejected_count"] == 1

    def test_audit_event_builder_state_reset(self):
        """Test the state reset builder."""
        event = AuditEventBuilder.state_reset("incompatible document version", "0.9.0")
        assert event.event_type == AuditEventType.STATE_RESET
        assert event.severity == AuditSeverity.WARNING
        assert event.details["found_version"] == "0.9.0"

    def test_audit_event_builder_entity_changed(self):
        """Test the entity change builder."""
        event = AuditEventBuilder.entity_changed(
            AuditEventType.GOAL_ADDED, "goal", "goal_123", name="Viaje"
        )
        assert event.entity_id == "goal_123"
        assert event.description == "Goal 'Viaje' added"

    def test_audit_event_builder_clips_long_names(self):
        """Test that a long name never overflows the description."""
        event = AuditEventBuilder.entity_changed(
            AuditEventType.TRANSACTION_ADDED, "transaction", "txn_1", name="x" * 600
        )
        assert len(event.description) <= DESCRIPTION_MAX_LENGTH
        assert event.description.endswith("...' added")

    def test_audit_event_builder_save_failed(self):
        """Test the save failure builder."""
        event = AuditEventBuilder.save_failed("quota exceeded")
        assert event.severity == AuditSeverity.ERROR
        assert event.error_message == "quota exceeded"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
