"""
Core Data Models for Ahorros

These models define the schemas for everything that is persisted:
transactions, savings goals and the application document that holds them.

They are designed to:
1. Enforce the money invariants at runtime (amounts are always positive)
2. Round-trip the persisted JSON document exactly (camelCase on the wire)
3. Accept documents written by earlier installs of the tracker

DESIGN DECISION: Money is a Decimal in Python and a plain JSON number on
the wire. Backups stay readable by any tool and arithmetic stays exact.
Amounts are limited to cents and to less than MAX_MONEY so that every
value survives the trip through a JSON float unchanged.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional
from uuid import uuid4

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
)
from pydantic.alias_generators import to_camel


SCHEMA_VERSION = "1.0.0"

DEFAULT_CURRENCY = "MXN"
DEFAULT_CATEGORY = "Otro"
DEFAULT_GOAL_ICON = "◎"

# Below this, any amount in whole cents round-trips through a float exactly
MAX_MONEY = Decimal("1e13")
_CENT = Decimal("0.01")

INCOME_CATEGORIES = (
    "Trabajo", "Freelance", "Inversiones", "Negocio", "Regalo", "Otro",
)
EXPENSE_CATEGORIES = (
    "Vivienda", "Alimentación", "Transporte", "Salud", "Educación",
    "Entretenimiento", "Ropa", "Servicios", "Tecnología", "Deudas", "Otro",
)


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_id(prefix: str = "item") -> str:
    """Generate an opaque id such as ``txn_1f3a9c0d2b7e``."""
    return f"{prefix}_{uuid4().hex[:12]}"


def _ensure_aware(value: datetime) -> datetime:
    # Naive timestamps are read as UTC so ordering never mixes naive/aware.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def check_money(value: Decimal) -> Decimal:
    """
    Reject amounts that a JSON float cannot carry exactly.

    Raises:
        ValueError: with a user-facing message for such amounts
    """
    if not value.is_finite():
        raise ValueError("Amount must be a finite number")
    if abs(value) >= MAX_MONEY:
        raise ValueError(f"Amount must be less than {MAX_MONEY:,f}")
    if value.quantize(_CENT) != value:
        raise ValueError("Amount must not have fractions of a cent")
    return value


Money = Annotated[
    Decimal,
    AfterValidator(check_money),
    PlainSerializer(float, return_type=float, when_used="json"),
]
Timestamp = Annotated[datetime, AfterValidator(_ensure_aware)]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of a transaction. The amount itself is never signed."""
    INCOME = "income"
    EXPENSE = "expense"


class Recurrence(str, Enum):
    """
    Whether a transaction repeats every month.

    Fixed expenses drive the emergency fund target.
    """
    FIXED = "fixed"
    VARIABLE = "variable"


def categories_for(transaction_type: TransactionType) -> tuple[str, ...]:
    """Category vocabulary offered for a transaction type."""
    if transaction_type == TransactionType.INCOME:
        return INCOME_CATEGORIES
    return EXPENSE_CATEGORIES


class InvalidDepositError(ValueError):
    """A goal deposit was not positive or exceeded what is left to save."""
    pass


class DocumentModel(BaseModel):
    """Base for every model stored in the application document."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Transaction(DocumentModel):
    """
    A single income or expense entry.

    CRITICAL: ``amount`` is always strictly positive. Direction lives in
    ``type``. Anything that would normalize to zero or less is dropped
    before a Transaction is ever built.

    The category vocabulary is NOT enforced here; imported rows may carry
    any category. Only ``Transaction.create`` (manual entry) enforces it.
    """

    id: str = Field(
        default_factory=lambda: generate_id("txn"),
        min_length=1,
        description="Opaque unique id, immutable once assigned"
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Display name"
    )
    amount: Money = Field(
        ...,
        gt=0,
        description="Positive magnitude in the document currency"
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        min_length=1,
        description="Free-form category"
    )
    type: TransactionType
    recurrence: Recurrence = Recurrence.VARIABLE
    created_at: Timestamp = Field(
        default_factory=utc_now,
        description="Creation or imported date; display and ordering key"
    )

    @property
    def signed_amount(self) -> Decimal:
        """Amount with the sign implied by the type."""
        if self.type == TransactionType.EXPENSE:
            return -self.amount
        return self.amount

    @classmethod
    def create(
        cls,
        name: str,
        amount: Decimal | float | str,
        category: str,
        type: TransactionType,
        recurrence: Recurrence = Recurrence.FIXED,
        created_at: Optional[datetime] = None,
        enforce_category: bool = True,
    ) -> "Transaction":
        """
        Build a transaction from manual entry.

        Applies the entry-form rules: non-blank name, positive amount and
        (unless disabled) a category from the vocabulary of the type.

        Raises:
            ValueError: with a user-facing message when a rule fails
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Name is required")

        try:
            value = Decimal(str(amount))
        except ArithmeticError:
            raise ValueError(f"Invalid amount: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise ValueError("Amount must be greater than zero")
        check_money(value)

        transaction_type = TransactionType(type)
        if not category:
            raise ValueError("Category is required")
        if enforce_category and category not in categories_for(transaction_type):
            raise ValueError(
                f"Unknown {transaction_type.value} category: {category}"
            )

        return cls(
            name=name,
            amount=value,
            category=category,
            type=transaction_type,
            recurrence=Recurrence(recurrence),
            created_at=created_at or utc_now(),
        )


# =============================================================================
# GOALS
# =============================================================================

class Goal(DocumentModel):
    """
    A savings goal.

    ``current_amount`` may start above the target (the entry form does not
    forbid it) but a deposit can never push it past the target.
    """

    id: str = Field(
        default_factory=lambda: generate_id("goal"),
        min_length=1,
    )
    name: str = Field(
        ...,
        min_length=1,
    )
    target_amount: Money = Field(
        ...,
        gt=0,
        description="Amount to reach"
    )
    current_amount: Money = Field(
        default=Decimal("0"),
        ge=0,
        description="Amount saved so far"
    )
    icon: str = DEFAULT_GOAL_ICON
    created_at: Timestamp = Field(default_factory=utc_now)

    @property
    def remaining(self) -> Decimal:
        """What is left to save (never negative)."""
        return max(Decimal("0"), self.target_amount - self.current_amount)

    @property
    def progress_percent(self) -> float:
        """Progress towards the target, clamped to 0-100."""
        pct = float(self.current_amount / self.target_amount * 100)
        return min(100.0, max(0.0, pct))

    @property
    def is_complete(self) -> bool:
        return self.current_amount >= self.target_amount

    def with_deposit(self, amount: Decimal | float | str) -> "Goal":
        """
        Return a copy of this goal with ``amount`` deposited.

        Raises:
            InvalidDepositError: if the amount is not positive or is larger
                than what remains to be saved
        """
        try:
            value = Decimal(str(amount))
        except ArithmeticError:
            raise InvalidDepositError(f"Invalid deposit amount: {amount!r}")
        if not value.is_finite() or value <= 0:
            raise InvalidDepositError("Deposit must be greater than zero")
        try:
            check_money(value)
        except ValueError as e:
            raise InvalidDepositError(str(e))
        if value > self.remaining:
            raise InvalidDepositError(
                f"Deposit exceeds the remaining amount ({self.remaining})"
            )
        current = min(self.target_amount, self.current_amount + value)
        return self.model_copy(update={"current_amount": current})


# =============================================================================
# APPLICATION DOCUMENT
# =============================================================================

class DocumentMeta(DocumentModel):
    """
    Document metadata.

    CRITICAL: ``version`` gates compatibility. A stored document whose
    version differs from SCHEMA_VERSION is discarded, never migrated.
    """

    version: str = SCHEMA_VERSION
    created_at: Timestamp = Field(default_factory=utc_now)
    updated_at: Timestamp = Field(default_factory=utc_now)
    currency: str = DEFAULT_CURRENCY


class UserSettings(DocumentModel):
    """
    User preferences stored with the document.

    NOTE: ``monthly_interest_rate`` holds an ANNUAL percentage (e.g. 11 for
    11%); the name is kept for compatibility with existing documents.
    """

    user_name: str = "Usuario"
    monthly_interest_rate: float = Field(default=11.0, ge=0)
    emergency_fund_months: int = Field(default=3, ge=0)


class AppState(DocumentModel):
    """The single persisted document."""

    meta: DocumentMeta = Field(default_factory=DocumentMeta)
    settings: UserSettings = Field(default_factory=UserSettings)
    transactions: list[Transaction] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)

    @classmethod
    def defaults(
        cls,
        currency: str = DEFAULT_CURRENCY,
        user_name: str = "Usuario",
        interest_rate: float = 11.0,
        emergency_fund_months: int = 3,
    ) -> "AppState":
        """Fresh document, as written on first load."""
        now = utc_now()
        return cls(
            meta=DocumentMeta(created_at=now, updated_at=now, currency=currency),
            settings=UserSettings(
                user_name=user_name,
                monthly_interest_rate=interest_rate,
                emergency_fund_months=emergency_fund_months,
            ),
        )

    def to_document(self) -> dict:
        """JSON-compatible dict in the wire (camelCase) layout."""
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self, indent: Optional[int] = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)

    def find_transaction(self, transaction_id: str) -> Optional[Transaction]:
        for txn in self.transactions:
            if txn.id == transaction_id:
                return txn
        return None

    def find_goal(self, goal_id: str) -> Optional[Goal]:
        for goal in self.goals:
            if goal.id == goal_id:
                return goal
        return None
