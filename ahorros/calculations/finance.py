"""
Finance Calculators

DESIGN DECISION: Every figure shown to the user is computed HERE, from the
transaction and goal collections, by pure functions. No hidden state, no
caching, no side effects; the same inputs always give the same numbers.

Money sums stay in Decimal. The compound-interest simulation works in
float because it raises to fractional powers; its outputs are display
values, never written back to the document.

"Indeterminate" results (e.g. months to reach a goal when nothing is
being saved) are returned as None, never as an error or a sentinel number.
"""

import math
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from pydantic import BaseModel, Field

from ahorros.models.finance import (
    Goal,
    Recurrence,
    Transaction,
    TransactionType,
)


Number = Union[Decimal, int, float]

ZERO = Decimal("0")

CURRENCY_SYMBOLS = {"MXN": "$", "USD": "$", "EUR": "€"}


def _to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


# =============================================================================
# TOTALS
# =============================================================================

def total_income(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of income amounts."""
    return sum(
        (t.amount for t in transactions if t.type == TransactionType.INCOME),
        ZERO,
    )


def total_expenses(transactions: Iterable[Transaction]) -> Decimal:
    """Sum of expense amounts."""
    return sum(
        (t.amount for t in transactions if t.type == TransactionType.EXPENSE),
        ZERO,
    )


def monthly_savings(transactions: Iterable[Transaction]) -> Decimal:
    """Saving capacity: income minus expenses (may be negative)."""
    transactions = list(transactions)
    return total_income(transactions) - total_expenses(transactions)


def savings_rate(transactions: Iterable[Transaction]) -> Optional[float]:
    """Savings as a percentage of income; None without income."""
    transactions = list(transactions)
    income = total_income(transactions)
    if income <= 0:
        return None
    return float(monthly_savings(transactions) / income * 100)


def expense_ratio(transactions: Iterable[Transaction]) -> Optional[float]:
    """Expenses as a percentage of income; None without income."""
    transactions = list(transactions)
    income = total_income(transactions)
    if income <= 0:
        return None
    return float(total_expenses(transactions) / income * 100)


def expenses_by_category(transactions: Iterable[Transaction]) -> dict[str, Decimal]:
    """Expense totals per category, in first-seen category order."""
    totals: dict[str, Decimal] = {}
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        totals[t.category] = totals.get(t.category, ZERO) + t.amount
    return totals


# =============================================================================
# GOALS
# =============================================================================

def months_to_goal(remaining: Number, monthly_savings: Number) -> Optional[int]:
    """
    Months of saving needed to cover ``remaining``.

    Returns None (indeterminate) when ``monthly_savings`` is zero or
    negative; otherwise ``ceil(remaining / monthly_savings)``.
    """
    savings = _to_decimal(monthly_savings)
    if savings <= 0:
        return None
    return math.ceil(_to_decimal(remaining) / savings)


def goal_months_left(goal: Goal, monthly_savings: Number) -> Optional[int]:
    """0 for a completed goal, else months_to_goal on what remains."""
    if goal.remaining <= 0:
        return 0
    return months_to_goal(goal.remaining, monthly_savings)


# =============================================================================
# COMPOUND INTEREST
# =============================================================================

def future_value(pmt: Number, annual_rate_percent: Number, months: Number) -> float:
    """
    Future value of an ordinary annuity with monthly compounding.

        FV = PMT * ((1 + r)^n - 1) / r,   r = annual_rate_percent / 100 / 12

    Returns 0 when ``pmt <= 0`` or ``months <= 0``, and ``pmt * months``
    when the rate is zero. A horizon too long for a float gives ``math.inf``.
    """
    pmt = float(pmt)
    months = float(months)
    if pmt <= 0 or months <= 0:
        return 0.0
    r = float(annual_rate_percent) / 100 / 12
    if r == 0:
        return pmt * months
    try:
        growth = (1 + r) ** months
    except OverflowError:
        return math.inf
    return pmt * ((growth - 1) / r)


class ProjectionPoint(BaseModel):
    """Balance after a number of monthly contributions."""

    month: int = Field(ge=0)
    with_interest: float
    without_interest: float


class SavingsProjection(BaseModel):
    """Month-by-month simulation used by the compound-interest chart."""

    monthly_contribution: float
    annual_rate_percent: float
    points: list[ProjectionPoint] = Field(default_factory=list)

    @property
    def final_with_interest(self) -> float:
        return self.points[-1].with_interest if self.points else 0.0

    @property
    def final_without_interest(self) -> float:
        return self.points[-1].without_interest if self.points else 0.0

    @property
    def interest_gain(self) -> float:
        return round(self.final_with_interest - self.final_without_interest, 2)


def savings_projection(
    pmt: Number,
    annual_rate_percent: Number,
    months: int,
) -> SavingsProjection:
    """Balances for months 0..months, with and without interest, to cents."""
    pmt = float(pmt)
    rate = float(annual_rate_percent)
    points = [
        ProjectionPoint(
            month=i,
            with_interest=round(future_value(pmt, rate, i), 2),
            without_interest=round(pmt * i, 2),
        )
        for i in range(max(0, int(months)) + 1)
    ]
    return SavingsProjection(
        monthly_contribution=pmt,
        annual_rate_percent=rate,
        points=points,
    )


# =============================================================================
# EMERGENCY FUND
# =============================================================================

def fixed_expenses(transactions: Iterable[Transaction]) -> Decimal:
    """Monthly total of expenses marked as fixed."""
    return sum(
        (
            t.amount for t in transactions
            if t.type == TransactionType.EXPENSE and t.recurrence == Recurrence.FIXED
        ),
        ZERO,
    )


def emergency_fund_target(transactions: Iterable[Transaction], months: int = 3) -> Decimal:
    """Recommended emergency fund: fixed expenses times ``months``."""
    return fixed_expenses(transactions) * months


class EmergencyFundStatus(BaseModel):
    """Emergency fund figures for the dashboard."""

    months_covered: int
    monthly_fixed_expenses: Decimal
    target: Decimal
    months_to_fund: Optional[int] = Field(
        default=None,
        description="Months of saving to reach the target; None if nothing is saved"
    )


def emergency_fund_status(
    transactions: Iterable[Transaction],
    months: int = 3,
    savings: Optional[Number] = None,
) -> EmergencyFundStatus:
    """
    Target plus how long current savings take to reach it.

    ``savings`` defaults to the monthly savings of ``transactions``.
    """
    transactions = list(transactions)
    if savings is None:
        savings = monthly_savings(transactions)
    target = emergency_fund_target(transactions, months)
    return EmergencyFundStatus(
        months_covered=months,
        monthly_fixed_expenses=fixed_expenses(transactions),
        target=target,
        months_to_fund=months_to_goal(target, savings),
    )


# =============================================================================
# FORMATTING
# =============================================================================

def format_currency(amount: Number, currency: str = "MXN") -> str:
    """
    Render an amount with 0-2 fraction digits: 1200 -> "$1,200",
    1200.5 -> "$1,200.5", -80 -> "-$80".
    """
    value = _to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,.2f}".rstrip("0").rstrip(".")
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol is None:
        return f"{sign}{currency} {digits}"
    return f"{sign}{symbol}{digits}"
