"""Finance calculators package."""

from ahorros.calculations.finance import (
    CURRENCY_SYMBOLS,
    EmergencyFundStatus,
    ProjectionPoint,
    SavingsProjection,
    emergency_fund_status,
    emergency_fund_target,
    expense_ratio,
    expenses_by_category,
    fixed_expenses,
    format_currency,
    future_value,
    goal_months_left,
    monthly_savings,
    months_to_goal,
    savings_projection,
    savings_rate,
    total_expenses,
    total_income,
)

__all__ = [
    # Totals
    "total_income",
    "total_expenses",
    "monthly_savings",
    "savings_rate",
    "expense_ratio",
    "expenses_by_category",
    # Goals
    "months_to_goal",
    "goal_months_left",
    # Compound interest
    "future_value",
    "savings_projection",
    "ProjectionPoint",
    "SavingsProjection",
    # Emergency fund
    "fixed_expenses",
    "emergency_fund_target",
    "emergency_fund_status",
    "EmergencyFundStatus",
    # Formatting
    "format_currency",
    "CURRENCY_SYMBOLS",
]
