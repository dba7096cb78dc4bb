"""
Transaction Queries

Read-only views over the transaction list, as the history screen shows
it: newest first, optionally narrowed by type and a search term.

These never touch storage; callers pass ``store.state.transactions``.
"""

from collections.abc import Iterable
from typing import Optional, Union

from ahorros.models.finance import Transaction, TransactionType


def sort_by_recent(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Newest first by ``created_at``; ties keep their stored order."""
    return sorted(transactions, key=lambda t: t.created_at, reverse=True)


def list_transactions(
    transactions: Iterable[Transaction],
    type_filter: Optional[Union[TransactionType, str]] = None,
    search: Optional[str] = None,
) -> list[Transaction]:
    """
    Filter and sort transactions for display.

    Args:
        transactions: Transactions to filter
        type_filter: Only this type; None (or "all") keeps both
        search: Case-insensitive substring matched against name and category

    Returns:
        Matching transactions, newest first
    """
    selected = list(transactions)

    if type_filter is not None and type_filter != "all":
        wanted = TransactionType(type_filter)
        selected = [t for t in selected if t.type == wanted]

    term = (search or "").strip().lower()
    if term:
        selected = [
            t for t in selected
            if term in t.name.lower() or term in t.category.lower()
        ]

    return sort_by_recent(selected)
