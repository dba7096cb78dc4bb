"""Read-only transaction queries."""

from ahorros.queries.transactions import list_transactions, sort_by_recent

__all__ = ["list_transactions", "sort_by_recent"]
