"""Field mapping package."""

from ahorros.mapping.mapper import (
    ColumnMapping,
    Resolver,
    map_row,
    map_rows,
    suggest_mapping,
)

__all__ = [
    "ColumnMapping",
    "Resolver",
    "map_row",
    "map_rows",
    "suggest_mapping",
]
