"""
Field Mapper

Projects row records onto the six semantic transaction fields using a
mapping the user picks for each import session.

DESIGN DECISION: The mapper does NOT validate anything. It only answers
"which raw string does this row hold for field X?". This keeps previews
cheap and honest: what the user sees before committing is exactly what
the normalizer will receive.

A mapping resolves each SemanticField to one of:
- None            -> field ignored, always ""
- "Column name"   -> value of that column ("" when the row lacks it)
- callable(row)   -> computed value (e.g., joining two columns)
"""

import unicodedata
from collections.abc import Iterable, Mapping
from typing import Callable, Optional, Union

from ahorros.models.importing import (
    REQUIRED_FIELDS,
    Candidate,
    MissingRequiredMapping,
    RowRecord,
    SemanticField,
)


Resolver = Union[None, str, Callable[[RowRecord], object]]


# Header names recognized by suggest_mapping, accent-free and lower-case
HEADER_HINTS: dict[SemanticField, tuple[str, ...]] = {
    SemanticField.NAME: (
        "concepto", "nombre", "descripcion", "description", "name",
        "detalle", "merchant", "memo",
    ),
    SemanticField.AMOUNT: ("monto", "importe", "amount", "cantidad", "valor", "total"),
    SemanticField.CATEGORY: ("categoria", "category", "rubro"),
    SemanticField.TYPE: ("tipo", "type", "movimiento"),
    SemanticField.RECURRENCE: ("recurrencia", "recurrence", "frecuencia", "periodicidad"),
    SemanticField.DATE: ("fecha", "date", "dia"),
}


def _fold(text: str) -> str:
    """Lower-case and strip accents, for header matching."""
    decomposed = unicodedata.normalize("NFKD", text.strip().lower())
    return "".join(c for c in decomposed if not unicodedata.combining(c))


class ColumnMapping:
    """
    Mapping from semantic field to resolver.

    Unlisted fields are ignored. Mappings are per import session and are
    never persisted.
    """

    def __init__(self, resolvers: Optional[Mapping[Union[SemanticField, str], Resolver]] = None):
        self._resolvers: dict[SemanticField, Resolver] = {}
        for key, resolver in (resolvers or {}).items():
            try:
                field = SemanticField(key)
            except ValueError:
                raise ValueError(f"Unknown transaction field in mapping: {key!r}")
            if resolver == "":
                resolver = None
            if resolver is not None and not isinstance(resolver, str) and not callable(resolver):
                raise TypeError(
                    f"Mapping for {field.value!r} must be a column name or a callable"
                )
            self._resolvers[field] = resolver

    @classmethod
    def from_dict(
        cls,
        mapping: Union["ColumnMapping", Mapping[Union[SemanticField, str], Resolver], None],
    ) -> "ColumnMapping":
        """Build a mapping from a plain dict (pass-through for ColumnMapping)."""
        if isinstance(mapping, ColumnMapping):
            return mapping
        return cls(mapping)

    def resolver_for(self, field: SemanticField) -> Resolver:
        return self._resolvers.get(SemanticField(field))

    def is_mapped(self, field: SemanticField) -> bool:
        return self.resolver_for(field) is not None

    def missing(self, required: Iterable[SemanticField] = REQUIRED_FIELDS) -> list[str]:
        """Names of required fields that are not mapped."""
        return [f.value for f in required if not self.is_mapped(f)]

    def require(self, required: Iterable[SemanticField] = REQUIRED_FIELDS) -> None:
        """
        Check that every required field is mapped.

        Raises:
            MissingRequiredMapping: naming the unmapped fields
        """
        missing = self.missing(required)
        if missing:
            raise MissingRequiredMapping(missing)

    def resolve(self, field: SemanticField, row: RowRecord) -> str:
        """Raw string value of ``field`` in ``row``."""
        resolver = self.resolver_for(field)
        if resolver is None:
            return ""
        if isinstance(resolver, str):
            value = row.get(resolver)
        else:
            value = resolver(row)
        return "" if value is None else str(value)

    def to_dict(self) -> dict[str, Resolver]:
        return {field.value: resolver for field, resolver in self._resolvers.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ColumnMapping):
            return NotImplemented
        return self._resolvers == other._resolvers

    def __repr__(self) -> str:
        return f"ColumnMapping({self.to_dict()!r})"


def map_row(row: RowRecord, mapping: ColumnMapping) -> Candidate:
    """Project a single row onto the semantic fields."""
    return Candidate(**{
        field.value: mapping.resolve(field, row)
        for field in SemanticField
    })


def map_rows(
    rows: Iterable[RowRecord],
    mapping: Union[ColumnMapping, Mapping[str, Resolver]],
) -> list[Candidate]:
    """Project every row; one candidate per row, in input order."""
    mapping = ColumnMapping.from_dict(mapping)
    return [map_row(row, mapping) for row in rows]


def suggest_mapping(headers: Iterable[str]) -> ColumnMapping:
    """
    Propose a mapping from common English/Spanish header names.

    Exact (accent-insensitive) matches win over partial ones; a header is
    used for at most one field. The suggestion is only a starting point
    for the user and is never applied on its own.
    """
    headers = list(headers)
    folded = {header: _fold(header) for header in headers}
    taken: set[str] = set()
    resolvers: dict[SemanticField, Resolver] = {}

    for exact in (True, False):
        for field, hints in HEADER_HINTS.items():
            if field in resolvers:
                continue
            for header in headers:
                if header in taken:
                    continue
                name = folded[header]
                matched = (
                    name in hints if exact
                    else any(hint in name for hint in hints)
                )
                if matched:
                    resolvers[field] = header
                    taken.add(header)
                    break

    return ColumnMapping(resolvers)
