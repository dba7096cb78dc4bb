"""Validation package: candidate -> Transaction normalization."""

from ahorros.validation.normalizer import (
    DEFAULT_NAME,
    TransactionNormalizer,
    normalize,
)

__all__ = ["DEFAULT_NAME", "TransactionNormalizer", "normalize"]
