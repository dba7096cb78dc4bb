"""
Transaction Normalizer

Turns mapped candidates (raw strings) into canonical Transactions.

The steps run in a FIXED order:
1. Strip "$", "," and spaces from the raw amount
2. Parse the leading number (nothing parseable -> 0)
3. Infer the type from the type column OR the sign of the raw amount
4. Store the absolute value, rounded to cents
5. Default name / category
6. Default recurrence
7. Parse the date (blank or unreadable -> import time)
8. Assign a fresh id
9. Reject rows whose final amount is not strictly positive

WHY THE ORDER MATTERS:
- Sign-based type inference must see the RAW amount; once the absolute
  value is taken the sign is gone.
- The positivity filter is last so defaulted rows still get a chance.

IMPORTANT: A bad row is REJECTED, never raised. The caller gets a report
with the accepted transactions and one rejection entry per dropped row.

NOTE on type inference: a positive amount makes the row income even when
the type column says something else. Bank statements sign debits and
credits, so the sign is the most reliable signal a column can carry.
"""

import re
from collections.abc import Iterable
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

import structlog
from pydantic import ValidationError

from ahorros.models.finance import (
    DEFAULT_CATEGORY,
    MAX_MONEY,
    Recurrence,
    Transaction,
    TransactionType,
    utc_now,
)
from ahorros.models.importing import Candidate, NormalizationReport, RowRejection


logger = structlog.get_logger(__name__)

DEFAULT_NAME = "Sin nombre"

# Characters removed from amounts before parsing: currency sign, thousands
# separator, spaces.
_AMOUNT_NOISE = re.compile(r"[$, ]")

# Leading decimal number, the way a lenient float parser reads it
_LEADING_NUMBER = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")

_CENT = Decimal("0.01")

INCOME_MARKERS = ("ingreso", "income", "fijo +")
FIXED_MARKERS = ("fixed", "fijo", "fija")

# Tried after ISO 8601; day-first because the tracker's users write dates
# as DD/MM/YYYY.
DATE_FORMATS = (
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%d.%m.%Y",
    "%Y/%m/%d",
    "%d/%m/%y",
)


class TransactionNormalizer:
    """
    Validates and coerces candidates into Transactions.

    Stateless apart from an optional fixed "now", which tests use to make
    the import-time default deterministic.
    """

    def __init__(self, now: Optional[datetime] = None):
        self._now = now

    # -------------------------------------------------------------------------
    # Field coercions
    # -------------------------------------------------------------------------

    @staticmethod
    def clean_amount(raw: str) -> Decimal:
        """
        Parse a raw amount string, keeping its sign.

        "$1,200.50" -> Decimal("1200.50"), "-500" -> Decimal("-500"),
        anything without a leading number -> Decimal("0").
        """
        cleaned = _AMOUNT_NOISE.sub("", (raw or "").strip())
        match = _LEADING_NUMBER.match(cleaned)
        if not match:
            return Decimal("0")
        try:
            value = Decimal(match.group(0))
        except InvalidOperation:
            return Decimal("0")
        if not value.is_finite():
            return Decimal("0")
        return value

    @staticmethod
    def to_cents(amount: Decimal) -> Decimal:
        """
        Round to whole cents (half up).

        Amounts of MAX_MONEY or more are returned as they are and left for
        the Transaction model to reject.
        """
        if abs(amount) >= MAX_MONEY:
            return amount
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)

    @staticmethod
    def infer_type(raw_type: str, raw_amount: Decimal) -> TransactionType:
        """Income if the type column says so OR the raw amount is positive."""
        lowered = (raw_type or "").lower()
        if any(marker in lowered for marker in INCOME_MARKERS) or raw_amount > 0:
            return TransactionType.INCOME
        return TransactionType.EXPENSE

    @staticmethod
    def parse_recurrence(raw: str) -> Recurrence:
        """Fixed for fixed/fijo/fija (any case), variable for anything else."""
        lowered = (raw or "").strip().lower()
        if lowered.startswith(FIXED_MARKERS):
            return Recurrence.FIXED
        return Recurrence.VARIABLE

    @staticmethod
    def parse_date(raw: str) -> Optional[datetime]:
        """
        Parse a date/timestamp string.

        Returns an aware datetime (naive values are read as UTC), or None
        when the text is blank or in no known format.
        """
        text = (raw or "").strip()
        if not text:
            return None

        value: Optional[datetime] = None
        try:
            value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            for fmt in DATE_FORMATS:
                try:
                    value = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue

        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value

    # -------------------------------------------------------------------------
    # Pipeline
    # -------------------------------------------------------------------------

    def _normalize_one(
        self,
        index: int,
        candidate: Candidate,
        now: datetime,
    ) -> Union[Transaction, RowRejection]:
        raw_amount = self.clean_amount(candidate.amount)
        transaction_type = self.infer_type(candidate.type, raw_amount)
        amount = self.to_cents(abs(raw_amount))

        # Surrounding whitespace is stripped by the model itself
        name = candidate.name if candidate.name.strip() else DEFAULT_NAME
        category = candidate.category if candidate.category.strip() else DEFAULT_CATEGORY
        recurrence = self.parse_recurrence(candidate.recurrence)

        created_at = self.parse_date(candidate.date)
        if created_at is None:
            if candidate.date.strip():
                logger.debug(
                    "unreadable_date_defaulted",
                    row_index=index,
                    raw_date=candidate.date,
                )
            created_at = now

        if amount <= 0:
            reason = (
                "amount is missing" if not candidate.amount.strip()
                else f"amount {candidate.amount.strip()!r} is zero or not a number"
            )
            return RowRejection(row_index=index, reason=reason)

        try:
            return Transaction(
                name=name,
                amount=amount,
                category=category,
                type=transaction_type,
                recurrence=recurrence,
                created_at=created_at,
            )
        except ValidationError as e:
            return RowRejection(
                row_index=index,
                reason=f"invalid row: {e.errors()[0]['msg']}",
            )

    def normalize_with_report(
        self,
        candidates: Iterable[Candidate],
        now: Optional[datetime] = None,
    ) -> NormalizationReport:
        """
        Normalize a batch of candidates.

        Never raises for row-level problems; rejected rows are listed in
        the report with their zero-based index and a reason.
        """
        now = now or self._now or utc_now()
        report = NormalizationReport()

        for index, candidate in enumerate(candidates):
            outcome = self._normalize_one(index, candidate, now)
            if isinstance(outcome, RowRejection):
                report.rejections.append(outcome)
            else:
                report.transactions.append(outcome)

        logger.info(
            "candidates_normalized",
            accepted=report.accepted_count,
            rejected=report.rejected_count,
        )
        return report

    def normalize(
        self,
        candidates: Iterable[Candidate],
        now: Optional[datetime] = None,
    ) -> list[Transaction]:
        """Normalize a batch and return only the accepted transactions."""
        return self.normalize_with_report(candidates, now=now).transactions


def normalize(
    candidates: Iterable[Candidate],
    now: Optional[datetime] = None,
) -> list[Transaction]:
    """Module-level shortcut for ``TransactionNormalizer().normalize``."""
    return TransactionNormalizer().normalize(candidates, now=now)
