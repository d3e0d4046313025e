"""Fiscal-quarter arithmetic and free-text quarter classification.

Fiscal years are identified by the calendar year they start in. With the
default April start, ``FY2526`` runs April 2025 to March 2026 and is stored as
``fiscal_year=2025``:

    Apr-Jun -> Q1    Jul-Sep -> Q2    Oct-Dec -> Q3    Jan-Mar -> Q4

Q4 therefore falls in the calendar year *after* ``fiscal_year``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

DEFAULT_FISCAL_START_MONTH = 4

_TWO_PLACES = Decimal("0.01")
_HUNDRED = Decimal(100)

_KEY_PATTERN = re.compile(
    r"^\s*q\s*([1-4])\s*[-_/ ]?\s*fy\s*'?\s*(\d{2}(?:\s*[-/]?\s*\d{2})?)\s*$",
    re.IGNORECASE,
)


@dataclass(frozen=True, slots=True, order=True)
class QuarterKey:
    """A (quarter, fiscal year) pair; ``fiscal_year`` is the starting calendar year."""

    fiscal_year: int
    quarter: int

    def __post_init__(self) -> None:
        if not 1 <= self.quarter <= 4:
            raise ValueError(f"quarter must be 1..4, got {self.quarter}")
        if not 1900 <= self.fiscal_year <= 2999:
            raise ValueError(f"fiscal_year out of range: {self.fiscal_year}")

    @property
    def quarter_label(self) -> str:
        return f"Q{self.quarter}"

    @property
    def fiscal_label(self) -> str:
        start = self.fiscal_year % 100
        end = (self.fiscal_year + 1) % 100
        return f"FY{start:02d}{end:02d}"

    @property
    def label(self) -> str:
        return f"{self.quarter_label} {self.fiscal_label}"

    def __str__(self) -> str:
        return self.label

    @classmethod
    def from_labels(cls, quarter: str | int, fiscal_year: str | int) -> QuarterKey:
        """Build from stored labels such as ``("Q2", "FY2526")``."""
        if isinstance(quarter, int):
            q = quarter
        else:
            match = re.fullmatch(r"\s*q?\s*([1-4])\s*", quarter, re.IGNORECASE)
            if not match:
                raise ValueError(f"Unrecognized quarter label: {quarter!r}")
            q = int(match.group(1))
        if isinstance(fiscal_year, int):
            fy = fiscal_year
        else:
            parsed = parse_fiscal_year(fiscal_year)
            if parsed is None:
                raise ValueError(f"Unrecognized fiscal year label: {fiscal_year!r}")
            fy = parsed
        return cls(fiscal_year=fy, quarter=q)

    @classmethod
    def parse(cls, value: str) -> QuarterKey:
        """Parse a combined label: ``Q2 FY2526``, ``Q2-FY26``, ``q2fy25-26``."""
        match = _KEY_PATTERN.match(value)
        if not match:
            raise ValueError(f"Unrecognized quarter key: {value!r}")
        return cls.from_labels(int(match.group(1)), "FY" + match.group(2))


# ─────────────────────────────────────────────────────────────
# Arithmetic
# ─────────────────────────────────────────────────────────────


def previous_quarter(key: QuarterKey) -> QuarterKey:
    """The immediately preceding fiscal quarter (Q1 wraps to Q4 of the prior year)."""
    if key.quarter == 1:
        return QuarterKey(fiscal_year=key.fiscal_year - 1, quarter=4)
    return QuarterKey(fiscal_year=key.fiscal_year, quarter=key.quarter - 1)


def year_ago_quarter(key: QuarterKey) -> QuarterKey:
    """Same quarter, one fiscal year earlier."""
    return QuarterKey(fiscal_year=key.fiscal_year - 1, quarter=key.quarter)


def quarter_for_month(month: int, fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH) -> int:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1..12, got {month}")
    return (month - fiscal_start_month) % 12 // 3 + 1


def quarter_for_date(d: date, fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH) -> QuarterKey:
    """The fiscal quarter containing ``d``."""
    fiscal_year = d.year if d.month >= fiscal_start_month else d.year - 1
    return QuarterKey(
        fiscal_year=fiscal_year,
        quarter=quarter_for_month(d.month, fiscal_start_month),
    )


def to_decimal(value: Any) -> Decimal | None:
    """Lenient numeric coercion: commas stripped, bools and non-finite values rejected."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        value = repr(value)
    if isinstance(value, str):
        value = value.replace(",", "").strip()
        if not value:
            return None
    try:
        result = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return result if result.is_finite() else None


def percent_change(current: Any, previous: Any) -> Decimal | None:
    """Percentage change from ``previous`` to ``current``, rounded to 2 places.

    Returns None when either value is missing or non-numeric, or when
    ``previous`` is zero. A missing comparison is never reported as 0.

    >>> str(percent_change(110, 100))
    '10.00'
    """
    curr = to_decimal(current)
    prev = to_decimal(previous)
    if curr is None or prev is None or prev == 0:
        return None
    change = ((curr - prev) / prev * _HUNDRED).quantize(_TWO_PLACES, rounding=ROUND_HALF_UP)
    if change == 0:
        return Decimal("0.00")
    return change


# ─────────────────────────────────────────────────────────────
# Free-text classification
# ─────────────────────────────────────────────────────────────

_MONTHS: dict[str, int] = {
    "january": 1, "jan": 1,
    "february": 2, "feb": 2,
    "march": 3, "mar": 3,
    "april": 4, "apr": 4,
    "may": 5,
    "june": 6, "jun": 6,
    "july": 7, "jul": 7,
    "august": 8, "aug": 8,
    "september": 9, "sept": 9, "sep": 9,
    "october": 10, "oct": 10,
    "november": 11, "nov": 11,
    "december": 12, "dec": 12,
}  # fmt: skip

_MONTH_ALT = "|".join(sorted(_MONTHS, key=len, reverse=True))
_ORDINAL = r"\d{1,2}(?:st|nd|rd|th)?"

_QUARTER_TOKEN = re.compile(r"\bq\s?([1-4])(?!\d)")
_ENDED_MONTH = re.compile(
    rf"\bended\s+(?:on\s+)?(?:{_ORDINAL}[\s,-]+)?({_MONTH_ALT})\b\.?"
    rf"(?:[\s,-]+(?:{_ORDINAL}[\s,]+)?(\d{{4}}))?"
)
_ENDED_NUMERIC = re.compile(r"\bended\s+(?:on\s+)?(\d{1,2})[./-](\d{1,2})[./-](\d{4})\b")
_FY_PAIR = re.compile(r"(?<![a-z])fy\s?'?(\d{2})\s?[-/]?\s?(\d{2})\b")
_FY_FULL = re.compile(r"(?<![a-z])fy\s?'?(\d{4})\b")
_FY_SHORT = re.compile(r"(?<![a-z])fy\s?'?(\d{2})\b")
_YEAR_RANGE = re.compile(r"\b20(\d{2})\s?[-/]\s?(?:20)?(\d{2})\b")


def parse_fiscal_year(text: str) -> int | None:
    """Extract a fiscal start year from ``FY2526``, ``FY 25-26``, ``FY26``, ``2025-26``.

    A lone ``FY26`` / ``FY2026`` names the year the fiscal year *ends* in.
    """
    lowered = text.lower()
    for pattern in (_YEAR_RANGE, _FY_PAIR):
        match = pattern.search(lowered)
        if match:
            start, end = int(match.group(1)), int(match.group(2))
            if (start + 1) % 100 == end:
                return 2000 + start
    match = _FY_FULL.search(lowered)
    if match and 1990 <= int(match.group(1)) <= 2100:
        return int(match.group(1)) - 1
    match = _FY_SHORT.search(lowered)
    if match:
        return 2000 + int(match.group(1)) - 1
    return None


def classify_quarter(
    text: str,
    fiscal_start_month: int = DEFAULT_FISCAL_START_MONTH,
) -> QuarterKey | None:
    """Best-effort quarter detection from announcement text.

    Returns None when the text does not name both a quarter and a fiscal
    year; callers decide what to do with unrecognized text.
    """
    if not text:
        return None
    lowered = text.lower()

    # "quarter ended 30.09.2025" fixes both quarter and fiscal year
    numeric = _ENDED_NUMERIC.search(lowered)
    if numeric:
        month, year = int(numeric.group(2)), int(numeric.group(3))
        if 1 <= month <= 12:
            return quarter_for_date(date(year, month, 1), fiscal_start_month)

    quarter: int | None = None
    ended = _ENDED_MONTH.search(lowered)
    if ended:
        month = _MONTHS[ended.group(1)]
        if ended.group(2):
            return quarter_for_date(date(int(ended.group(2)), month, 1), fiscal_start_month)
        quarter = quarter_for_month(month, fiscal_start_month)

    token = _QUARTER_TOKEN.search(lowered)
    if token:
        quarter = int(token.group(1))

    fiscal_year = parse_fiscal_year(lowered)
    if quarter is None or fiscal_year is None:
        return None
    return QuarterKey(fiscal_year=fiscal_year, quarter=quarter)
