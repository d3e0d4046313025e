"""Tests for fiscal-quarter arithmetic, percent change, and quarter classification."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from marketsync.results.quarters import (
    QuarterKey,
    classify_quarter,
    parse_fiscal_year,
    percent_change,
    previous_quarter,
    quarter_for_date,
    to_decimal,
    year_ago_quarter,
)


class TestQuarterKey:
    def test_labels(self) -> None:
        key = QuarterKey(fiscal_year=2025, quarter=2)
        assert key.quarter_label == "Q2"
        assert key.fiscal_label == "FY2526"
        assert str(key) == "Q2 FY2526"

    def test_century_rollover_label(self) -> None:
        assert QuarterKey(fiscal_year=2099, quarter=1).fiscal_label == "FY9900"

    @pytest.mark.parametrize("quarter", [0, 5])
    def test_rejects_bad_quarter(self, quarter: int) -> None:
        with pytest.raises(ValueError):
            QuarterKey(fiscal_year=2025, quarter=quarter)

    @pytest.mark.parametrize(
        "text", ["Q2 FY2526", "Q2-FY26", "q2fy25-26", "Q2 FY 25-26", " Q2_FY2526 "]
    )
    def test_parse(self, text: str) -> None:
        assert QuarterKey.parse(text) == QuarterKey(fiscal_year=2025, quarter=2)

    def test_parse_rejects_garbage(self) -> None:
        with pytest.raises(ValueError):
            QuarterKey.parse("second quarter")

    def test_from_labels(self) -> None:
        assert QuarterKey.from_labels("Q4", "FY2425") == QuarterKey(fiscal_year=2024, quarter=4)
        assert QuarterKey.from_labels(3, 2023) == QuarterKey(fiscal_year=2023, quarter=3)

    def test_ordering(self) -> None:
        keys = [QuarterKey(2025, 1), QuarterKey(2024, 4), QuarterKey(2024, 2)]
        assert sorted(keys)[0] == QuarterKey(2024, 2)


class TestQuarterArithmetic:
    def test_previous_quarter_within_year(self) -> None:
        assert previous_quarter(QuarterKey(2025, 2)) == QuarterKey(2025, 1)

    def test_previous_quarter_wraps_year(self) -> None:
        assert previous_quarter(QuarterKey(2025, 1)) == QuarterKey(2024, 4)

    def test_year_ago(self) -> None:
        assert year_ago_quarter(QuarterKey(2025, 2)) == QuarterKey(2024, 2)

    @pytest.mark.parametrize(
        ("d", "expected"),
        [
            (date(2025, 4, 1), QuarterKey(2025, 1)),
            (date(2025, 6, 30), QuarterKey(2025, 1)),
            (date(2025, 9, 30), QuarterKey(2025, 2)),
            (date(2025, 12, 31), QuarterKey(2025, 3)),
            (date(2026, 2, 10), QuarterKey(2025, 4)),
            (date(2026, 3, 31), QuarterKey(2025, 4)),
        ],
    )
    def test_quarter_for_date(self, d: date, expected: QuarterKey) -> None:
        assert quarter_for_date(d) == expected

    def test_quarter_for_date_calendar_year_start(self) -> None:
        assert quarter_for_date(date(2025, 2, 1), fiscal_start_month=1) == QuarterKey(2025, 1)


class TestPercentChange:
    @pytest.mark.parametrize(
        ("current", "previous", "expected"),
        [
            (110, 100, "10.00"),
            (120, 100, "20.00"),
            (120, 80, "50.00"),
            (90, 100, "-10.00"),
            (100, 100, "0.00"),
            (1, 3, "-66.67"),
            ("1,200", "1,000", "20.00"),
            (Decimal("100.125"), 100, "0.13"),
        ],
    )
    def test_values(self, current: object, previous: object, expected: str) -> None:
        result = percent_change(current, previous)
        assert result is not None
        assert str(result) == expected

    @pytest.mark.parametrize(
        ("current", "previous"),
        [
            (None, 100),
            (100, None),
            (100, 0),
            ("abc", 100),
            (True, 100),
            (float("nan"), 100),
            (100, float("inf")),
            ("", 100),
        ],
    )
    def test_missing_comparison_is_none(self, current: object, previous: object) -> None:
        assert percent_change(current, previous) is None

    def test_to_decimal(self) -> None:
        assert to_decimal("12,345.50") == Decimal("12345.50")
        assert to_decimal(0.1) == Decimal("0.1")
        assert to_decimal(False) is None


class TestParseFiscalYear:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("FY2526", 2025),
            ("FY 25-26", 2025),
            ("FY 2025-26", 2025),
            ("2024-25", 2024),
            ("FY26", 2025),
            ("FY2026", 2025),
            ("no year here", None),
        ],
    )
    def test_parse(self, text: str, expected: int | None) -> None:
        assert parse_fiscal_year(text) == expected


class TestClassifyQuarter:
    def test_quarter_ended_month_day_year(self) -> None:
        text = "Financial Results for the quarter ended September 30, 2025"
        assert classify_quarter(text) == QuarterKey(2025, 2)

    def test_quarter_ended_numeric_date(self) -> None:
        text = "Outcome of Board Meeting - results for quarter ended 31.12.2024"
        assert classify_quarter(text) == QuarterKey(2024, 3)

    def test_quarter_token_with_fy(self) -> None:
        assert classify_quarter("Q2 FY26 financial results") == QuarterKey(2025, 2)

    def test_month_without_year_uses_fy(self) -> None:
        text = "Results for the quarter ended June, FY 2025-26"
        assert classify_quarter(text) == QuarterKey(2025, 1)

    def test_quarter_without_year_is_unrecognized(self) -> None:
        assert classify_quarter("Q1 results declared") is None

    def test_unrelated_text_is_unrecognized(self) -> None:
        assert classify_quarter("Intimation of board meeting") is None
        assert classify_quarter("") is None
