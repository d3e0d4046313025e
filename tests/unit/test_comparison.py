"""Tests for the quarterly comparison engine."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from marketsync.results.comparison import QuarterlyComparisonEngine, build_record
from marketsync.results.models import QuarterlyFigures, QuarterlyMetricsRecord
from marketsync.results.quarters import QuarterKey

Q2_FY26 = QuarterKey(fiscal_year=2025, quarter=2)
Q1_FY26 = QuarterKey(fiscal_year=2025, quarter=1)
Q2_FY25 = QuarterKey(fiscal_year=2024, quarter=2)


def _stored(symbol: str, key: QuarterKey, **figures: object) -> QuarterlyMetricsRecord:
    return QuarterlyMetricsRecord(
        symbol=symbol, quarter=key.quarter_label, fiscal_year=key.fiscal_label, **figures
    )


class TestQuarterlyFigures:
    def test_coerces_strings(self) -> None:
        figures = QuarterlyFigures(revenue="1,200.50", profit="n/a", eps=12)
        assert figures.revenue == Decimal("1200.50")
        assert figures.profit is None
        assert figures.eps == Decimal(12)

    def test_derives_operating_margin(self) -> None:
        figures = QuarterlyFigures(revenue=400, operating_profit=50)
        assert figures.operating_profit_margin == Decimal("12.50")

    def test_operating_margin_rounds_half_up(self) -> None:
        # 1 / 800 * 100 = 0.125 exactly
        figures = QuarterlyFigures(revenue=800, operating_profit=1)
        assert str(figures.operating_profit_margin) == "0.13"
        negative = QuarterlyFigures(revenue=800, operating_profit=-1)
        assert str(negative.operating_profit_margin) == "-0.13"

    def test_is_empty(self) -> None:
        assert QuarterlyFigures().is_empty()
        assert not QuarterlyFigures(eps=1).is_empty()


class TestBuildRecord:
    def test_computes_deltas(self) -> None:
        previous = _stored("FOO", Q1_FY26, revenue=100, profit=10)
        year_ago = _stored("FOO", Q2_FY25, revenue=80, profit=0)
        record = build_record(
            "FOO", Q2_FY26, QuarterlyFigures(revenue=120, profit=12), previous, year_ago
        )

        assert record.quarter == "Q2"
        assert record.fiscal_year == "FY2526"
        assert record.prev_revenue == Decimal(100)
        assert record.year_ago_revenue == Decimal(80)
        assert str(record.revenue_qoq) == "20.00"
        assert str(record.revenue_yoy) == "50.00"
        assert str(record.profit_qoq) == "20.00"
        # Zero base: no percentage, never 0
        assert record.profit_yoy is None

    def test_missing_comparisons_leave_nulls(self) -> None:
        record = build_record("FOO", Q2_FY26, QuarterlyFigures(revenue=120), None, None)
        assert record.revenue == Decimal(120)
        assert record.prev_revenue is None
        assert record.revenue_qoq is None
        assert record.revenue_yoy is None

    def test_missing_current_metric(self) -> None:
        previous = _stored("FOO", Q1_FY26, eps=5)
        record = build_record("FOO", Q2_FY26, QuarterlyFigures(revenue=1), previous, None)
        assert record.prev_eps == Decimal(5)
        assert record.eps_qoq is None


class TestQuarterlyComparisonEngine:
    async def test_end_to_end_foo_scenario(self, store) -> None:
        """FOO Q2 FY2526 revenue 120 vs 100 last quarter and 80 a year ago."""
        store.quarterly[("FOO", "Q1", "FY2526")] = _stored("FOO", Q1_FY26, revenue=100)
        store.quarterly[("FOO", "Q2", "FY2425")] = _stored("FOO", Q2_FY25, revenue=80)
        engine = QuarterlyComparisonEngine(store)
        published = datetime(2025, 10, 17, 14, 0, tzinfo=UTC)

        record = await engine.process(
            "FOO", Q2_FY26, QuarterlyFigures(revenue=120), published_at=published
        )

        assert record is not None
        assert str(record.revenue_qoq) == "20.00"
        assert str(record.revenue_yoy) == "50.00"
        assert record.published_at == published
        assert record.source == "announcement"
        assert store.quarterly[("FOO", "Q2", "FY2526")] is record

    async def test_existing_record_is_not_recomputed(self, store) -> None:
        existing = _stored("FOO", Q2_FY26, revenue=999)
        store.quarterly[("FOO", "Q2", "FY2526")] = existing
        engine = QuarterlyComparisonEngine(store)

        result = await engine.process("FOO", Q2_FY26, QuarterlyFigures(revenue=120))

        assert result is None
        assert store.quarterly[("FOO", "Q2", "FY2526")] is existing

    async def test_processing_twice_is_idempotent(self, store) -> None:
        engine = QuarterlyComparisonEngine(store)
        first = await engine.process("FOO", Q2_FY26, QuarterlyFigures(revenue=120))
        second = await engine.process("FOO", Q2_FY26, QuarterlyFigures(revenue=130))

        assert first is not None
        assert second is None
        assert store.quarterly[("FOO", "Q2", "FY2526")].revenue == Decimal(120)

    async def test_q1_compares_with_previous_fiscal_q4(self, store) -> None:
        q4 = QuarterKey(fiscal_year=2024, quarter=4)
        store.quarterly[("FOO", "Q4", "FY2425")] = _stored("FOO", q4, profit=50)
        engine = QuarterlyComparisonEngine(store)

        record = await engine.process("FOO", Q1_FY26, QuarterlyFigures(profit=55))

        assert record is not None
        assert record.prev_profit == Decimal(50)
        assert str(record.profit_qoq) == "10.00"
