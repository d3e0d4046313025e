"""Pydantic models for quarterly results and their comparisons."""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from marketsync.results.quarters import QuarterKey, to_decimal

METRIC_FIELDS: tuple[str, ...] = (
    "revenue",
    "profit",
    "eps",
    "operating_profit",
    "operating_profit_margin",
)


class QuarterlyFigures(BaseModel):
    """Raw reported figures for one quarter.

    Unparseable values become None rather than failing validation.
    """

    revenue: Decimal | None = None
    profit: Decimal | None = None
    eps: Decimal | None = None
    operating_profit: Decimal | None = None
    operating_profit_margin: Decimal | None = None

    @field_validator(*METRIC_FIELDS, mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Decimal | None:
        return to_decimal(v)

    @model_validator(mode="after")
    def derive_margin(self) -> QuarterlyFigures:
        if (
            self.operating_profit_margin is None
            and self.operating_profit is not None
            and self.revenue
        ):
            margin = self.operating_profit / self.revenue * 100
            self.operating_profit_margin = margin.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        return self

    def is_empty(self) -> bool:
        return all(getattr(self, name) is None for name in METRIC_FIELDS)


class QuarterlyMetricsRecord(BaseModel):
    """Denormalized (symbol, quarter) record with comparison values and deltas."""

    symbol: str
    quarter: str  # "Q2"
    fiscal_year: str  # "FY2526"

    revenue: Decimal | None = None
    profit: Decimal | None = None
    eps: Decimal | None = None
    operating_profit: Decimal | None = None
    operating_profit_margin: Decimal | None = None

    prev_revenue: Decimal | None = None
    prev_profit: Decimal | None = None
    prev_eps: Decimal | None = None
    prev_operating_profit: Decimal | None = None
    prev_operating_profit_margin: Decimal | None = None

    year_ago_revenue: Decimal | None = None
    year_ago_profit: Decimal | None = None
    year_ago_eps: Decimal | None = None
    year_ago_operating_profit: Decimal | None = None
    year_ago_operating_profit_margin: Decimal | None = None

    revenue_qoq: Decimal | None = None
    profit_qoq: Decimal | None = None
    eps_qoq: Decimal | None = None
    operating_profit_qoq: Decimal | None = None
    operating_profit_margin_qoq: Decimal | None = None

    revenue_yoy: Decimal | None = None
    profit_yoy: Decimal | None = None
    eps_yoy: Decimal | None = None
    operating_profit_yoy: Decimal | None = None
    operating_profit_margin_yoy: Decimal | None = None

    published_at: datetime | None = None
    source: str = "announcement"

    @property
    def key(self) -> QuarterKey:
        return QuarterKey.from_labels(self.quarter, self.fiscal_year)

    def figures(self) -> QuarterlyFigures:
        return QuarterlyFigures(**{name: getattr(self, name) for name in METRIC_FIELDS})


class PublicationStatus(str, Enum):
    """Lifecycle of a detected results publication."""

    DETECTED = "detected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    FAILED = "failed"


class ResultsPublication(BaseModel):
    """A results announcement picked up by the monitor."""

    symbol: str
    company_name: str = ""
    announced_at: datetime | None = None
    description: str = ""
    attachment_url: str | None = None
    quarter_hint: QuarterKey | None = None
    status: PublicationStatus = PublicationStatus.DETECTED
    reason: str | None = None
    detected_at: datetime = Field(default_factory=datetime.now)

    model_config = {"arbitrary_types_allowed": True}

    def mark(self, status: PublicationStatus, reason: str | None = None) -> None:
        self.status = status
        self.reason = reason
