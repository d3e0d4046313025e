"""Pydantic models for NSE quote, history and announcement payloads."""

from __future__ import annotations

from datetime import UTC, date, datetime

from pydantic import BaseModel, Field, model_validator


class Quote(BaseModel):
    """Live quote snapshot from ``/api/quote-equity``."""

    symbol: str
    last_price: float
    change_percent: float = 0.0
    previous_close: float | None = None
    open_price: float | None = None
    day_high: float | None = None
    day_low: float | None = None
    year_high: float | None = None
    year_low: float | None = None
    total_traded_volume: int = 0
    total_traded_value: float = 0.0
    average_price: float | None = None
    total_buy_quantity: int = 0
    total_sell_quantity: int = 0
    last_traded_quantity: int = 0
    last_traded_time: str | None = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Candle(BaseModel):
    """One daily OHLCV row."""

    symbol: str
    trade_date: date
    open: float
    high: float
    low: float
    close: float
    volume: int = 0

    @model_validator(mode="after")
    def check_range(self) -> Candle:
        if self.high < self.low:
            raise ValueError(f"high {self.high} below low {self.low}")
        if not self.low <= self.close <= self.high:
            raise ValueError(f"close {self.close} outside [{self.low}, {self.high}]")
        return self


class DeliveryRow(BaseModel):
    """One day of delivery-volume statistics."""

    symbol: str
    trade_date: date
    delivery_quantity: int
    traded_quantity: int
    delivery_percentage: float

    @model_validator(mode="after")
    def check_quantities(self) -> DeliveryRow:
        if self.traded_quantity <= 0:
            raise ValueError("traded quantity must be positive")
        if self.delivery_quantity < 0 or self.delivery_percentage < 0:
            raise ValueError("delivery figures must be non-negative")
        return self


class Announcement(BaseModel):
    """Corporate announcement from ``/api/corporate-announcements``."""

    symbol: str
    company_name: str = ""
    announced_at: datetime | None = None
    description: str = ""
    attachment_url: str | None = None
    attachment_text: str = ""
    has_xbrl: bool = False
