"""Pydantic models for stored instruments."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class Instrument(BaseModel):
    """A tracked exchange symbol and its data-freshness timestamps."""

    symbol: str
    company_name: str = ""
    last_live_update: datetime | None = None
    last_candle_update: datetime | None = None
    last_delivery_update: datetime | None = None
