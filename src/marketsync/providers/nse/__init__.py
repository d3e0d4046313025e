"""NSE India upstream client."""

from marketsync.providers.nse.client import NSEClient, parse_nse_date
from marketsync.providers.nse.models import Announcement, Candle, DeliveryRow, Quote

__all__ = [
    "Announcement",
    "Candle",
    "DeliveryRow",
    "NSEClient",
    "Quote",
    "parse_nse_date",
]
