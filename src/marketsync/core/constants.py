"""Application-wide constants.

These are fixed values that don't change between environments.
For configurable values, see config.py Settings.
"""

# ─────────────────────────────────────────────────────────────
# Job names (registry keys and APScheduler job ids)
# ─────────────────────────────────────────────────────────────
JOB_LIVE_PRICE = "live_price"
JOB_PRICE_REFRESH = "price_refresh"
JOB_RESULTS_CALENDAR = "results_calendar"
JOB_CANDLESTICKS = "candlesticks"
JOB_DELIVERY = "delivery"
JOB_QUARTERLY_FINANCIALS = "quarterly_financials"
JOB_METRICS_PURGE = "metrics_purge"

# ─────────────────────────────────────────────────────────────
# Series names (for latest-date lookups)
# ─────────────────────────────────────────────────────────────
SERIES_CANDLES = "candles"
SERIES_DELIVERY = "delivery"

# ─────────────────────────────────────────────────────────────
# NSE API paths (relative to nse_base_url)
# ─────────────────────────────────────────────────────────────
NSE_QUOTE_PATH = "/api/quote-equity"
NSE_HISTORICAL_PATH = "/api/historical/cm/equity"
NSE_DELIVERY_PATH = "/api/historical/securityArchives"
NSE_ANNOUNCEMENTS_PATH = "/api/corporate-announcements"
NSE_FINANCIALS_PATH = "/api/corporates-financial-info"
NSE_BOOTSTRAP_PAGE = "/companies-listing/corporate-filings-announcements"
NSE_DATE_FORMAT = "%d-%m-%Y"
NSE_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# ─────────────────────────────────────────────────────────────
# Redis keys
# ─────────────────────────────────────────────────────────────
EOD_MARKER_PREFIX = "marketsync:eod"
EOD_MARKER_TTL_SECONDS = 129600  # 36 hours, outlives one session date

# ─────────────────────────────────────────────────────────────
# Registry limits
# ─────────────────────────────────────────────────────────────
RECENT_FAILURES_MAX = 200  # in-memory ring of failed MetricRows
DEFAULT_RECENT_FAILURES_LIMIT = 20
