"""Unit tests for Settings validators and env-var loading in config.py."""

from __future__ import annotations

from datetime import time

import pytest
from pydantic import ValidationError

from marketsync.config import Settings

# ─────────────────────────────────────────────────────────────
# Validator tests
# ─────────────────────────────────────────────────────────────


class TestExtractorUrl:
    def test_blank_disables_extraction(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("EXTRACTOR_URL", "   ")
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.extractor_url is None

    def test_default_is_disabled(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.extractor_url is None


class TestMarketWindow:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)  # type: ignore[call-arg]
        assert settings.market_open == time(9, 15)
        assert settings.market_close == time(15, 30)
        assert settings.market_timezone == "Asia/Kolkata"

    def test_close_before_open_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MARKET_OPEN", "15:30")
        monkeypatch.setenv("MARKET_CLOSE", "09:15")
        with pytest.raises(ValidationError, match="market_close"):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_window_bounds_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WINDOW_DEFAULT_DAYS", "10")
        monkeypatch.setenv("WINDOW_MAX_DAYS", "5")
        with pytest.raises(ValidationError, match="window_max_days"):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_confidence_range(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MIN_EXTRACTION_CONFIDENCE", "120")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]

    def test_unknown_fallback_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESULTS_QUARTER_FALLBACK", "latest")
        with pytest.raises(ValidationError):
            Settings(_env_file=None)  # type: ignore[call-arg]


# ─────────────────────────────────────────────────────────────
# Comprehensive env-var loading test
# ─────────────────────────────────────────────────────────────

# Every Settings field mapped to (ENV_VAR_NAME, test_value_string, expected_python_value).
# Aliased fields use their alias; all others use UPPER_CASE(field_name).
_ENV_FIELD_SPECS: list[tuple[str, str, str, object]] = [
    # (field_name, env_var_name, env_string_value, expected_value)
    # --- Core (aliased) ---
    ("env", "MARKETSYNC_ENV", "staging", "staging"),
    ("debug", "MARKETSYNC_DEBUG", "true", True),
    ("log_level", "MARKETSYNC_LOG_LEVEL", "WARNING", "WARNING"),
    # --- Storage ---
    (
        "database_url",
        "DATABASE_URL",
        "postgresql+asyncpg://u:p@h:1/db",
        "postgresql+asyncpg://u:p@h:1/db",
    ),
    ("redis_url", "REDIS_URL", "redis://localhost:6380/1", "redis://localhost:6380/1"),
    # --- Upstream ---
    ("nse_base_url", "NSE_BASE_URL", "https://nse.test", "https://nse.test"),
    ("nse_min_request_interval", "NSE_MIN_REQUEST_INTERVAL", "1.5", 1.5),
    ("nse_session_ttl_minutes", "NSE_SESSION_TTL_MINUTES", "15", 15),
    ("nse_timeout", "NSE_TIMEOUT", "10", 10.0),
    # --- Extraction ---
    ("extractor_url", "EXTRACTOR_URL", "http://extractor:8080", "http://extractor:8080"),
    ("extractor_timeout", "EXTRACTOR_TIMEOUT", "60", 60.0),
    # --- Market session ---
    ("market_timezone", "MARKET_TIMEZONE", "Asia/Calcutta", "Asia/Calcutta"),
    ("market_open", "MARKET_OPEN", "09:00", time(9, 0)),
    ("market_close", "MARKET_CLOSE", "15:45", time(15, 45)),
    # --- Poller ---
    ("live_poll_interval", "LIVE_POLL_INTERVAL", "10", 10.0),
    ("quote_cache_ttl", "QUOTE_CACHE_TTL", "60", 60.0),
    ("fetch_concurrency", "FETCH_CONCURRENCY", "8", 8),
    ("batch_delay", "BATCH_DELAY", "0.25", 0.25),
    ("eod_stale_hours", "EOD_STALE_HOURS", "4", 4.0),
    # --- Window planner ---
    ("window_default_days", "WINDOW_DEFAULT_DAYS", "5", 5),
    ("window_max_days", "WINDOW_MAX_DAYS", "20", 20),
    # --- Job health ---
    ("failure_alert_threshold", "FAILURE_ALERT_THRESHOLD", "5", 5),
    ("metrics_retention_days", "METRICS_RETENTION_DAYS", "90", 90),
    ("scheduler_max_instances", "SCHEDULER_MAX_INSTANCES", "1", 1),
    # --- Results ---
    ("results_lookback_days", "RESULTS_LOOKBACK_DAYS", "3", 3),
    ("min_extraction_confidence", "MIN_EXTRACTION_CONFIDENCE", "75", 75.0),
    ("fiscal_year_start_month", "FISCAL_YEAR_START_MONTH", "1", 1),
    ("results_quarter_fallback", "RESULTS_QUARTER_FALLBACK", "previous", "previous"),
    ("financials_request_delay", "FINANCIALS_REQUEST_DELAY", "1", 1.0),
]


class TestSettingsEnvLoading:
    """Verify every Settings field can be loaded from its env var."""

    def test_all_fields_loadable(self, monkeypatch: pytest.MonkeyPatch) -> None:
        for _field, env_var, env_val, _expected in _ENV_FIELD_SPECS:
            monkeypatch.setenv(env_var, env_val)

        settings = Settings(_env_file=None)  # type: ignore[call-arg]

        for field_name, env_var, _env_val, expected in _ENV_FIELD_SPECS:
            actual = getattr(settings, field_name)
            assert actual == expected, (
                f"Field {field_name!r} (env={env_var}): expected {expected!r}, got {actual!r}"
            )

    def test_field_spec_covers_all_settings_fields(self) -> None:
        """Ensure _ENV_FIELD_SPECS covers every field in Settings."""
        model_fields = set(Settings.model_fields.keys())
        spec_fields = {field_name for field_name, *_ in _ENV_FIELD_SPECS}
        missing = model_fields - spec_fields
        assert not missing, (
            f"Fields missing from _ENV_FIELD_SPECS: {missing}. "
            "Add them to keep the env-loading test comprehensive."
        )
