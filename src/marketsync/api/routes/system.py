"""System status and config endpoints."""

from fastapi import APIRouter

from marketsync.core.dependencies import EngineStateDep, SettingsDep

router = APIRouter()


@router.get("/status")
async def system_status(state: EngineStateDep) -> dict[str, object]:
    return {
        "market_open": state.session.is_open(),
        "session_date": state.session.session_date(),
        "poller": state.poller.status(),
        "scheduler_running": state.jobs.running,
        "extraction_enabled": state.monitor.extraction_enabled,
    }


@router.get("/config")
async def system_config(settings: SettingsDep) -> dict[str, object]:
    return {
        "env": settings.env,
        "market_timezone": settings.market_timezone,
        "market_open": settings.market_open.isoformat(),
        "market_close": settings.market_close.isoformat(),
        "live_poll_interval": settings.live_poll_interval,
        "failure_alert_threshold": settings.failure_alert_threshold,
        "extraction_enabled": settings.extractor_url is not None,
    }
