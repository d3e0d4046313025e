"""Structured logging configuration with structlog.

Job runs, poller transitions and upstream failures are logged as structlog
events with key/value context (``job=``, ``symbol=``, ``session_date=``).
Development renders them as coloured console lines; every other environment
emits one JSON object per line on stdout.
"""

import logging
import sys
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from marketsync.config import Settings

# Third-party loggers that fire on every scheduler tick or upstream request
NOISY_LOGGERS = (
    "apscheduler.executors",
    "apscheduler.scheduler",
    "httpx",
    "httpcore",
    "uvicorn.access",
)


def setup_logging(settings: "Settings") -> None:
    """Configure structlog and the stdlib root logger for the engine."""
    level = getattr(logging, settings.log_level)

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.env == "development":
        processors: list[structlog.types.Processor] = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    # asyncpg, redis and uvicorn log through the stdlib
    logging.basicConfig(
        format="%(message)s",
        level=level,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Raised to WARNING unless running at DEBUG
    noisy_level = level if level == logging.DEBUG else max(level, logging.WARNING)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger instance."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
