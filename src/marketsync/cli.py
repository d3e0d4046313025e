"""``marketsync`` command: serve the API with the sync engine attached.

The scheduler and live price poller run inside the app lifespan, so a
single server process is always started. Extra workers would each run
their own copy of every job.
"""

import argparse

import uvicorn

LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="marketsync",
        description="Run the marketsync API, job scheduler and live price poller",
    )
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--host", default="0.0.0.0", help="Bind host")
    parser.add_argument("--port", type=int, default=8000, help="Bind port")
    parser.add_argument(
        "--log-level",
        choices=LOG_LEVELS,
        default="info",
        help="uvicorn server log level (engine events follow MARKETSYNC_LOG_LEVEL)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    uvicorn.run(
        "marketsync.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
        workers=1,
    )
