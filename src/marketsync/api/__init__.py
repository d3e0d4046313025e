"""HTTP operator surface."""

from marketsync.api.router import api_router

__all__ = ["api_router"]
