"""Top-level API router: mounts all domain routers under /api/v1."""

from fastapi import APIRouter

from marketsync.api.routes import jobs, system

api_router = APIRouter()
api_router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
api_router.include_router(system.router, prefix="/system", tags=["system"])
