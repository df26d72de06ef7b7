"""Main router for API v1."""

from fastapi import APIRouter

from deploykit.api.v1 import health, infrastructure, runs, stages

router = APIRouter(prefix="/v1")

# Include sub-routers
router.include_router(health.router, tags=["health"])
router.include_router(stages.router, prefix="/stages", tags=["stages"])
router.include_router(runs.router, prefix="/runs", tags=["runs"])
router.include_router(infrastructure.router, prefix="/infrastructure", tags=["infrastructure"])
