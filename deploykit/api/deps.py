"""Dependency injection for API endpoints."""

from functools import lru_cache
from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status

from deploykit.core.events import EventBus, get_event_bus
from deploykit.core.runs import RunStore, get_run_store
from deploykit.models.pipeline import PipelineResult
from deploykit.services import Services, build_services


@lru_cache
def get_services() -> Services:
    """Collaborators for the configured project root, built once."""
    return build_services()


async def get_runs() -> RunStore:
    return get_run_store()


async def get_events() -> EventBus:
    return get_event_bus()


async def get_run_by_id(
    run_id: UUID,
    runs: Annotated[RunStore, Depends(get_runs)],
) -> PipelineResult:
    """Get a run by ID or raise 404."""
    run = await runs.get(run_id)
    if not run:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Run not found: {run_id}",
        )
    return run


# Type aliases for cleaner signatures
ServicesDep = Annotated[Services, Depends(get_services)]
RunsDep = Annotated[RunStore, Depends(get_runs)]
EventsDep = Annotated[EventBus, Depends(get_events)]
RunDep = Annotated[PipelineResult, Depends(get_run_by_id)]
