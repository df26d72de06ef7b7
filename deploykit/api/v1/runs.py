"""Pipeline run endpoints."""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Query
from pydantic import BaseModel
from sse_starlette.sse import EventSourceResponse

from deploykit.api.deps import EventsDep, RunDep, RunsDep
from deploykit.core.events import Event
from deploykit.models.config import DeploymentStage
from deploykit.models.pipeline import PipelineResult

router = APIRouter()

TERMINAL_EVENTS = ("run_finished",)


class RunListResponse(BaseModel):
    """Response for listing runs."""

    runs: list[PipelineResult]
    total: int
    limit: int
    offset: int


@router.get("", response_model=RunListResponse, summary="List recent runs")
async def list_runs(
    runs: RunsDep,
    stage: Annotated[DeploymentStage | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> RunListResponse:
    await runs.cleanup_expired()
    items, total = await runs.list_runs(stage=stage, limit=limit, offset=offset)
    return RunListResponse(runs=items, total=total, limit=limit, offset=offset)


@router.get("/{run_id}", response_model=PipelineResult, summary="Get a run")
async def get_run(run: RunDep) -> PipelineResult:
    """Current state of a run, including step timings and warnings."""
    return run


@router.get("/{run_id}/events", summary="Stream run events (SSE)")
async def stream_run_events(run: RunDep, events: EventsDep) -> EventSourceResponse:
    """Stream state changes and step results of a run."""

    async def event_generator():
        queue = events.subscribe(run.run_id)

        try:
            yield Event(
                "connected", {"run_id": str(run.run_id), "state": run.state.value}
            ).payload()

            if run.end_time is not None:
                yield Event("run_finished", {"success": run.success, "url": run.url}).payload()
                return

            while True:
                try:
                    event: Event = await asyncio.wait_for(queue.get(), timeout=30.0)
                    yield event.payload()

                    if event.event_type in TERMINAL_EVENTS:
                        break

                except asyncio.TimeoutError:
                    yield {"event": "keepalive", "data": "{}"}

        finally:
            events.unsubscribe(run.run_id)

    return EventSourceResponse(event_generator())
