"""Stage endpoints: status, recovery, deployments and diffs."""

from typing import Any

from fastapi import APIRouter, BackgroundTasks, status
from pydantic import BaseModel

from deploykit.api.deps import RunsDep, ServicesDep
from deploykit.core.exceptions import LockHeldError
from deploykit.core.recovery import provide_rollback_guidance
from deploykit.models.config import DeploymentStage
from deploykit.models.diff import DeploymentDiff
from deploykit.models.lock import StageStatus
from deploykit.models.pipeline import CanaryOptions, DeployOptions, PipelineResult
from deploykit.services import Services
from deploykit.utils.logging import get_logger

router = APIRouter()
logger = get_logger(__name__)


class RecoverRequest(BaseModel):
    """Options for recovering a stage."""

    clear_external_lock: bool = False
    error: str | None = None


class RecoverResponse(BaseModel):
    """Result of a recovery."""

    stage: DeploymentStage
    file_lock_cleared: bool
    external_lock_cleared: bool
    status: StageStatus
    guidance: list[str]


class DeploymentRequest(BaseModel):
    """Request to start a deployment."""

    dry_run: bool = False
    maintenance: bool = False
    show_diff: bool = False
    skip_audit: bool = False
    canary: CanaryOptions | None = None


class DiffResponse(BaseModel):
    """Diff of a stage with its aggregate change flag."""

    has_changes: bool
    diff: DeploymentDiff


async def run_deployment_background(
    services: Services,
    stage: DeploymentStage,
    options: DeployOptions,
    result: PipelineResult,
) -> None:
    """Background task running the pipeline. Failures land on ``result``."""
    await services.pipeline().run(stage, options, result)


@router.get(
    "/{stage}/status",
    response_model=StageStatus,
    summary="Lock status of a stage",
)
async def get_stage_status(stage: DeploymentStage, services: ServicesDep) -> StageStatus:
    """Whether the stage is ready, locked by an active run, or stuck."""
    return await services.recovery().get_status(stage)


@router.post(
    "/{stage}/recover",
    response_model=RecoverResponse,
    summary="Clear locks left by an interrupted deployment",
)
async def recover_stage(
    stage: DeploymentStage,
    data: RecoverRequest,
    services: ServicesDep,
) -> RecoverResponse:
    """Remove the stage's lock file, and the infrastructure state lock if asked."""
    outcome: dict[str, Any] = await services.recovery().perform_full_recovery(
        stage,
        confirm=lambda message: data.clear_external_lock,
        error=data.error,
    )
    return RecoverResponse(
        stage=stage,
        file_lock_cleared=outcome["file_lock_cleared"],
        external_lock_cleared=outcome["external_lock_cleared"],
        status=outcome["status"],
        guidance=outcome["guidance"] or provide_rollback_guidance("lock"),
    )


@router.post(
    "/{stage}/deployments",
    response_model=PipelineResult,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start a deployment",
    description="Returns immediately with the run record; follow it on /v1/runs/{run_id}/events.",
)
async def create_deployment(
    stage: DeploymentStage,
    data: DeploymentRequest,
    services: ServicesDep,
    runs: RunsDep,
    background_tasks: BackgroundTasks,
) -> PipelineResult:
    """Start a deployment of ``stage`` in the background."""
    if not data.dry_run:
        existing = await services.lock_manager().get_file_lock(stage)
        if existing is not None:
            raise LockHeldError(stage.value, existing.holder_id, existing.expires_at)

    options = DeployOptions(**data.model_dump())
    result = await runs.save(PipelineResult(stage=stage, dry_run=data.dry_run))
    logger.info("deployment.accepted", stage=stage.value, run_id=str(result.run_id))

    background_tasks.add_task(run_deployment_background, services, stage, options, result)
    return result


@router.get(
    "/{stage}/diff",
    response_model=DiffResponse,
    summary="Desired versus live infrastructure for a stage",
)
async def get_stage_diff(stage: DeploymentStage, services: ServicesDep) -> DiffResponse:
    diff = await services.diff_collector(stage).collect()
    return DiffResponse(has_changes=diff.has_changes, diff=diff)
