"""Deployment pipeline data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from deploykit.models.config import DeploymentStage


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PipelineState(str, Enum):
    """States of the deployment state machine."""

    IDLE = "idle"
    PRE_CHECKS = "pre_checks"
    LOCK_ACQUIRED = "lock_acquired"
    MAINTENANCE_ON = "maintenance_on"
    BUILDING = "building"
    DEPLOYING = "deploying"
    HEALTH_VALIDATING = "health_validating"
    MAINTENANCE_OFF = "maintenance_off"
    CACHE_INVALIDATING = "cache_invalidating"
    AUDITING = "auditing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (PipelineState.SUCCEEDED, PipelineState.FAILED)


class StepStatus(str, Enum):
    """Individual step status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepInfo(BaseModel):
    """Timing and outcome of one pipeline step."""

    status: StepStatus = StepStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    detail: str | None = None
    error: str | None = None


class StepOutcome(BaseModel):
    """Tri-state step result.

    ``applicable=False`` means the step was skipped because it is not
    configured or not wanted; ``ok`` is only meaningful when applicable.
    """

    applicable: bool = True
    ok: bool = True
    detail: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def skipped(cls, detail: str) -> "StepOutcome":
        return cls(applicable=False, ok=True, detail=detail)

    @classmethod
    def passed(cls, detail: str | None = None, **data: Any) -> "StepOutcome":
        return cls(applicable=True, ok=True, detail=detail, data=data)

    @classmethod
    def failed(cls, detail: str, **data: Any) -> "StepOutcome":
        return cls(applicable=True, ok=False, detail=detail, data=data)


class CheckResult(BaseModel):
    """Result of a single pre-flight check."""

    name: str
    outcome: StepOutcome
    warning: str | None = None


class DeployOutput(BaseModel):
    """Typed result of the external deploy tool.

    The core only sees these fields; how they were scraped from the tool's
    output is the executor's business.
    """

    success: bool
    distribution_id: str | None = None
    distribution_domain: str | None = None
    url: str | None = None
    output: str = ""
    error: str | None = None


class HealthCheckResult(BaseModel):
    """Result of one HTTP health check."""

    name: str
    url: str
    passed: bool
    status_code: int | None = None
    duration_ms: int = 0
    error: str | None = None


class HealthReport(BaseModel):
    """Joined result of all health checks for a stage."""

    results: list[HealthCheckResult] = Field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failed_checks(self) -> list[str]:
        return [r.name for r in self.results if not r.passed]


class CanaryOptions(BaseModel):
    """Canary rollout parameters accepted on the command line."""

    initial: int = Field(default=10, ge=1, le=100)
    increment: int = Field(default=10, ge=1, le=100)
    interval_seconds: int = Field(default=300, ge=0)


class DeployOptions(BaseModel):
    """Per-run options for a deployment."""

    dry_run: bool = False
    maintenance: bool = False
    show_diff: bool = False
    skip_audit: bool = False
    canary: CanaryOptions | None = None


class PipelineDetails(BaseModel):
    """Per-phase completion flags."""

    pre_checks_ok: bool = False
    lock_acquired: bool = False
    build_ok: bool = False
    deployment_ok: bool = False
    maintenance_enabled: bool = False
    health_checks_ok: bool = False
    maintenance_restored: bool = False
    cache_invalidated_ok: bool = False
    audit_ok: bool = False


class PipelineResult(BaseModel):
    """Incrementally built record of one pipeline run."""

    run_id: UUID = Field(default_factory=uuid4)
    stage: DeploymentStage
    dry_run: bool = False
    state: PipelineState = PipelineState.IDLE
    success: bool = False
    start_time: datetime = Field(default_factory=utcnow)
    end_time: datetime | None = None
    duration_seconds: float | None = None
    steps: dict[str, StepInfo] = Field(default_factory=dict)
    details: PipelineDetails = Field(default_factory=PipelineDetails)
    distribution_id: str | None = None
    url: str | None = None
    canary: CanaryOptions | None = None
    warnings: list[str] = Field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    recovery_commands: list[str] = Field(default_factory=list)

    def update_step(
        self,
        step: str,
        status: StepStatus,
        detail: str | None = None,
        error: str | None = None,
    ) -> None:
        """Update a step's status and timing."""
        now = utcnow()

        if step not in self.steps:
            self.steps[step] = StepInfo()

        info = self.steps[step]
        info.status = status

        if status == StepStatus.IN_PROGRESS:
            info.started_at = now
        elif status in (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.SKIPPED):
            info.completed_at = now
            if info.started_at:
                info.duration_ms = int((now - info.started_at).total_seconds() * 1000)
            if status == StepStatus.FAILED:
                info.error = error

        if detail:
            info.detail = detail

    def finalize(self, success: bool) -> None:
        """Stamp end time and outcome. Only the first call has effect."""
        if self.end_time is not None:
            return
        self.success = success
        self.end_time = utcnow()
        self.duration_seconds = round(
            (self.end_time - self.start_time).total_seconds(), 2
        )

    @property
    def timings(self) -> dict[str, int]:
        """Per-step duration breakdown in milliseconds."""
        return {
            name: info.duration_ms
            for name, info in self.steps.items()
            if info.duration_ms is not None
        }
