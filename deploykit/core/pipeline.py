"""Deployment pipeline.

Drives one stage through the deployment state machine:

    idle -> pre_checks -> lock_acquired -> [maintenance_on] -> building
         -> deploying -> health_validating -> [maintenance_off]
         -> cache_invalidating -> auditing -> succeeded | failed

Pre-checks finish before the lock is taken. The lock is released as soon
as the traffic-affecting work is done, so cache invalidation and the
audit run without it. Any failure after the lock is taken releases it,
restores maintenance and runs the on-failure hook before the run ends.
"""

from pathlib import Path

from deploykit.adapters.base import (
    CertificateClient,
    DeployExecutor,
    HealthProber,
    MaintenanceToggler,
    PreflightChecker,
)
from deploykit.adapters.hooks import HookType, LifecycleHookRunner
from deploykit.adapters.maintenance import placeholder_url
from deploykit.config import settings
from deploykit.core.cloudfront import CloudFrontOperations
from deploykit.core.context import RunContext
from deploykit.core.diff import DiffCollector, format_diff
from deploykit.core.events import EventBus, get_event_bus
from deploykit.core.exceptions import (
    DeployDelegateError,
    DeployKitError,
    HealthValidationError,
    PipelineStateError,
    PreflightError,
)
from deploykit.core.locks import LockManager
from deploykit.models.config import DeploymentStage, ProjectConfig
from deploykit.models.infrastructure import MaintenanceSnapshot
from deploykit.models.lock import DeploymentLock
from deploykit.models.pipeline import (
    DeployOptions,
    PipelineResult,
    PipelineState,
    StepOutcome,
    StepStatus,
)

S = PipelineState

TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    S.IDLE: {S.PRE_CHECKS, S.FAILED},
    # Dry runs go straight from pre-checks to building
    S.PRE_CHECKS: {S.LOCK_ACQUIRED, S.BUILDING, S.FAILED},
    S.LOCK_ACQUIRED: {S.MAINTENANCE_ON, S.BUILDING, S.FAILED},
    S.MAINTENANCE_ON: {S.BUILDING, S.FAILED},
    S.BUILDING: {S.DEPLOYING, S.FAILED},
    S.DEPLOYING: {S.HEALTH_VALIDATING, S.FAILED},
    S.HEALTH_VALIDATING: {S.MAINTENANCE_OFF, S.CACHE_INVALIDATING, S.FAILED},
    S.MAINTENANCE_OFF: {S.CACHE_INVALIDATING, S.FAILED},
    S.CACHE_INVALIDATING: {S.AUDITING, S.SUCCEEDED},
    S.AUDITING: {S.SUCCEEDED},
    S.SUCCEEDED: set(),
    S.FAILED: set(),
}


def recovery_commands(stage: DeploymentStage) -> list[str]:
    return [
        f"deploykit deploy {stage.value}",
        f"deploykit recover {stage.value}",
    ]


class DeploymentPipeline:
    """Runs the deployment state machine for one stage at a time.

    Collaborators are injected so tests can substitute fakes; the
    ``RunContext`` is initialized when a run starts and flushed when it
    ends.
    """

    def __init__(
        self,
        config: ProjectConfig,
        locks: LockManager,
        executor: DeployExecutor,
        health: HealthProber,
        preflight: PreflightChecker,
        cloudfront: CloudFrontOperations,
        certificates: CertificateClient | None = None,
        maintenance: MaintenanceToggler | None = None,
        hooks: LifecycleHookRunner | None = None,
        context: RunContext | None = None,
        events: EventBus | None = None,
        project_root: Path | None = None,
    ):
        self.config = config
        self.locks = locks
        self.executor = executor
        self.health = health
        self.preflight = preflight
        self.cloudfront = cloudfront
        self.certificates = certificates
        self.maintenance = maintenance
        self.project_root = Path(project_root) if project_root else settings.project_path
        self.context = context or RunContext(environment=settings.app_env)
        self.hooks = hooks or LifecycleHookRunner(config, self.project_root, self.context)
        self.events = events or get_event_bus()
        self.logger = self.context.child("pipeline")
        self.state = S.IDLE

    async def _transition(self, result: PipelineResult, target: PipelineState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise PipelineStateError(self.state.value, target.value)

        self.logger.debug("pipeline.state_changed", previous=self.state.value, state=target.value)
        self.state = target
        result.state = target
        await self.events.publish_state_changed(result.run_id, target.value)

    async def _start_step(self, result: PipelineResult, step: str) -> None:
        result.update_step(step, StepStatus.IN_PROGRESS)

    async def _finish_step(
        self, result: PipelineResult, step: str, outcome: StepOutcome
    ) -> None:
        """Record a step outcome. Failing outcomes are handled by the caller."""
        if not outcome.applicable:
            status = StepStatus.SKIPPED
        elif outcome.ok:
            status = StepStatus.COMPLETED
        else:
            status = StepStatus.FAILED

        result.update_step(
            step,
            status,
            detail=outcome.detail,
            error=None if outcome.ok else outcome.detail,
        )
        info = result.steps[step]
        self.context.metrics.record(
            "pipeline.step.duration_ms", info.duration_ms or 0, {"step": step}
        )
        self.logger.info(
            "pipeline.step.completed",
            step=step,
            status=status.value,
            duration_ms=info.duration_ms,
            detail=outcome.detail,
        )
        await self.events.publish_step_completed(
            result.run_id, step, status.value, info.duration_ms or 0
        )

    async def _warn(self, result: PipelineResult, message: str) -> None:
        result.warnings.append(message)
        self.context.metrics.increment("pipeline.warnings")
        self.logger.warning("pipeline.warning", message=message)
        await self.events.publish_warning(result.run_id, message)

    async def run(
        self,
        stage: DeploymentStage,
        options: DeployOptions | None = None,
        result: PipelineResult | None = None,
    ) -> PipelineResult:
        """Deploy ``stage``.

        Args:
            stage: The stage to deploy
            options: Per-run options (dry run, maintenance, diff, canary)
            result: A pre-created result to fill in, for callers that
                publish the run id before the run starts

        Returns:
            The finalized result. Failures are reported on the result,
            not raised.
        """
        options = options or DeployOptions()
        result = result or PipelineResult(stage=stage)
        result.dry_run = options.dry_run
        result.canary = options.canary
        self.state = S.IDLE

        self.context.init(run_id=str(result.run_id), stage=stage.value, dry_run=options.dry_run)
        self.logger = self.context.child("pipeline")
        self.logger.info("pipeline.started", executor=self.executor.name)
        if options.canary:
            self.logger.info(
                "pipeline.canary_requested",
                initial=options.canary.initial,
                increment=options.canary.increment,
                interval_seconds=options.canary.interval_seconds,
            )

        lock: DeploymentLock | None = None
        snapshot: MaintenanceSnapshot | None = None

        try:
            await self._transition(result, S.PRE_CHECKS)
            await self._run_pre_checks(stage, options, result)

            if not options.dry_run:
                lock = await self.locks.acquire_lock(
                    stage, reason="deployment", holder_id=str(result.run_id)
                )
                result.details.lock_acquired = True
                await self._transition(result, S.LOCK_ACQUIRED)

                if options.maintenance:
                    await self._transition(result, S.MAINTENANCE_ON)
                    snapshot = await self._enable_maintenance(stage, result)

            await self._transition(result, S.BUILDING)
            await self._run_build(result)

            await self._transition(result, S.DEPLOYING)
            await self._run_deploy(stage, options, result)

            await self._transition(result, S.HEALTH_VALIDATING)
            await self._run_health_checks(stage, options, result)

            if snapshot is not None:
                await self._transition(result, S.MAINTENANCE_OFF)
                await self._disable_maintenance(snapshot, result)
                snapshot = None

            await self._run_hook(HookType.POST_DEPLOY, stage, options, result, fatal=False)

            await self.locks.release_lock(lock)
            lock = None

            await self._transition(result, S.CACHE_INVALIDATING)
            await self._run_cache_invalidation(stage, options, result)

            if not options.skip_audit:
                await self._transition(result, S.AUDITING)
                await self._run_audit(result)

            await self._transition(result, S.SUCCEEDED)
            result.finalize(success=True)
            self.logger.info(
                "pipeline.succeeded",
                duration_seconds=result.duration_seconds,
                distribution_id=result.distribution_id,
                warnings=len(result.warnings),
            )

        except DeployKitError as e:
            await self._handle_failure(stage, options, result, e, lock, snapshot)

        except Exception as e:
            self.logger.exception("pipeline.unexpected_error")
            await self._handle_failure(stage, options, result, e, lock, snapshot)

        finally:
            self.context.metrics.gauge("pipeline.duration_seconds", result.duration_seconds or 0)
            self.context.metrics.increment(
                "pipeline.runs", tags={"outcome": "success" if result.success else "failure"}
            )
            self.context.flush()
            await self.events.publish_run_finished(result.run_id, result.success, result.url)

        return result

    async def _run_pre_checks(
        self, stage: DeploymentStage, options: DeployOptions, result: PipelineResult
    ) -> None:
        await self._start_step(result, "pre_checks")
        checks = await self.preflight.run(stage, dry_run=options.dry_run)

        for check in checks:
            if check.warning:
                await self._warn(result, check.warning)
            if not check.outcome.ok:
                await self._finish_step(result, "pre_checks", check.outcome)
                raise PreflightError(check.name, check.outcome.detail or "check failed")

        await self._run_hook(HookType.PRE_DEPLOY, stage, options, result, fatal=True)

        if options.show_diff:
            await self._show_diff(stage, result)

        result.details.pre_checks_ok = True
        passed = sum(1 for c in checks if c.outcome.applicable)
        await self._finish_step(
            result, "pre_checks", StepOutcome.passed(f"{passed} of {len(checks)} checks applicable")
        )

    async def _show_diff(self, stage: DeploymentStage, result: PipelineResult) -> None:
        if self.certificates is None:
            await self._warn(result, "diff unavailable: no certificate client configured")
            return

        collector = DiffCollector(
            self.config,
            stage,
            self.cloudfront.distributions,
            self.cloudfront.dns,
            self.certificates,
            context=self.context,
        )
        diff = await collector.collect()
        self.logger.info("pipeline.diff", has_changes=diff.has_changes, preview=format_diff(diff))

    async def _run_hook(
        self,
        hook: HookType,
        stage: DeploymentStage,
        options: DeployOptions,
        result: PipelineResult,
        fatal: bool,
    ) -> None:
        step = hook.config_key + "_hook"
        await self._start_step(result, step)
        outcome = await self.hooks.run(hook, stage, options.dry_run, result.start_time)
        await self._finish_step(result, step, outcome)

        if not outcome.ok:
            if fatal:
                raise PreflightError(hook.value, outcome.detail or "hook failed")
            await self._warn(result, outcome.detail or f"{hook.value} hook failed")

    def _placeholder_url(self) -> str | None:
        bucket = self.config.maintenance.bucket or settings.maintenance_bucket
        if not bucket:
            return None
        region = self.config.maintenance.region or settings.maintenance_region
        return placeholder_url(bucket, region, self.config.maintenance.page_path)

    async def _enable_maintenance(
        self, stage: DeploymentStage, result: PipelineResult
    ) -> MaintenanceSnapshot | None:
        await self._start_step(result, "maintenance_on")
        url = self._placeholder_url()
        dist_id = await self.cloudfront.resolve_distribution_id(stage, strict=True)

        if self.maintenance is None or url is None or dist_id is None:
            reason = (
                "no maintenance toggler" if self.maintenance is None
                else "no maintenance bucket configured" if url is None
                else "distribution not found"
            )
            await self._finish_step(result, "maintenance_on", StepOutcome.skipped(reason))
            await self._warn(result, f"maintenance mode not enabled: {reason}")
            return None

        snapshot = await self.maintenance.enable(dist_id, url)
        result.details.maintenance_enabled = True
        await self._finish_step(
            result, "maintenance_on", StepOutcome.passed(f"{dist_id} serving {url}")
        )
        return snapshot

    async def _disable_maintenance(
        self, snapshot: MaintenanceSnapshot, result: PipelineResult
    ) -> None:
        await self._start_step(result, "maintenance_off")
        await self.maintenance.disable(snapshot)
        result.details.maintenance_restored = True
        await self._finish_step(
            result, "maintenance_off", StepOutcome.passed("original origin restored")
        )

    async def _run_build(self, result: PipelineResult) -> None:
        await self._start_step(result, "build")
        with self.context.metrics.timer("pipeline.build.duration_ms"):
            outcome = await self.executor.run_build()
        await self._finish_step(result, "build", outcome)

        if not outcome.ok:
            raise DeployDelegateError(f"build failed: {outcome.detail}")
        result.details.build_ok = True

    async def _run_deploy(
        self, stage: DeploymentStage, options: DeployOptions, result: PipelineResult
    ) -> None:
        await self._start_step(result, "deploy")
        with self.context.metrics.timer("pipeline.deploy.duration_ms"):
            output = await self.executor.execute_deploy(stage, dry_run=options.dry_run)

        if not output.success:
            await self._finish_step(
                result, "deploy", StepOutcome.failed(output.error or "deploy tool failed")
            )
            raise DeployDelegateError(output.error or "deploy tool failed", output.output)

        result.url = output.url
        result.distribution_id = await self.cloudfront.resolve_distribution_id(
            stage, output.distribution_id, output.distribution_domain
        )
        result.details.deployment_ok = True
        await self._finish_step(
            result,
            "deploy",
            StepOutcome.passed(
                "dry run" if options.dry_run else f"deployed with {self.executor.name}",
                distribution_id=result.distribution_id,
            ),
        )

    async def _run_health_checks(
        self, stage: DeploymentStage, options: DeployOptions, result: PipelineResult
    ) -> None:
        await self._start_step(result, "health_checks")
        stage_config = self.config.get_stage_config(stage)

        if stage_config.skip_health_checks:
            outcome = StepOutcome.skipped("health checks disabled for stage")
        elif not self.config.health_checks:
            outcome = StepOutcome.skipped("no health checks configured")
        elif options.dry_run:
            outcome = StepOutcome.passed("simulated in dry run")
        else:
            report = await self.health.run_checks(stage)
            if not report.all_passed:
                await self._finish_step(
                    result,
                    "health_checks",
                    StepOutcome.failed(f"failed: {', '.join(report.failed_checks)}"),
                )
                raise HealthValidationError(report.failed_checks)
            outcome = StepOutcome.passed(f"{len(report.results)} checks passed")
            result.details.health_checks_ok = True

        await self._finish_step(result, "health_checks", outcome)

    async def _run_cache_invalidation(
        self, stage: DeploymentStage, options: DeployOptions, result: PipelineResult
    ) -> None:
        await self._start_step(result, "cache_invalidation")
        if options.dry_run:
            outcome = StepOutcome.skipped("dry run")
        else:
            outcome = await self.cloudfront.invalidate_cache(stage, result.distribution_id)

        await self._finish_step(result, "cache_invalidation", outcome)
        if outcome.ok:
            result.details.cache_invalidated_ok = outcome.applicable
        else:
            await self._warn(result, outcome.detail or "cache invalidation failed")

    async def _run_audit(self, result: PipelineResult) -> None:
        """Read-only audit. Findings become warnings and never fail the run."""
        await self._start_step(result, "audit")
        try:
            report = await self.cloudfront.audit()
        except Exception as e:
            await self._finish_step(result, "audit", StepOutcome.failed(f"audit failed: {e}"))
            await self._warn(result, f"post-deploy audit failed: {e}")
            return

        if report.has_findings or not report.dns_complete:
            for issue in report.issues:
                await self._warn(result, issue)
        result.details.audit_ok = True
        await self._finish_step(
            result,
            "audit",
            StepOutcome.passed(
                f"{report.total_distributions} distributions, "
                f"{len(report.orphaned_distributions)} orphaned"
            ),
        )

    async def _handle_failure(
        self,
        stage: DeploymentStage,
        options: DeployOptions,
        result: PipelineResult,
        error: Exception,
        lock: DeploymentLock | None,
        snapshot: MaintenanceSnapshot | None,
    ) -> None:
        """Enter ``failed`` and undo what this run did.

        Cleanup problems are logged; the original error is what the run
        reports.
        """
        message = error.message if isinstance(error, DeployKitError) else str(error)
        self.logger.error(
            "pipeline.failed",
            state=self.state.value,
            error=message,
            error_type=type(error).__name__,
        )

        failed_from = self.state
        if not self.state.is_terminal:
            self.state = S.FAILED
            result.state = S.FAILED

        if snapshot is not None and self.maintenance is not None:
            try:
                await self.maintenance.disable(snapshot)
                result.details.maintenance_restored = True
            except Exception as cleanup_error:
                self.logger.error("pipeline.maintenance_restore_failed", error=str(cleanup_error))

        try:
            await self.locks.release_lock(lock)
        except Exception as cleanup_error:
            self.logger.error("pipeline.lock_release_failed", error=str(cleanup_error))

        if failed_from not in (S.IDLE, S.PRE_CHECKS):
            try:
                outcome = await self.hooks.run(
                    HookType.ON_FAILURE, stage, options.dry_run, result.start_time
                )
                if not outcome.ok:
                    self.logger.warning("pipeline.on_failure_hook_failed", detail=outcome.detail)
            except Exception as cleanup_error:
                self.logger.error("pipeline.on_failure_hook_failed", error=str(cleanup_error))

        result.error = message
        result.error_type = type(error).__name__
        result.recovery_commands = recovery_commands(stage)
        result.finalize(success=False)
        await self.events.publish_error(result.run_id, message, failed_from.value)
