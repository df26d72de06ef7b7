"""Recovery from interrupted or failed deployments.

The only code path that removes a lock it does not own, and the only one
that clears the infrastructure tool's state lock.
"""

from datetime import datetime

from deploykit.adapters.base import ConfirmCallback
from deploykit.core.context import RunContext
from deploykit.core.locks import LockManager
from deploykit.models.config import DeploymentStage
from deploykit.models.lock import LockState, StageStatus
from deploykit.utils.logging import get_logger

GUIDANCE = {
    "certificate": [
        "Check certificate status in ACM (us-east-1 for CloudFront)",
        "DNS validation records must exist in the hosted zone",
        "Re-run the deployment once the certificate is ISSUED",
    ],
    "distribution": [
        "Run 'deploykit audit' to find orphaned or misconfigured distributions",
        "Distributions take 15-20 minutes to propagate after changes",
        "Run 'deploykit cleanup' to remove orphans that are safe to delete",
    ],
    "lock": [
        "Run 'deploykit status' to see which stages are locked",
        "Run 'deploykit recover <stage>' to clear a stale lock",
    ],
}

GENERIC_GUIDANCE = [
    "Review the error output above",
    "Fix the underlying issue and retry the deployment",
]


def provide_rollback_guidance(error: str | Exception) -> list[str]:
    """Hints for an error, matched on what it mentions."""
    text = str(error).lower()
    hints: list[str] = []
    if "certificate" in text or "ssl" in text or "acm" in text:
        hints.extend(GUIDANCE["certificate"])
    if "distribution" in text or "cloudfront" in text:
        hints.extend(GUIDANCE["distribution"])
    if "lock" in text or "in progress" in text:
        hints.extend(GUIDANCE["lock"])
    return hints or list(GENERIC_GUIDANCE)


class RecoveryManager:
    """Inspects and clears stage locks."""

    def __init__(self, locks: LockManager, context: RunContext | None = None):
        self.locks = locks
        self.logger = context.child("recovery") if context else get_logger("recovery")

    async def get_status(
        self,
        stage: DeploymentStage,
        check_external: bool = False,
        now: datetime | None = None,
    ) -> StageStatus:
        """Whether ``stage`` is ready, actively locked, or stuck on a stale lock."""
        lock = await self.locks.get_file_lock(stage)
        external = await self.locks.is_pulumi_locked(stage) if check_external else None

        if lock is None:
            message = "Ready to deploy"
            if external:
                message = "Infrastructure state lock held; run 'deploykit recover'"
            return StageStatus(
                stage=stage, state=LockState.READY, external_lock=external, message=message
            )

        if self.locks.is_stale(lock, now):
            return StageStatus(
                stage=stage,
                state=LockState.STALE,
                lock=lock,
                minutes_remaining=0,
                external_lock=external,
                message=f"Stale lock (expired {lock.expires_at.isoformat()}); "
                f"run 'deploykit recover {stage.value}'",
            )

        remaining = lock.minutes_remaining(now)
        return StageStatus(
            stage=stage,
            state=LockState.ACTIVE,
            lock=lock,
            minutes_remaining=remaining,
            external_lock=external,
            message=f"Deployment in progress by {lock.holder_id} ({remaining} min remaining)",
        )

    async def recover(self, stage: DeploymentStage, confirm: ConfirmCallback) -> dict[str, bool]:
        """Clear the file lock and, if confirmed, the external state lock."""
        self.logger.info("recovery.started", stage=stage.value)
        file_lock_cleared = await self.locks.force_release(stage)
        external_cleared = await self.locks.check_and_clean_pulumi_lock(stage, confirm)

        self.logger.info(
            "recovery.completed",
            stage=stage.value,
            file_lock_cleared=file_lock_cleared,
            external_lock_cleared=external_cleared,
        )
        return {"file_lock_cleared": file_lock_cleared, "external_lock_cleared": external_cleared}

    async def perform_full_recovery(
        self,
        stage: DeploymentStage,
        confirm: ConfirmCallback,
        error: str | Exception | None = None,
    ) -> dict[str, object]:
        """Recover the stage and attach guidance for the error that caused it."""
        cleared = await self.recover(stage, confirm)
        status = await self.get_status(stage)
        return {
            **cleared,
            "status": status,
            "guidance": provide_rollback_guidance(error) if error is not None else [],
        }
