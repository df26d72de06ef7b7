"""Deployment locks.

``LockStore`` persists one lock file per stage under the project root and
relies on ``O_CREAT | O_EXCL`` for the create-if-absent step, so two racing
acquirers (processes or threads) can never both win.

``LockManager`` is the policy layer on top: acquisition never looks at
expiry, a stale lock blocks until Recovery removes it.
"""

import os
from datetime import datetime
from pathlib import Path

from pydantic import ValidationError

from deploykit.adapters.base import ConfirmCallback, ExternalStateLock
from deploykit.config import settings
from deploykit.core.context import RunContext
from deploykit.core.exceptions import LockHeldError
from deploykit.models.config import DeploymentStage
from deploykit.models.lock import DeploymentLock
from deploykit.utils.logging import get_logger

LOCK_FILE_PREFIX = ".deployment-lock-"


class LockStore:
    """File-backed lock records, one file per stage."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.logger = get_logger("lock_store")

    def path_for(self, stage: DeploymentStage) -> Path:
        return self.root / f"{LOCK_FILE_PREFIX}{stage.value}"

    def create(self, lock: DeploymentLock) -> bool:
        """Write ``lock`` only if no lock file exists. Returns False if one does."""
        path = self.path_for(lock.stage)
        try:
            fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False

        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(lock.model_dump_json(indent=2))
        return True

    def read(self, stage: DeploymentStage) -> DeploymentLock | None:
        """Current lock for ``stage``, or None if absent or unreadable."""
        path = self.path_for(stage)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

        try:
            return DeploymentLock.model_validate_json(raw)
        except ValidationError:
            self.logger.warning("lock_store.unreadable", path=str(path))
            return None

    def exists(self, stage: DeploymentStage) -> bool:
        return self.path_for(stage).exists()

    def delete(self, stage: DeploymentStage) -> bool:
        """Remove the lock file. Returns whether one was removed."""
        try:
            self.path_for(stage).unlink()
            return True
        except FileNotFoundError:
            return False


class LockManager:
    """Acquires, releases and inspects deployment locks."""

    def __init__(
        self,
        store: LockStore | None = None,
        external_lock: ExternalStateLock | None = None,
        ttl_minutes: int | None = None,
        context: RunContext | None = None,
    ):
        self.store = store or LockStore(settings.project_path)
        self.external_lock = external_lock
        self.ttl_minutes = ttl_minutes or settings.lock_ttl_minutes
        self.logger = context.child("locks") if context else get_logger("locks")

    async def acquire_lock(
        self,
        stage: DeploymentStage,
        reason: str = "deployment",
        holder_id: str | None = None,
    ) -> DeploymentLock:
        """Claim ``stage`` exclusively.

        Raises:
            LockHeldError: If any lock file exists for the stage, expired or not
        """
        lock = DeploymentLock.new(stage, self.ttl_minutes, holder_id=holder_id, reason=reason)

        if not self.store.create(lock):
            existing = self.store.read(stage)
            self.logger.warning(
                "lock.contention",
                stage=stage.value,
                holder_id=existing.holder_id if existing else None,
                stale=existing.is_expired() if existing else None,
            )
            raise LockHeldError(
                stage.value,
                holder_id=existing.holder_id if existing else None,
                expires_at=existing.expires_at if existing else None,
            )

        self.logger.info(
            "lock.acquired",
            stage=stage.value,
            holder_id=lock.holder_id,
            expires_at=lock.expires_at.isoformat(),
        )
        return lock

    async def release_lock(self, lock: DeploymentLock | None) -> None:
        """Release ``lock``. Missing or already-released locks are fine.

        A lock file that now belongs to another holder is left alone.
        """
        if lock is None:
            return

        current = self.store.read(lock.stage)
        if current is not None and current.holder_id != lock.holder_id:
            self.logger.warning(
                "lock.release_skipped",
                stage=lock.stage.value,
                reason="held by another holder",
                holder_id=current.holder_id,
            )
            return

        removed = self.store.delete(lock.stage)
        self.logger.info("lock.released", stage=lock.stage.value, removed=removed)

    async def force_release(self, stage: DeploymentStage) -> bool:
        """Remove whatever lock exists for ``stage``. Recovery only."""
        removed = self.store.delete(stage)
        if removed:
            self.logger.info("lock.force_released", stage=stage.value)
        return removed

    async def get_file_lock(self, stage: DeploymentStage) -> DeploymentLock | None:
        return self.store.read(stage)

    @staticmethod
    def is_stale(lock: DeploymentLock, now: datetime | None = None) -> bool:
        return lock.is_expired(now)

    async def is_pulumi_locked(self, stage: DeploymentStage) -> bool:
        """Whether the infrastructure tool's own state lock is held."""
        if self.external_lock is None:
            return False
        return await self.external_lock.is_locked(stage)

    async def clear_pulumi_lock(self, stage: DeploymentStage) -> bool:
        if self.external_lock is None:
            return False
        cleared = await self.external_lock.unlock(stage)
        if cleared:
            self.logger.info("lock.external_cleared", stage=stage.value)
        else:
            self.logger.info("lock.external_clear_failed", stage=stage.value)
        return cleared

    async def check_and_clean_pulumi_lock(
        self, stage: DeploymentStage, confirm: ConfirmCallback
    ) -> bool:
        """Clear the external lock if present and the operator confirms.

        Returns True only if a lock was found and cleared.
        """
        if not await self.is_pulumi_locked(stage):
            return False

        self.logger.warning("lock.external_detected", stage=stage.value)
        if not confirm(
            f"The infrastructure state for {stage.value} is locked. "
            "Clear it? Only do this if no other deployment is running."
        ):
            self.logger.info("lock.external_kept", stage=stage.value)
            return False

        return await self.clear_pulumi_lock(stage)
