"""Unit tests for deployment locks."""

import asyncio
import threading
from datetime import timedelta
from pathlib import Path

import pytest

from deploykit.adapters.base import deny_all
from deploykit.core.exceptions import LockHeldError
from deploykit.core.locks import LockManager, LockStore
from deploykit.models.config import DeploymentStage
from deploykit.models.lock import DeploymentLock, utcnow
from tests.fakes import FakeExternalLock

STAGING = DeploymentStage.STAGING


class TestLockStore:
    """Tests for the file-backed lock store."""

    def test_create_is_exclusive(self, tmp_path: Path):
        """Test a second create for the same stage is refused."""
        store = LockStore(tmp_path)
        first = DeploymentLock.new(STAGING, ttl_minutes=120)
        second = DeploymentLock.new(STAGING, ttl_minutes=120)

        assert store.create(first) is True
        assert store.create(second) is False
        assert store.read(STAGING).holder_id == first.holder_id

    def test_lock_file_location(self, tmp_path: Path):
        """Test lock files live at the project root, one per stage."""
        store = LockStore(tmp_path)
        store.create(DeploymentLock.new(STAGING, ttl_minutes=1))

        assert (tmp_path / ".deployment-lock-staging").exists()
        assert not (tmp_path / ".deployment-lock-production").exists()

    def test_read_corrupt_file(self, tmp_path: Path):
        """Test an unreadable lock file reads as no lock."""
        store = LockStore(tmp_path)
        store.path_for(STAGING).write_text("{not json")

        assert store.read(STAGING) is None
        assert store.exists(STAGING)

    def test_delete_missing(self, tmp_path: Path):
        """Test deleting a missing lock reports nothing removed."""
        assert LockStore(tmp_path).delete(STAGING) is False

    def test_concurrent_create_single_winner(self, tmp_path: Path):
        """Test racing threads produce exactly one winner."""
        store = LockStore(tmp_path)
        barrier = threading.Barrier(8)
        wins: list[bool] = []
        guard = threading.Lock()

        def contend():
            lock = DeploymentLock.new(STAGING, ttl_minutes=120)
            barrier.wait()
            won = store.create(lock)
            with guard:
                wins.append(won)

        threads = [threading.Thread(target=contend) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert wins.count(True) == 1
        assert wins.count(False) == 7


class TestLockManager:
    """Tests for lock acquisition and release."""

    @pytest.fixture
    def manager(self, tmp_path: Path) -> LockManager:
        return LockManager(store=LockStore(tmp_path), ttl_minutes=120)

    @pytest.mark.asyncio
    async def test_acquire_release_acquire(self, manager: LockManager):
        """Test acquire, contended acquire, release, then acquire again."""
        lock = await manager.acquire_lock(STAGING)

        with pytest.raises(LockHeldError) as exc_info:
            await manager.acquire_lock(STAGING)
        assert exc_info.value.stage == "staging"
        assert "deploykit recover staging" in exc_info.value.message

        await manager.release_lock(lock)
        again = await manager.acquire_lock(STAGING)
        assert again.holder_id != lock.holder_id

    @pytest.mark.asyncio
    async def test_stages_are_independent(self, manager: LockManager):
        """Test locking one stage does not block another."""
        await manager.acquire_lock(STAGING)
        production = await manager.acquire_lock(DeploymentStage.PRODUCTION)

        assert production.stage == DeploymentStage.PRODUCTION

    @pytest.mark.asyncio
    async def test_lock_fields(self, manager: LockManager):
        """Test expiry is acquisition time plus the TTL."""
        lock = await manager.acquire_lock(STAGING, reason="hotfix", holder_id="run-1")

        assert lock.expires_at - lock.acquired_at == timedelta(minutes=120)
        assert lock.reason == "hotfix"
        stored = await manager.get_file_lock(STAGING)
        assert stored == lock

    @pytest.mark.asyncio
    async def test_stale_lock_still_blocks(self, manager: LockManager, tmp_path: Path):
        """Test an expired lock blocks acquisition until recovery removes it."""
        past = utcnow() - timedelta(hours=5)
        stale = DeploymentLock(
            stage=STAGING,
            acquired_at=past,
            expires_at=past + timedelta(minutes=120),
            holder_id="crashed-run",
        )
        manager.store.create(stale)
        assert manager.is_stale(stale)

        with pytest.raises(LockHeldError) as exc_info:
            await manager.acquire_lock(STAGING)
        assert exc_info.value.details["holder_id"] == "crashed-run"

        assert await manager.force_release(STAGING) is True
        await manager.acquire_lock(STAGING)

    @pytest.mark.asyncio
    async def test_release_is_idempotent(self, manager: LockManager):
        """Test releasing twice, or releasing nothing, is not an error."""
        lock = await manager.acquire_lock(STAGING)

        await manager.release_lock(lock)
        await manager.release_lock(lock)
        await manager.release_lock(None)

        assert await manager.get_file_lock(STAGING) is None

    @pytest.mark.asyncio
    async def test_release_leaves_foreign_lock(self, manager: LockManager):
        """Test a lock now held by someone else survives our release."""
        ours = await manager.acquire_lock(STAGING, holder_id="ours")
        await manager.force_release(STAGING)
        theirs = await manager.acquire_lock(STAGING, holder_id="theirs")

        await manager.release_lock(ours)

        current = await manager.get_file_lock(STAGING)
        assert current is not None
        assert current.holder_id == theirs.holder_id

    @pytest.mark.asyncio
    async def test_concurrent_acquire_in_event_loop(self, manager: LockManager):
        """Test concurrent acquisitions on one loop yield a single lock."""
        results = await asyncio.gather(
            *(manager.acquire_lock(STAGING) for _ in range(5)),
            return_exceptions=True,
        )

        locks = [r for r in results if isinstance(r, DeploymentLock)]
        errors = [r for r in results if isinstance(r, LockHeldError)]
        assert len(locks) == 1
        assert len(errors) == 4


class TestExternalStateLock:
    """Tests for observing and clearing the infrastructure tool's lock."""

    @pytest.mark.asyncio
    async def test_no_adapter_means_unlocked(self, tmp_path: Path):
        manager = LockManager(store=LockStore(tmp_path))

        assert await manager.is_pulumi_locked(STAGING) is False
        assert await manager.clear_pulumi_lock(STAGING) is False

    @pytest.mark.asyncio
    async def test_clear_requires_confirmation(self, tmp_path: Path):
        """Test a declined confirmation leaves the external lock alone."""
        external = FakeExternalLock(locked=True)
        manager = LockManager(store=LockStore(tmp_path), external_lock=external)

        assert await manager.check_and_clean_pulumi_lock(STAGING, deny_all) is False
        assert external.locked is True
        assert external.unlock_calls == 0

    @pytest.mark.asyncio
    async def test_clear_after_confirmation(self, tmp_path: Path):
        external = FakeExternalLock(locked=True)
        manager = LockManager(store=LockStore(tmp_path), external_lock=external)
        prompts: list[str] = []

        def confirm(message: str) -> bool:
            prompts.append(message)
            return True

        assert await manager.check_and_clean_pulumi_lock(STAGING, confirm) is True
        assert external.locked is False
        assert "staging" in prompts[0]

    @pytest.mark.asyncio
    async def test_unlocked_skips_prompt(self, tmp_path: Path):
        """Test nothing is asked when the external lock is not held."""
        manager = LockManager(store=LockStore(tmp_path), external_lock=FakeExternalLock())

        def confirm(message: str) -> bool:
            raise AssertionError("should not prompt")

        assert await manager.check_and_clean_pulumi_lock(STAGING, confirm) is False
