"""In-memory records of pipeline runs started through the dashboard."""

from datetime import datetime, timedelta, timezone
from uuid import UUID

from deploykit.models.config import DeploymentStage
from deploykit.models.pipeline import PipelineResult


class RunStore:
    """Keeps pipeline results for a limited time.

    Runs are not durable; a restarted server forgets them. The lock file is
    the only record that matters across processes.
    """

    def __init__(self, ttl_hours: int = 24):
        self._runs: dict[UUID, PipelineResult] = {}
        self._ttl = timedelta(hours=ttl_hours)

    def _expired(self, run: PipelineResult, now: datetime) -> bool:
        return now - run.start_time > self._ttl

    async def save(self, run: PipelineResult) -> PipelineResult:
        self._runs[run.run_id] = run
        return run

    async def get(self, run_id: UUID) -> PipelineResult | None:
        run = self._runs.get(run_id)
        if run and self._expired(run, datetime.now(timezone.utc)):
            del self._runs[run_id]
            return None
        return run

    async def list_runs(
        self,
        stage: DeploymentStage | None = None,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[PipelineResult], int]:
        """List runs, newest first, optionally for one stage."""
        runs = list(self._runs.values())
        if stage:
            runs = [r for r in runs if r.stage == stage]

        runs.sort(key=lambda r: r.start_time, reverse=True)
        total = len(runs)
        return runs[offset : offset + limit], total

    async def cleanup_expired(self) -> int:
        """Remove expired runs. Returns count of removed runs."""
        now = datetime.now(timezone.utc)
        expired = [rid for rid, run in self._runs.items() if self._expired(run, now)]
        for rid in expired:
            del self._runs[rid]
        return len(expired)


# Singleton instance
_run_store: RunStore | None = None


def get_run_store() -> RunStore:
    """Get the run store singleton."""
    global _run_store
    if _run_store is None:
        _run_store = RunStore()
    return _run_store
