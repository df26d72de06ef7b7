"""Unit tests for the run store and event bus."""

import json
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from deploykit.core.events import EventBus
from deploykit.core.runs import RunStore
from deploykit.models.config import DeploymentStage
from deploykit.models.pipeline import PipelineResult


class TestRunStore:
    """Tests for RunStore."""

    @pytest.fixture
    def store(self) -> RunStore:
        return RunStore(ttl_hours=1)

    @pytest.mark.asyncio
    async def test_save_and_get(self, store: RunStore):
        run = await store.save(PipelineResult(stage=DeploymentStage.STAGING))

        assert await store.get(run.run_id) is run
        assert await store.get(uuid4()) is None

    @pytest.mark.asyncio
    async def test_list_newest_first(self, store: RunStore):
        now = datetime.now(timezone.utc)
        old = await store.save(
            PipelineResult(stage=DeploymentStage.STAGING, start_time=now - timedelta(minutes=5))
        )
        new = await store.save(PipelineResult(stage=DeploymentStage.STAGING, start_time=now))
        await store.save(PipelineResult(stage=DeploymentStage.PRODUCTION, start_time=now))

        runs, total = await store.list_runs(stage=DeploymentStage.STAGING)

        assert total == 2
        assert runs == [new, old]

    @pytest.mark.asyncio
    async def test_expired_runs_are_forgotten(self, store: RunStore):
        stale = await store.save(
            PipelineResult(
                stage=DeploymentStage.STAGING,
                start_time=datetime.now(timezone.utc) - timedelta(hours=2),
            )
        )
        await store.save(PipelineResult(stage=DeploymentStage.STAGING))

        assert await store.cleanup_expired() == 1
        assert await store.get(stale.run_id) is None
        _, total = await store.list_runs()
        assert total == 1


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_subscriber_receives_events(self):
        bus = EventBus()
        run_id = uuid4()
        queue = bus.subscribe(run_id)

        await bus.publish_state_changed(run_id, "deploying")
        await bus.publish_run_finished(run_id, success=True, url="https://staging.example.com")

        first = queue.get_nowait()
        assert first.event_type == "state_changed"
        assert first.data == {"state": "deploying"}

        payload = queue.get_nowait().payload()
        assert payload["event"] == "run_finished"
        assert json.loads(payload["data"])["url"] == "https://staging.example.com"

    @pytest.mark.asyncio
    async def test_unsubscribed_runs_are_dropped(self):
        bus = EventBus()
        run_id = uuid4()
        queue = bus.subscribe(run_id)
        bus.unsubscribe(run_id)

        await bus.publish_warning(run_id, "ignored")

        assert queue.empty()
