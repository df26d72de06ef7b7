"""Event system for Server-Sent Events (SSE)."""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID


@dataclass
class Event:
    """An SSE event."""

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def payload(self) -> dict[str, str]:
        """Event in the shape ``EventSourceResponse`` expects."""
        return {
            "event": self.event_type,
            "data": json.dumps({**self.data, "timestamp": self.timestamp.isoformat()}),
        }


class EventBus:
    """Per-run event queues for pipeline progress."""

    def __init__(self):
        self._subscribers: dict[UUID, asyncio.Queue[Event]] = {}

    def subscribe(self, run_id: UUID) -> asyncio.Queue[Event]:
        """Subscribe to events for a run."""
        if run_id not in self._subscribers:
            self._subscribers[run_id] = asyncio.Queue()
        return self._subscribers[run_id]

    def unsubscribe(self, run_id: UUID) -> None:
        self._subscribers.pop(run_id, None)

    async def publish(self, run_id: UUID, event: Event) -> None:
        """Publish an event for a run. Runs nobody listens to are dropped."""
        if run_id in self._subscribers:
            await self._subscribers[run_id].put(event)

    async def publish_state_changed(self, run_id: UUID, state: str) -> None:
        await self.publish(run_id, Event(event_type="state_changed", data={"state": state}))

    async def publish_step_completed(
        self, run_id: UUID, step: str, status: str, duration_ms: int
    ) -> None:
        await self.publish(
            run_id,
            Event(
                event_type="step_completed",
                data={"step": step, "status": status, "duration_ms": duration_ms},
            ),
        )

    async def publish_warning(self, run_id: UUID, message: str) -> None:
        await self.publish(run_id, Event(event_type="warning", data={"message": message}))

    async def publish_run_finished(
        self, run_id: UUID, success: bool, url: str | None = None
    ) -> None:
        """Publish the terminal event for a run."""
        await self.publish(
            run_id,
            Event(event_type="run_finished", data={"success": success, "url": url}),
        )

    async def publish_error(
        self, run_id: UUID, error: str, state: str | None = None
    ) -> None:
        await self.publish(
            run_id,
            Event(event_type="error", data={"error": error, "state": state}),
        )


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the event bus singleton."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus
