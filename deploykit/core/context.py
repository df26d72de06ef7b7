"""Per-run logging and metrics context.

A ``RunContext`` is created once per invocation, handed to the pipeline
and its collaborators, and flushed when the invocation ends. Nothing in
the core reaches for a process-wide logger or metrics instance.
"""

import statistics
import time
from contextlib import contextmanager
from typing import Any, Iterator

import structlog

from deploykit.utils.logging import get_logger


class MetricsCollector:
    """In-memory counters, gauges and histograms for one run."""

    def __init__(self, service_name: str = "deploykit", environment: str = "development"):
        self.service_name = service_name
        self.environment = environment
        self.counters: dict[str, float] = {}
        self.gauges: dict[str, float] = {}
        self.histograms: dict[str, list[float]] = {}

    @staticmethod
    def _key(name: str, tags: dict[str, str] | None) -> str:
        if not tags:
            return name
        rendered = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
        return f"{name}{{{rendered}}}"

    def increment(self, name: str, value: float = 1, tags: dict[str, str] | None = None) -> None:
        key = self._key(name, tags)
        self.counters[key] = self.counters.get(key, 0) + value

    def gauge(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        self.gauges[self._key(name, tags)] = value

    def record(self, name: str, value: float, tags: dict[str, str] | None = None) -> None:
        values = self.histograms.setdefault(self._key(name, tags), [])
        values.append(value)
        # Keep the most recent 1000 samples
        del values[:-1000]

    @contextmanager
    def timer(self, name: str, tags: dict[str, str] | None = None) -> Iterator[None]:
        """Record the duration of the block in milliseconds."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.record(name, (time.perf_counter() - start) * 1000, tags)

    def snapshot(self) -> dict[str, Any]:
        """Summarize everything collected so far."""
        histograms = {
            key: {
                "count": len(values),
                "min": round(min(values), 2),
                "max": round(max(values), 2),
                "mean": round(statistics.fmean(values), 2),
            }
            for key, values in self.histograms.items()
            if values
        }
        return {
            "service": self.service_name,
            "environment": self.environment,
            "counters": dict(self.counters),
            "gauges": dict(self.gauges),
            "histograms": histograms,
        }

    def reset(self) -> None:
        self.counters.clear()
        self.gauges.clear()
        self.histograms.clear()


class RunContext:
    """Logger and metrics shared by one pipeline invocation."""

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger | None = None,
        metrics: MetricsCollector | None = None,
        environment: str = "development",
    ):
        self.logger = logger or get_logger("deploykit")
        self.metrics = metrics or MetricsCollector(environment=environment)
        self._initialized = False

    def init(self, **context: Any) -> "RunContext":
        """Bind run-wide context onto the logger."""
        if context:
            self.logger = self.logger.bind(**context)
        self._initialized = True
        self.logger.debug("run_context.initialized")
        return self

    def flush(self) -> dict[str, Any]:
        """Emit collected metrics as one log event and clear them."""
        snapshot = self.metrics.snapshot()
        self.logger.info("run_context.metrics", **snapshot)
        self.metrics.reset()
        return snapshot

    def child(self, name: str) -> structlog.stdlib.BoundLogger:
        """Logger for a collaborator, carrying the run's bound context."""
        return self.logger.bind(component=name)
