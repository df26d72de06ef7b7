"""Unit tests for the per-run context."""

import pytest

from deploykit.core.context import MetricsCollector, RunContext


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counters_and_tags(self):
        metrics = MetricsCollector()
        metrics.increment("deployments")
        metrics.increment("deployments", tags={"stage": "staging", "result": "ok"})
        metrics.increment("deployments", tags={"result": "ok", "stage": "staging"})

        assert metrics.counters == {
            "deployments": 1,
            "deployments{result=ok,stage=staging}": 2,
        }

    def test_histogram_summary(self):
        metrics = MetricsCollector(environment="test")
        for value in (10, 20, 30):
            metrics.record("step.duration_ms", value)
        metrics.gauge("distributions", 4)

        snapshot = metrics.snapshot()

        assert snapshot["environment"] == "test"
        assert snapshot["gauges"] == {"distributions": 4}
        assert snapshot["histograms"]["step.duration_ms"] == {
            "count": 3,
            "min": 10,
            "max": 30,
            "mean": 20,
        }

    def test_timer_records_on_error(self):
        metrics = MetricsCollector()

        with pytest.raises(ValueError):
            with metrics.timer("deploy"):
                raise ValueError("boom")

        assert len(metrics.histograms["deploy"]) == 1


class TestRunContext:
    """Tests for RunContext."""

    def test_flush_resets(self):
        context = RunContext().init(run_id="abc", stage="staging")
        context.metrics.increment("deployments")

        first = context.flush()
        second = context.flush()

        assert first["counters"] == {"deployments": 1}
        assert second["counters"] == {}

    def test_separate_runs_do_not_share_metrics(self):
        a = RunContext()
        b = RunContext()
        a.metrics.increment("deployments")

        assert b.metrics.counters == {}
