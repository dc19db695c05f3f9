"""test_perf_monitor.py — PerformanceTracker and the @timed decorator."""

import pytest

from cpq.services.perf_monitor import PerformanceTracker, timed, tracker


class TestPerformanceTracker:

    def test_metrics_snapshot(self):
        perf = PerformanceTracker()
        perf.record_operation("a", 10.0)
        perf.record_operation("a", 20.0)
        perf.record_operation("b", 50.0, failed=True)
        metrics = perf.get_metrics()
        assert metrics["calls_by_operation"] == {"a": 2, "b": 1}
        assert metrics["avg_duration_ms"]["a"] == 15.0
        assert metrics["slowest_operation"] == "b"
        assert metrics["error_count"] == 1
        assert metrics["error_count_by_operation"] == {"b": 1}

    def test_reset(self):
        perf = PerformanceTracker()
        perf.record_operation("a", 1.0)
        perf.reset()
        assert perf.get_metrics()["calls_by_operation"] == {}
        assert perf.get_metrics()["slowest_operation"] is None


class TestTimedDecorator:

    def test_failure_is_counted_and_reraised(self):
        @timed
        def boom():
            raise ValueError("x")

        before = tracker.get_metrics()["error_count_by_operation"].get(boom.__qualname__, 0)
        with pytest.raises(ValueError):
            boom()
        after = tracker.get_metrics()["error_count_by_operation"][boom.__qualname__]
        assert after == before + 1
