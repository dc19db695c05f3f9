"""
Engine timing for the CPQ pricing service.

``@timed`` wraps the engine entry points; every call lands in the shared
``tracker`` which backs the ``/metrics`` endpoint.
"""
import time
import logging
import threading
import functools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("cpq-api.perf")


@dataclass
class _OperationStats:
    calls: int = 0
    errors: int = 0
    total_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return round(self.total_ms / self.calls, 2) if self.calls else 0.0


class PerformanceTracker:
    """Per-operation call counts, average duration and failures (thread-safe)."""

    def __init__(self):
        self._lock = threading.Lock()
        self._stats: Dict[str, _OperationStats] = {}
        self._slowest: Optional[str] = None
        self._slowest_ms: float = 0.0

    def record_operation(self, operation: str, duration_ms: float, failed: bool = False) -> None:
        with self._lock:
            stats = self._stats.setdefault(operation, _OperationStats())
            stats.calls += 1
            stats.total_ms += duration_ms
            stats.errors += int(failed)
            if duration_ms > self._slowest_ms:
                self._slowest, self._slowest_ms = operation, duration_ms

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "calls_by_operation": {op: s.calls for op, s in self._stats.items()},
                "avg_duration_ms": {op: s.avg_ms for op, s in self._stats.items()},
                "slowest_operation": self._slowest,
                "slowest_operation_ms": round(self._slowest_ms, 2),
                "error_count": sum(s.errors for s in self._stats.values()),
                "error_count_by_operation": {op: s.errors for op, s in self._stats.items() if s.errors},
            }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
            self._slowest, self._slowest_ms = None, 0.0


tracker = PerformanceTracker()


def timed(func: Callable) -> Callable:
    """Record the wall time of ``func`` under its qualified name; failures count as errors."""
    operation = func.__qualname__

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        failed = True
        try:
            result = func(*args, **kwargs)
            failed = False
            return result
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            tracker.record_operation(operation, duration_ms, failed=failed)
            logger.debug(f"{operation} took {duration_ms} ms", extra={"operation": operation, "duration_ms": duration_ms})
    return wrapper
