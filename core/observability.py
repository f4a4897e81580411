"""In-process counters and timers for store operations and HTTP requests."""

from typing import Dict, Any, Optional, Tuple
from contextlib import contextmanager
from collections import defaultdict
import threading
import time
from dataclasses import dataclass, field

from loguru import logger


@dataclass
class TimerStats:
    """Aggregated durations for one metric key."""
    count: int = 0
    total_seconds: float = 0.0
    max_seconds: float = 0.0

    def observe(self, seconds: float) -> None:
        self.count += 1
        self.total_seconds += seconds
        self.max_seconds = max(self.max_seconds, seconds)

    def to_dict(self) -> Dict[str, float]:
        avg = self.total_seconds / self.count if self.count else 0.0
        return {
            "count": self.count,
            "avg_seconds": round(avg, 6),
            "max_seconds": round(self.max_seconds, 6),
        }


@dataclass
class ObservabilityManager:
    """Thread-safe metric registry."""
    counters: Dict[Tuple[str, Tuple], int] = field(default_factory=lambda: defaultdict(int))
    timers: Dict[Tuple[str, Tuple], TimerStats] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)

    @staticmethod
    def _key(name: str, labels: Optional[Dict[str, Any]]) -> Tuple[str, Tuple]:
        return name, tuple(sorted((labels or {}).items()))

    def increment(self, name: str, labels: Optional[Dict[str, Any]] = None, value: int = 1) -> None:
        """Increment a labelled counter."""
        with self.lock:
            self.counters[self._key(name, labels)] += value

    def observe(self, name: str, seconds: float, labels: Optional[Dict[str, Any]] = None) -> None:
        """Record a duration."""
        key = self._key(name, labels)
        with self.lock:
            if key not in self.timers:
                self.timers[key] = TimerStats()
            self.timers[key].observe(seconds)

    def get_counter(self, name: str, labels: Optional[Dict[str, Any]] = None) -> int:
        with self.lock:
            return self.counters.get(self._key(name, labels), 0)

    def snapshot(self) -> Dict[str, Any]:
        """Return all metrics grouped by name."""
        result: Dict[str, Any] = {"counters": {}, "timers": {}}
        with self.lock:
            for (name, labels), value in self.counters.items():
                result["counters"].setdefault(name, []).append(
                    {"labels": dict(labels), "value": value}
                )
            for (name, labels), stats in self.timers.items():
                result["timers"].setdefault(name, []).append(
                    {"labels": dict(labels), **stats.to_dict()}
                )
        return result

    def clear(self) -> None:
        with self.lock:
            self.counters.clear()
            self.timers.clear()


# Global observability manager
observability = ObservabilityManager()


@contextmanager
def track_operation(operation: str, error_types: Tuple[type, ...] = (Exception,)):
    """
    Time a store operation and count it as success or error.

    Only exceptions matching ``error_types`` count as errors; anything else
    (a rule check aborting the operation) propagates without being counted.
    The operation tag is what error logs and the /metrics payload refer to.
    """
    start = time.perf_counter()
    try:
        yield
    except error_types:
        duration = time.perf_counter() - start
        observability.increment("db_operations_total", {"operation": operation, "status": "error"})
        observability.observe("db_operation_duration", duration, {"operation": operation})
        logger.debug(f"[{operation}] failed after {duration * 1000:.1f}ms")
        raise
    except Exception:
        logger.debug(f"[{operation}] aborted before commit")
        raise
    duration = time.perf_counter() - start
    observability.increment("db_operations_total", {"operation": operation, "status": "success"})
    observability.observe("db_operation_duration", duration, {"operation": operation})
    logger.debug(f"[{operation}] completed in {duration * 1000:.1f}ms")


def record_http_request(method: str, route: str, status_code: int, seconds: float) -> None:
    """Count an HTTP request and record its duration."""
    labels = {"method": method, "route": route, "status_code": status_code}
    observability.increment("http_requests_total", labels)
    observability.observe("http_request_duration", seconds, labels)
