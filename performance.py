"""
Performance Tracking Module
===========================
Optional execution-time instrumentation.

Tracks:
✅ Duration of wrapped operations (sync and async)
✅ Slow operations against per-operation thresholds
✅ Bounded history (ring buffer)
✅ Averages and summary stats
✅ Prometheus histograms

Nothing in pricing or totals depends on this module; it is applied at the
edges (cart session, HTTP handlers) through `observe`.
"""

import functools
import inspect
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from prometheus_client import Counter, Histogram


logger = logging.getLogger(__name__)


# ============================================================================
# THRESHOLDS (milliseconds)
# ============================================================================

PERFORMANCE_THRESHOLDS: Dict[str, float] = {
    "api_request": 1000,
    "database_query": 500,
    "calculation": 100,
    "render": 50,
    "file_operation": 200,
}

DEFAULT_MAX_METRICS = 1000


# ============================================================================
# PROMETHEUS METRICS
# ============================================================================

operation_duration = Histogram(
    'operation_duration_seconds',
    'Duration of observed operations',
    ['operation'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0]
)

slow_operations_total = Counter(
    'slow_operations_total',
    'Operations exceeding their threshold',
    ['operation']
)


# ============================================================================
# MEASUREMENT
# ============================================================================

@dataclass
class PerformanceMetric:
    """Single timed execution."""
    operation_name: str
    duration_ms: float
    timestamp: str
    threshold_ms: float
    is_slow: bool
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operationName": self.operation_name,
            "duration": self.duration_ms,
            "timestamp": self.timestamp,
            "threshold": self.threshold_ms,
            "isSlowOperation": self.is_slow,
            "context": dict(self.context),
        }


class PerformanceLogger:
    """
    Records timings and flags slow operations.
    """

    def __init__(self, max_metrics: int = DEFAULT_MAX_METRICS, log_fast_operations: bool = False):
        self.max_metrics = max_metrics
        self.log_fast_operations = log_fast_operations
        self._metrics: deque = deque(maxlen=max_metrics)

    def track_sync(
        self,
        operation_name: str,
        fn: Callable[[], Any],
        threshold_ms: float = PERFORMANCE_THRESHOLDS["calculation"],
        context: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Run fn and record how long it took.

        Exceptions are recorded in the metric context and re-raised.
        """
        started_at = _utc_now_iso()
        start = time.perf_counter()

        try:
            result = fn()
        except Exception as e:
            self._record(operation_name, start, started_at, threshold_ms, {**(context or {}), "error": str(e)})
            raise

        self._record(operation_name, start, started_at, threshold_ms, context)
        return result

    async def track_async(
        self,
        operation_name: str,
        fn: Callable[[], Any],
        threshold_ms: float = PERFORMANCE_THRESHOLDS["api_request"],
        context: Optional[Dict[str, Any]] = None
    ) -> Any:
        """Await fn() and record how long it took."""
        started_at = _utc_now_iso()
        start = time.perf_counter()

        try:
            result = await fn()
        except Exception as e:
            self._record(operation_name, start, started_at, threshold_ms, {**(context or {}), "error": str(e)})
            raise

        self._record(operation_name, start, started_at, threshold_ms, context)
        return result

    def _record(
        self,
        operation_name: str,
        start: float,
        started_at: str,
        threshold_ms: float,
        context: Optional[Dict[str, Any]]
    ) -> PerformanceMetric:
        duration_ms = (time.perf_counter() - start) * 1000
        return self.record(operation_name, duration_ms, threshold_ms, context, timestamp=started_at)

    def record(
        self,
        operation_name: str,
        duration_ms: float,
        threshold_ms: float,
        context: Optional[Dict[str, Any]] = None,
        timestamp: Optional[str] = None
    ) -> PerformanceMetric:
        """Store a measurement taken elsewhere."""
        metric = PerformanceMetric(
            operation_name=operation_name,
            duration_ms=round(duration_ms, 2),
            timestamp=timestamp or _utc_now_iso(),
            threshold_ms=threshold_ms,
            is_slow=duration_ms > threshold_ms,
            context=context or {},
        )

        self._metrics.append(metric)

        operation_duration.labels(operation=operation_name).observe(duration_ms / 1000.0)

        if metric.is_slow:
            slow_operations_total.labels(operation=operation_name).inc()
            over = round((duration_ms - threshold_ms) / threshold_ms * 100) if threshold_ms else 0
            logger.warning(
                f"Slow operation: {operation_name} took {metric.duration_ms}ms "
                f"({over}% over {threshold_ms}ms threshold) {metric.context}"
            )
        elif self.log_fast_operations:
            logger.debug(
                f"{operation_name} took {metric.duration_ms}ms "
                f"(under {threshold_ms}ms threshold)"
            )

        return metric

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_metrics(self) -> List[PerformanceMetric]:
        return list(self._metrics)

    def get_slow_operations(self) -> List[PerformanceMetric]:
        return [m for m in self._metrics if m.is_slow]

    def get_metrics_by_operation(self, operation_name: str) -> List[PerformanceMetric]:
        return [m for m in self._metrics if m.operation_name == operation_name]

    def get_average_duration(self, operation_name: str) -> Optional[float]:
        """Mean duration in ms, or None if the operation was never recorded."""
        metrics = self.get_metrics_by_operation(operation_name)
        if not metrics:
            return None
        return round(sum(m.duration_ms for m in metrics) / len(metrics), 2)

    def get_summary(self) -> Dict[str, Any]:
        metrics = list(self._metrics)
        slowest = max(metrics, key=lambda m: m.duration_ms) if metrics else None
        average = round(sum(m.duration_ms for m in metrics) / len(metrics), 2) if metrics else 0

        return {
            "total_operations": len(metrics),
            "slow_operations": sum(1 for m in metrics if m.is_slow),
            "average_duration_ms": average,
            "slowest_operation": slowest.to_dict() if slowest else None,
        }

    def clear(self):
        self._metrics.clear()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# GLOBAL LOGGER
# ============================================================================

_performance_logger: Optional[PerformanceLogger] = None


def get_performance_logger() -> PerformanceLogger:
    """Shared logger, sized from configuration on first use."""
    global _performance_logger

    if _performance_logger is None:
        from config import get_config
        settings = get_config().performance
        _performance_logger = PerformanceLogger(
            max_metrics=settings.max_metrics,
            log_fast_operations=settings.log_fast_operations
        )

    return _performance_logger


def observe(
    name: str,
    threshold_ms: float = PERFORMANCE_THRESHOLDS["calculation"],
    perf_logger: Optional[PerformanceLogger] = None
):
    """
    Decorator that times a function (sync or async).

    Example:
        @observe("create_order", PERFORMANCE_THRESHOLDS["api_request"])
        def create_order(...): ...
    """
    def decorator(fn):
        if inspect.iscoroutinefunction(fn):
            @functools.wraps(fn)
            async def async_wrapper(*args, **kwargs):
                tracker = perf_logger or get_performance_logger()
                return await tracker.track_async(name, lambda: fn(*args, **kwargs), threshold_ms)
            return async_wrapper

        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            tracker = perf_logger or get_performance_logger()
            return tracker.track_sync(name, lambda: fn(*args, **kwargs), threshold_ms)
        return wrapper

    return decorator
