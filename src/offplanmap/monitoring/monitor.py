"""Performance monitoring for the property cache pipeline.

Samples heap usage, loaded record count, render time and API call volume,
flags threshold breaches, and trims the store when anything is over budget.
Monitoring never raises: a runtime without heap instrumentation simply
reports the metric as unavailable.
"""

import gc
import logging
import time
import tracemalloc
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Optional

from ..config import Settings
from ..storage.store import PropertyStore

logger = logging.getLogger(__name__)

MB = 1024 * 1024


@dataclass(frozen=True)
class MemoryUsage:
    """Heap figures in megabytes."""

    used_mb: float
    total_mb: float
    limit_mb: float

    @property
    def percent(self) -> float:
        if self.limit_mb <= 0:
            return 0.0
        return self.used_mb / self.limit_mb * 100


@dataclass(frozen=True)
class PerformanceMetrics:
    timestamp: float
    memory_usage: Optional[MemoryUsage]
    properties_loaded: int
    render_time: float
    api_call_count: int

    def as_dict(self) -> dict[str, Any]:
        memory = self.memory_usage
        return {
            "timestamp": self.timestamp,
            "memory_used_mb": memory.used_mb if memory else None,
            "memory_limit_mb": memory.limit_mb if memory else None,
            "memory_percent": round(memory.percent, 1) if memory else None,
            "properties_loaded": self.properties_loaded,
            "render_time": round(self.render_time, 3),
            "api_call_count": self.api_call_count,
        }


@dataclass(frozen=True)
class PerformanceReport:
    metrics: PerformanceMetrics
    issues: list[str] = field(default_factory=list)

    @property
    def has_issues(self) -> bool:
        return bool(self.issues)


HeapProbe = Callable[[], Optional[MemoryUsage]]


def tracemalloc_probe(limit_mb: float) -> HeapProbe:
    """Heap probe backed by tracemalloc; unavailable unless tracing is on."""

    def probe() -> Optional[MemoryUsage]:
        if not tracemalloc.is_tracing():
            return None
        current, peak = tracemalloc.get_traced_memory()
        return MemoryUsage(
            used_mb=round(current / MB, 1),
            total_mb=round(peak / MB, 1),
            limit_mb=limit_mb,
        )

    return probe


class PerformanceMonitor:
    """Watch the cache pipeline and trim the store when it is over budget.

    Example:
        monitor = PerformanceMonitor(store)
        client = BackendClient(on_request=monitor.track_api_call)
        ...
        report = monitor.check_performance_issues()
        if report.has_issues:
            monitor.auto_optimize()
    """

    def __init__(
        self,
        store: PropertyStore,
        settings: Optional[Settings] = None,
        heap_probe: Optional[HeapProbe] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the monitor.

        Args:
            store: Store to read record counts from and to optimize
            settings: Threshold settings
            heap_probe: Returns current heap usage, or None when unavailable
            clock: Returns the current time in epoch seconds
        """
        self.store = store
        self.settings = settings or Settings()
        self.heap_probe = heap_probe or tracemalloc_probe(self.settings.heap_limit_mb)
        self._clock = clock
        self._api_calls = 0
        self._render_time = 0.0
        self._previous_heap_mb = 0.0
        self.optimizations = 0

    @property
    def api_call_count(self) -> int:
        return self._api_calls

    def track_api_call(self, url: Optional[str] = None) -> None:
        self._api_calls += 1

    def record_render(self, seconds: float) -> None:
        """Add a render pass to the current sampling window."""
        self._render_time += seconds

    def get_memory_usage(self) -> Optional[MemoryUsage]:
        try:
            return self.heap_probe()
        except Exception as e:
            logger.debug(f"Heap probe unavailable: {e}")
            return None

    def get_metrics(self) -> PerformanceMetrics:
        return PerformanceMetrics(
            timestamp=self._clock(),
            memory_usage=self.get_memory_usage(),
            properties_loaded=self.store.state.total_loaded,
            render_time=self._render_time,
            api_call_count=self._api_calls,
        )

    def check_performance_issues(self) -> PerformanceReport:
        """Evaluate the fixed thresholds against a fresh sample.

        Returns:
            PerformanceReport listing every violated condition
        """
        s = self.settings
        metrics = self.get_metrics()
        issues: list[str] = []

        memory = metrics.memory_usage
        if memory is not None:
            if memory.percent > s.heap_percent_threshold:
                issues.append(f"High memory usage: {memory.percent:.1f}%")
            if memory.used_mb > s.heap_mb_threshold:
                issues.append(
                    f"Memory usage exceeds {s.heap_mb_threshold:.0f}MB: {memory.used_mb}MB"
                )

        if metrics.properties_loaded > s.records_threshold:
            issues.append(f"Large number of properties loaded: {metrics.properties_loaded}")

        if metrics.render_time > s.render_time_threshold:
            issues.append(f"Slow render time: {metrics.render_time * 1000:.0f}ms")

        if metrics.api_call_count > s.api_calls_threshold:
            issues.append(f"High API call count: {metrics.api_call_count}")

        return PerformanceReport(metrics=metrics, issues=issues)

    def auto_optimize(self) -> bool:
        """Optimize the store if any threshold is violated.

        Only trims the oldest records beyond the cache cap and resets the
        API call counter.

        Returns:
            True if an optimization pass ran
        """
        try:
            report = self.check_performance_issues()
        except Exception:
            logger.exception("Performance check failed")
            return False

        if not report.has_issues:
            return False

        logger.warning(f"Performance issues detected: {report.issues}")
        self.store.optimize()
        self._api_calls = 0
        gc.collect()
        self.optimizations += 1
        return True

    def run_check(self) -> bool:
        """Periodic entry point: stamp the store, optimize, start a new window."""
        self.store.mark_performance_check()
        optimized = self.auto_optimize()
        self._render_time = 0.0
        return optimized

    def check_memory_leak(self) -> bool:
        """Warn when the heap grew by more than the leak threshold since the last call."""
        usage = self.get_memory_usage()
        if usage is None:
            return False

        increase = usage.used_mb - self._previous_heap_mb
        suspected = self._previous_heap_mb > 0 and increase > self.settings.leak_increase_mb
        if suspected:
            logger.warning(
                f"Potential memory leak detected: {self._previous_heap_mb}MB -> "
                f"{usage.used_mb}MB (+{increase:.1f}MB)"
            )
        self._previous_heap_mb = usage.used_mb
        return suspected
