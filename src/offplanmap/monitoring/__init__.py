"""Performance monitoring for the property cache."""

from .monitor import (
    MemoryUsage,
    PerformanceMetrics,
    PerformanceMonitor,
    PerformanceReport,
    tracemalloc_probe,
)

__all__ = [
    "MemoryUsage",
    "PerformanceMetrics",
    "PerformanceMonitor",
    "PerformanceReport",
    "tracemalloc_probe",
]
