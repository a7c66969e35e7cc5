"""Metric sinks for cache refresh telemetry."""

from alertcache.metrics.counters import (
    CounterSample,
    CounterSink,
    InMemoryCounterSink,
    LogCounterSink,
)

__all__ = [
    "CounterSample",
    "CounterSink",
    "InMemoryCounterSink",
    "LogCounterSink",
]
