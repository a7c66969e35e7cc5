"""Counter sinks — where refresh throughput and latency metrics go.

The refresher calls ``update_counter`` once per counter after each
reconciliation pass. Counts are added to a running total; latency
counters carry the pass average in milliseconds.
"""

from __future__ import annotations

import abc
import time
from collections import defaultdict, deque
from dataclasses import dataclass

import structlog

from alertcache.core.types import Counter

logger = structlog.stdlib.get_logger()


class CounterSink(abc.ABC):
    """Destination for refresh metrics. Errors propagate to the caller."""

    @abc.abstractmethod
    def update_counter(self, counter: Counter, value: float) -> None:
        """Record ``value`` against ``counter``."""


@dataclass
class CounterSample:
    """One value reported for a counter."""

    counter: Counter
    value: float
    timestamp: float


class InMemoryCounterSink(CounterSink):
    """Keeps every reported value in memory.

    Usage::

        sink = InMemoryCounterSink()
        refresher = DefinitionsRefresher(index, source, sink)
        ...
        sink.total(Counter.ALERTS_CREATED_COUNT)
        sink.last(Counter.ALERTS_NEW_LATENCY)
    """

    def __init__(self, max_samples: int = 10_000) -> None:
        self._totals: dict[Counter, float] = defaultdict(float)
        self._last: dict[Counter, float] = {}
        self._samples: deque[CounterSample] = deque(maxlen=max_samples)

    def update_counter(self, counter: Counter, value: float) -> None:
        self._totals[counter] += value
        self._last[counter] = value
        self._samples.append(CounterSample(counter=counter, value=value, timestamp=time.time()))

    def total(self, counter: Counter) -> float:
        """Sum of every value reported for ``counter``."""
        return self._totals.get(counter, 0.0)

    def last(self, counter: Counter) -> float | None:
        """Most recent value reported for ``counter``."""
        return self._last.get(counter)

    def samples(self, counter: Counter | None = None) -> list[CounterSample]:
        """Reported values, oldest first, optionally for one counter."""
        if counter is None:
            return list(self._samples)
        return [s for s in self._samples if s.counter == counter]

    def reset(self) -> None:
        self._totals.clear()
        self._last.clear()
        self._samples.clear()


class LogCounterSink(CounterSink):
    """Writes one structured log line per counter update."""

    def update_counter(self, counter: Counter, value: float) -> None:
        logger.info("counter_updated", counter=counter.value, value=value)
