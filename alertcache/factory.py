"""Convenience factory for wiring the cache stack."""

from __future__ import annotations

from alertcache.cache.index import DefinitionIndex
from alertcache.cache.refresher import DefinitionsRefresher
from alertcache.core.config import Settings
from alertcache.metrics.counters import CounterSink, InMemoryCounterSink, LogCounterSink
from alertcache.source.base import DefinitionSource
from alertcache.source.http import HttpDefinitionSource
from alertcache.source.memory import InMemoryDefinitionSource


def create_cache_stack(
    settings: Settings,
    source: DefinitionSource | None = None,
    sink: CounterSink | None = None,
) -> tuple[DefinitionIndex, DefinitionsRefresher]:
    """Build an empty index and the refresher that owns it.

    ``source`` and ``sink`` override the configured ones.

    Returns:
        (index, refresher)
    """
    if source is None:
        if settings.source.kind == "memory":
            source = InMemoryDefinitionSource()
        else:
            source = HttpDefinitionSource(settings.source)

    if sink is None:
        if settings.metrics.sink == "memory":
            sink = InMemoryCounterSink()
        else:
            sink = LogCounterSink()

    index = DefinitionIndex()
    refresher = DefinitionsRefresher(
        index=index,
        source=source,
        sink=sink,
        config=settings.refresher,
    )
    return index, refresher
