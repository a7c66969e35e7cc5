"""DefinitionIndex — id map plus a secondary index by cron entry.

The refresher is the only writer. Readers may live on other threads (the
scheduling engine), so every paired mutation of the two maps, and every read
that spans both, happens under one lock. The lock is never held across I/O.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

import structlog

from alertcache.core.types import AlertDefinition

logger = structlog.stdlib.get_logger()


@dataclass(frozen=True)
class IndexSnapshot:
    """Consistent point-in-time view of both maps and the flag."""

    initialized: bool
    by_id: Mapping[int, AlertDefinition] = field(default_factory=dict)
    by_schedule: Mapping[str, frozenset[int]] = field(default_factory=dict)

    def definitions_for_schedule(self, cron_entry: str) -> list[AlertDefinition]:
        ids = self.by_schedule.get(cron_entry, frozenset())
        return [self.by_id[i] for i in sorted(ids)]


class DefinitionIndex:
    """Shared cache of schedulable alert definitions.

    Usage::

        index = DefinitionIndex()
        refresher = DefinitionsRefresher(index, source, sink)
        await refresher.start()

        # From the scheduling engine:
        if index.initialized:
            for definition in index.definitions_for_schedule("*/5 * * * *"):
                ...
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._by_id: dict[int, AlertDefinition] = {}
        self._by_schedule: dict[str, set[int]] = {}
        # Current bucket of every cached id, so removal never scans buckets.
        self._schedule_of: dict[int, str] = {}
        self._initialized = False

    # ── Read API ─────────────────────────────────────────────────

    @property
    def initialized(self) -> bool:
        """False until the first bootstrap has fully populated both maps."""
        return self._initialized

    @property
    def by_id(self) -> dict[int, AlertDefinition]:
        """Read-only copy of the id map."""
        with self._lock:
            return dict(self._by_id)

    @property
    def by_schedule(self) -> dict[str, set[int]]:
        """Read-only copy of the schedule buckets."""
        with self._lock:
            return {expr: set(ids) for expr, ids in self._by_schedule.items()}

    def get(self, definition_id: int) -> AlertDefinition | None:
        return self._by_id.get(definition_id)

    def ids_for_schedule(self, cron_entry: str) -> set[int]:
        with self._lock:
            return set(self._by_schedule.get(cron_entry, ()))

    def definitions_for_schedule(self, cron_entry: str) -> list[AlertDefinition]:
        """Cached definitions sharing ``cron_entry``, ordered by id."""
        with self._lock:
            ids = sorted(self._by_schedule.get(cron_entry, ()))
            return [self._by_id[i] for i in ids]

    def schedule_expressions(self) -> list[str]:
        with self._lock:
            return sorted(self._by_schedule)

    def snapshot(self) -> IndexSnapshot:
        """Copy both maps and the flag under a single lock acquisition."""
        with self._lock:
            return IndexSnapshot(
                initialized=self._initialized,
                by_id=MappingProxyType(dict(self._by_id)),
                by_schedule=MappingProxyType({
                    expr: frozenset(ids) for expr, ids in self._by_schedule.items()
                }),
            )

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, definition_id: object) -> bool:
        return definition_id in self._by_id

    # ── Write API (refresher only) ───────────────────────────────

    def put(self, definition: AlertDefinition) -> AlertDefinition | None:
        """Insert or replace a definition, moving its id between buckets.

        Returns the previously cached snapshot, if any.
        """
        with self._lock:
            previous = self._by_id.get(definition.id)
            self._unbucket(definition.id)
            self._by_id[definition.id] = definition
            self._bucket(definition.id, definition.cron_entry)
            return previous

    def remove(self, definition_id: int) -> AlertDefinition | None:
        """Drop a definition from both maps. Returns the removed snapshot."""
        with self._lock:
            removed = self._by_id.pop(definition_id, None)
            self._unbucket(definition_id)
            return removed

    def load(self, definitions: Iterable[AlertDefinition]) -> int:
        """Replace the whole index and mark it initialized.

        Both maps are built before the lock is taken; the swap and the
        ``initialized`` flag are published together.
        """
        by_id: dict[int, AlertDefinition] = {}
        for definition in definitions:
            by_id[definition.id] = definition

        by_schedule: dict[str, set[int]] = {}
        schedule_of: dict[int, str] = {}
        for definition_id, definition in by_id.items():
            by_schedule.setdefault(definition.cron_entry, set()).add(definition_id)
            schedule_of[definition_id] = definition.cron_entry

        with self._lock:
            self._by_id = by_id
            self._by_schedule = by_schedule
            self._schedule_of = schedule_of
            self._initialized = True
        return len(by_id)

    def verify(self) -> list[str]:
        """Return every violation of the cross-map invariant (empty if none)."""
        problems: list[str] = []
        with self._lock:
            for definition_id, definition in self._by_id.items():
                members = self._by_schedule.get(definition.cron_entry, set())
                if definition_id not in members:
                    problems.append(
                        f"id {definition_id} missing from bucket '{definition.cron_entry}'"
                    )
            seen: set[int] = set()
            for cron_entry, ids in self._by_schedule.items():
                if not ids:
                    problems.append(f"bucket '{cron_entry}' is empty")
                for definition_id in ids:
                    if definition_id in seen:
                        problems.append(f"id {definition_id} present in several buckets")
                    seen.add(definition_id)
                    definition = self._by_id.get(definition_id)
                    if definition is None:
                        problems.append(
                            f"id {definition_id} in bucket '{cron_entry}' but not cached"
                        )
                    elif definition.cron_entry != cron_entry:
                        problems.append(
                            f"id {definition_id} in bucket '{cron_entry}' "
                            f"but scheduled '{definition.cron_entry}'"
                        )
        return problems

    # ── Internals ────────────────────────────────────────────────

    def _bucket(self, definition_id: int, cron_entry: str) -> None:
        self._by_schedule.setdefault(cron_entry, set()).add(definition_id)
        self._schedule_of[definition_id] = cron_entry

    def _unbucket(self, definition_id: int) -> None:
        cron_entry = self._schedule_of.pop(definition_id, None)
        if cron_entry is None:
            return
        members = self._by_schedule.get(cron_entry)
        if members is None:
            logger.warning(
                "index_bucket_missing",
                definition_id=definition_id,
                cron_entry=cron_entry,
            )
            return
        members.discard(definition_id)
        if not members:
            del self._by_schedule[cron_entry]
