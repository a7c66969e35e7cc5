"""In-process definition store.

Holds definitions in a dict and answers the two source queries from it.
Useful for embedding the cache next to a store that already lives in the
same process, and for exercising the refresher without a network.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

import structlog

from alertcache.core.types import AlertDefinition
from alertcache.source.base import DefinitionSource

logger = structlog.stdlib.get_logger()


class InMemoryDefinitionSource(DefinitionSource):
    """Dict-backed ``DefinitionSource``."""

    def __init__(self, definitions: Iterable[AlertDefinition] = ()) -> None:
        self._definitions: dict[int, AlertDefinition] = {d.id: d for d in definitions}

    @property
    def definitions(self) -> dict[int, AlertDefinition]:
        """Read-only copy of the stored definitions."""
        return dict(self._definitions)

    def get(self, definition_id: int) -> AlertDefinition | None:
        return self._definitions.get(definition_id)

    def upsert(self, definition: AlertDefinition) -> None:
        """Store a definition, replacing any previous version with the same id."""
        self._definitions[definition.id] = definition

    def delete(self, definition_id: int, at: datetime | None = None) -> AlertDefinition | None:
        """Soft-delete: flag the definition deleted and bump its modified time.

        The row stays visible to ``find_alerts_modified_after`` so the cache
        can observe the deletion.
        """
        existing = self._definitions.get(definition_id)
        if existing is None:
            return None
        deleted = existing.model_copy(
            update={"deleted": True, "modified_at": at or datetime.now(UTC)},
        )
        self._definitions[definition_id] = deleted
        logger.debug("source_definition_deleted", definition_id=definition_id)
        return deleted

    async def find_alerts_by_status(self, enabled: bool) -> list[AlertDefinition]:
        return sorted(
            (d for d in self._definitions.values() if d.enabled == enabled),
            key=lambda d: d.id,
        )

    async def find_alerts_modified_after(self, threshold: datetime) -> list[AlertDefinition]:
        return sorted(
            (d for d in self._definitions.values() if d.modified_at >= threshold),
            key=lambda d: d.id,
        )
