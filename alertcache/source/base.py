"""Abstract definition source — the authoritative store the cache mirrors."""

from __future__ import annotations

import abc
from datetime import datetime
from types import TracebackType

from alertcache.core.types import AlertDefinition


class DefinitionSource(abc.ABC):
    """Read side of the definition store.

    Both queries may block for as long as the store takes; the refresher
    awaits them without a timeout of its own.
    """

    async def connect(self) -> None:
        """Open any connection the source needs. No-op by default."""

    async def close(self) -> None:
        """Release the connection. No-op by default."""

    @abc.abstractmethod
    async def find_alerts_by_status(self, enabled: bool) -> list[AlertDefinition]:
        """Return every definition whose enabled flag equals ``enabled``."""

    @abc.abstractmethod
    async def find_alerts_modified_after(self, threshold: datetime) -> list[AlertDefinition]:
        """Return every definition modified at or after ``threshold``."""

    async def __aenter__(self) -> DefinitionSource:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()
