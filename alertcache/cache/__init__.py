"""Alert definitions cache — the shared index and its background refresher."""

from alertcache.cache.index import DefinitionIndex, IndexSnapshot
from alertcache.cache.refresher import DefinitionsRefresher

__all__ = [
    "DefinitionIndex",
    "DefinitionsRefresher",
    "IndexSnapshot",
]
