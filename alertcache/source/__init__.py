"""Definition sources — the authoritative store the cache mirrors."""

from alertcache.source.base import DefinitionSource
from alertcache.source.exceptions import SourceConnectionError, SourceError, SourceParseError
from alertcache.source.http import HttpDefinitionSource
from alertcache.source.memory import InMemoryDefinitionSource

__all__ = [
    "DefinitionSource",
    "HttpDefinitionSource",
    "InMemoryDefinitionSource",
    "SourceConnectionError",
    "SourceError",
    "SourceParseError",
]
