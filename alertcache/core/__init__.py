"""Core module — config, types, logging."""

from alertcache.core.config import Settings, get_settings, load_settings, reset_settings
from alertcache.core.logging import setup_logging
from alertcache.core.types import (
    AlertDefinition,
    Counter,
    RefreshPhase,
    RefreshResult,
)

__all__ = [
    "AlertDefinition",
    "Counter",
    "RefreshPhase",
    "RefreshResult",
    "Settings",
    "get_settings",
    "load_settings",
    "reset_settings",
    "setup_logging",
]
