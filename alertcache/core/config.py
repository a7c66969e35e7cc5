"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, SecretStr

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class RefresherConfig(BaseModel):
    """Background refresh cadence.

    The interval matches the finest schedule unit the evaluation engine
    supports (one minute for cron entries).
    """

    refresh_interval_ms: int = 60_000
    lookback_intervals: int = 5

    @property
    def lookback_period_ms(self) -> int:
        """Minimum reconciliation lookback, as a multiple of the interval."""
        return self.lookback_intervals * self.refresh_interval_ms


class SourceConfig(BaseModel):
    """Definition store connection."""

    kind: Literal["http", "memory"] = "http"
    base_url: str = "http://localhost:8080/argusws"
    alerts_path: str = "/alerts"
    timeout_secs: float = 10.0
    api_token: SecretStr = SecretStr("")


class MetricsConfig(BaseModel):
    """Counter sink selection."""

    sink: Literal["log", "memory"] = "log"


class LoggingConfig(BaseModel):
    """Logging configuration.

    ``service`` is stamped on every event so cache logs can be told apart
    when several services share a log stream. ``quiet_loggers`` are held at
    WARNING or above regardless of ``level``.
    """

    level: str = "INFO"
    format: Literal["json", "console"] = "json"
    service: str = "alertcache"
    quiet_loggers: list[str] = ["httpx", "httpcore"]


class Settings(BaseModel):
    """Root settings container."""

    refresher: RefresherConfig = RefresherConfig()
    source: SourceConfig = SourceConfig()
    metrics: MetricsConfig = MetricsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f)
            if isinstance(raw, dict):
                data = raw

    _settings = Settings(**data)
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
