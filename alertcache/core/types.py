"""Domain types — alert definitions, counters, and refresh results."""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, field_validator

# Digits, month/day names, L/W modifiers and the cron operators.
_CRON_FIELD_RE = re.compile(r"^[0-9A-Za-z*/,\-?#]+$")
_CRON_MIN_FIELDS = 5
_CRON_MAX_FIELDS = 7


class AlertDefinition(BaseModel):
    """Snapshot of one alert definition as read from the definition store."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    owner: str = ""
    cron_entry: str
    expression: str
    enabled: bool = True
    deleted: bool = False
    created_at: datetime
    modified_at: datetime

    @field_validator("created_at", "modified_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # Naive timestamps from the store are UTC.
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)

    def same_as(self, other: AlertDefinition) -> bool:
        """Field-by-field comparison of two snapshots.

        Used to tell a real modification apart from a re-save that changed
        nothing the evaluation engine cares about.
        """
        return (
            self.id == other.id
            and self.name == other.name
            and self.owner == other.owner
            and self.cron_entry == other.cron_entry
            and self.expression == other.expression
            and self.enabled == other.enabled
            and self.deleted == other.deleted
            and self.created_at == other.created_at
            and self.modified_at == other.modified_at
        )

    def validation_errors(self) -> list[str]:
        errors: list[str] = []
        if not self.name.strip():
            errors.append("name is empty")
        if not self.expression.strip():
            errors.append("expression is empty")
        fields = self.cron_entry.split()
        if not _CRON_MIN_FIELDS <= len(fields) <= _CRON_MAX_FIELDS:
            errors.append(
                f"cron entry '{self.cron_entry}' has {len(fields)} fields, "
                f"expected {_CRON_MIN_FIELDS}-{_CRON_MAX_FIELDS}"
            )
        else:
            bad = [f for f in fields if not _CRON_FIELD_RE.match(f)]
            if bad:
                errors.append(
                    f"cron entry '{self.cron_entry}' has invalid fields: {', '.join(bad)}"
                )
        return errors

    def is_valid(self) -> bool:
        return not self.validation_errors()

    def validation_message(self) -> str:
        """Human-readable reason the definition is invalid, or ``""``."""
        return "; ".join(self.validation_errors())


class Counter(StrEnum):
    """Counters emitted after each reconciliation pass."""

    ALERTS_UPDATED_COUNT = "ALERTS_UPDATED_COUNT"
    ALERTS_CREATED_COUNT = "ALERTS_CREATED_COUNT"
    ALERTS_UPDATE_LATENCY = "ALERTS_UPDATE_LATENCY"
    ALERTS_NEW_LATENCY = "ALERTS_NEW_LATENCY"


class RefreshPhase(StrEnum):
    """Which branch a refresh pass took."""

    BOOTSTRAP = "BOOTSTRAP"
    RECONCILE = "RECONCILE"


class RefreshResult(BaseModel):
    """Outcome of a single refresh pass."""

    phase: RefreshPhase
    started_at: float
    fetched_count: int = 0
    updated_count: int = 0
    removed_count: int = 0
    created_count: int = 0
    avg_update_latency_ms: float | None = None
    avg_new_latency_ms: float | None = None
    cache_size: int = 0
