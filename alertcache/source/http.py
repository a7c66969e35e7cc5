"""HTTP definition source — reads alert definitions from a REST store.

Queries::

    GET {base_url}{alerts_path}?enabled=true
    GET {base_url}{alerts_path}?modifiedAfter=<epoch millis>

Both return a JSON array of alert records in the store's camelCase shape::

    {"id": 42, "name": "cpu", "ownerName": "ops", "cronEntry": "* * * * *",
     "expression": "-5m:host:cpu:avg", "enabled": true, "deleted": false,
     "createdDate": 1700000000000, "modifiedDate": 1700000360000}

Records that cannot be parsed are logged and skipped individually; a bad
response as a whole raises.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from alertcache.core.config import SourceConfig, get_settings
from alertcache.core.types import AlertDefinition
from alertcache.source.base import DefinitionSource
from alertcache.source.exceptions import SourceConnectionError, SourceParseError

logger = structlog.stdlib.get_logger()


def _parse_timestamp(value: Any) -> datetime:
    """Epoch milliseconds, or an ISO-8601 string."""
    if isinstance(value, bool):
        raise ValueError(f"not a timestamp: {value!r}")
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=UTC)
        except (OverflowError, OSError) as exc:
            raise ValueError(f"timestamp out of range: {value!r}") from exc
    if isinstance(value, str):
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    raise ValueError(f"not a timestamp: {value!r}")


def parse_definition(raw: dict[str, Any]) -> AlertDefinition:
    """Convert one wire record into an ``AlertDefinition``.

    Raises:
        ValueError: missing or malformed fields (pydantic's
            ``ValidationError`` is a ``ValueError``).
    """
    try:
        created = raw["createdDate"]
        modified = raw.get("modifiedDate", created)
        return AlertDefinition(
            id=int(raw["id"]),
            name=raw.get("name", ""),
            owner=raw.get("ownerName", ""),
            cron_entry=raw.get("cronEntry", ""),
            expression=raw.get("expression", ""),
            enabled=raw.get("enabled", False),
            deleted=raw.get("deleted", False),
            created_at=_parse_timestamp(created),
            modified_at=_parse_timestamp(modified),
        )
    except KeyError as exc:
        raise ValueError(f"missing field {exc.args[0]!r}") from exc
    except TypeError as exc:
        raise ValueError(str(exc)) from exc


def parse_definitions(body: Any) -> list[AlertDefinition]:
    """Parse a response body, skipping records that fail individually."""
    if not isinstance(body, list):
        raise SourceParseError(
            f"expected a JSON array of alerts, got {type(body).__name__}"
        )

    definitions: list[AlertDefinition] = []
    for raw in body:
        if not isinstance(raw, dict):
            logger.warning("source_record_not_object", record=repr(raw)[:200])
            continue
        try:
            definitions.append(parse_definition(raw))
        except (ValueError, ValidationError) as exc:
            logger.warning(
                "source_record_malformed",
                alert_id=raw.get("id"),
                error=str(exc),
            )
    return definitions


class HttpDefinitionSource(DefinitionSource):
    """``DefinitionSource`` backed by the definition store's REST API.

    Usage::

        async with HttpDefinitionSource(settings.source) as source:
            enabled = await source.find_alerts_by_status(True)
    """

    def __init__(self, config: SourceConfig | None = None) -> None:
        self._config = config or get_settings().source
        self._http: httpx.AsyncClient | None = None

    @property
    def connected(self) -> bool:
        """Whether the HTTP client is active."""
        return self._http is not None and not self._http.is_closed

    @property
    def alerts_url(self) -> str:
        return self._config.base_url.rstrip("/") + self._config.alerts_path

    async def connect(self) -> None:
        """Create the httpx async client."""
        headers: dict[str, str] = {"Accept": "application/json"}
        token = self._config.api_token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_secs),
            headers=headers,
        )

    async def close(self) -> None:
        """Close the httpx async client."""
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def find_alerts_by_status(self, enabled: bool) -> list[AlertDefinition]:
        params = {"enabled": "true" if enabled else "false"}
        definitions = await self._get_definitions(params)
        # Guard against a store that ignores the filter.
        return [d for d in definitions if d.enabled == enabled]

    async def find_alerts_modified_after(self, threshold: datetime) -> list[AlertDefinition]:
        params = {"modifiedAfter": str(int(threshold.timestamp() * 1000))}
        definitions = await self._get_definitions(params)
        return [d for d in definitions if d.modified_at >= threshold]

    async def _get_definitions(self, params: dict[str, str]) -> list[AlertDefinition]:
        if self._http is None:
            raise SourceConnectionError("HTTP client not connected")

        try:
            response = await self._http.get(self.alerts_url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceConnectionError(
                f"definition store returned {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceConnectionError(f"definition store request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise SourceParseError("definition store returned invalid JSON") from exc

        definitions = parse_definitions(body)
        logger.debug(
            "source_definitions_fetched",
            params=params,
            received=len(body),
            parsed=len(definitions),
        )
        return definitions
