"""Tests for HttpDefinitionSource — record parsing, requests, error mapping."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from pydantic import SecretStr

from alertcache.core.config import SourceConfig
from alertcache.source.exceptions import SourceConnectionError, SourceParseError
from alertcache.source.http import HttpDefinitionSource, parse_definition, parse_definitions

_CREATED_MS = 1_700_000_000_000
_MODIFIED_MS = 1_700_000_360_000


def _record(**overrides: Any) -> dict[str, Any]:
    raw: dict[str, Any] = {
        "id": 42,
        "name": "cpu-high",
        "ownerName": "ops",
        "cronEntry": "*/5 * * * *",
        "expression": "-5m:host:cpu.user:avg",
        "enabled": True,
        "deleted": False,
        "createdDate": _CREATED_MS,
        "modifiedDate": _MODIFIED_MS,
    }
    raw.update(overrides)
    return raw


def _config(**overrides: Any) -> SourceConfig:
    fields: dict[str, Any] = {"base_url": "https://store.test/api/"}
    fields.update(overrides)
    return SourceConfig(**fields)


def _response(body: Any, status: int = 200) -> httpx.Response:
    """Build a mock httpx.Response."""
    return httpx.Response(
        status_code=status,
        json=body,
        request=httpx.Request("GET", "https://store.test/api/alerts"),
    )


# ── Parsing ─────────────────────────────────────────────────────


class TestParseDefinition:
    def test_full_record(self) -> None:
        d = parse_definition(_record())
        assert d.id == 42
        assert d.owner == "ops"
        assert d.cron_entry == "*/5 * * * *"
        assert d.created_at == datetime.fromtimestamp(_CREATED_MS / 1000, tz=UTC)
        assert d.modified_at == datetime.fromtimestamp(_MODIFIED_MS / 1000, tz=UTC)

    def test_iso_timestamps(self) -> None:
        d = parse_definition(_record(
            createdDate="2024-01-01T00:00:00Z",
            modifiedDate="2024-01-02T00:00:00+00:00",
        ))
        assert d.created_at == datetime(2024, 1, 1, tzinfo=UTC)
        assert d.modified_at == datetime(2024, 1, 2, tzinfo=UTC)

    def test_missing_modified_falls_back_to_created(self) -> None:
        raw = _record()
        del raw["modifiedDate"]
        d = parse_definition(raw)
        assert d.modified_at == d.created_at

    def test_string_id_coerced(self) -> None:
        assert parse_definition(_record(id="17")).id == 17

    def test_missing_id_raises(self) -> None:
        raw = _record()
        del raw["id"]
        with pytest.raises(ValueError, match="id"):
            parse_definition(raw)

    def test_bad_timestamp_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_definition(_record(createdDate=None))

    def test_out_of_range_timestamp_raises(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            parse_definition(_record(createdDate=1e20))

    def test_invalid_cron_still_parses(self) -> None:
        d = parse_definition(_record(cronEntry="nonsense"))
        assert not d.is_valid()


class TestParseDefinitions:
    def test_skips_malformed_records(self) -> None:
        body = [_record(id=1), {"id": 2}, "junk", _record(id=3, name=None)]
        definitions = parse_definitions(body)
        assert [d.id for d in definitions] == [1]

    def test_out_of_range_timestamp_skips_only_that_record(self) -> None:
        body = [_record(id=1, modifiedDate=10**20), _record(id=2)]
        definitions = parse_definitions(body)
        assert [d.id for d in definitions] == [2]

    def test_non_list_body_raises(self) -> None:
        with pytest.raises(SourceParseError):
            parse_definitions({"alerts": []})


# ── Client ──────────────────────────────────────────────────────


class TestLifecycle:
    async def test_connect_creates_client(self) -> None:
        source = HttpDefinitionSource(_config())
        await source.connect()
        assert source.connected
        await source.close()
        assert not source.connected

    async def test_close_is_safe_when_not_connected(self) -> None:
        source = HttpDefinitionSource(_config())
        await source.close()
        assert not source.connected

    async def test_auth_header_when_token_set(self) -> None:
        async with HttpDefinitionSource(_config(api_token=SecretStr("tok"))) as source:
            assert source._http.headers["Authorization"] == "Bearer tok"  # type: ignore[union-attr]

    async def test_no_auth_header_without_token(self) -> None:
        async with HttpDefinitionSource(_config()) as source:
            assert "Authorization" not in source._http.headers  # type: ignore[union-attr]

    def test_alerts_url_joins_path(self) -> None:
        assert HttpDefinitionSource(_config()).alerts_url == "https://store.test/api/alerts"


class TestQueries:
    async def test_find_by_status_sends_filter(self) -> None:
        async with HttpDefinitionSource(_config()) as source:
            with patch.object(source._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
                mock_get.return_value = _response([_record(id=1), _record(id=2, enabled=False)])
                found = await source.find_alerts_by_status(True)

        assert [d.id for d in found] == [1]
        mock_get.assert_awaited_once_with(
            "https://store.test/api/alerts", params={"enabled": "true"},
        )

    async def test_find_modified_after_sends_epoch_millis(self) -> None:
        threshold = datetime.fromtimestamp(_MODIFIED_MS / 1000, tz=UTC)
        async with HttpDefinitionSource(_config()) as source:
            with patch.object(source._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
                mock_get.return_value = _response([
                    _record(id=1),
                    _record(id=2, modifiedDate=_MODIFIED_MS - 1),
                ])
                found = await source.find_alerts_modified_after(threshold)

        assert [d.id for d in found] == [1]
        mock_get.assert_awaited_once_with(
            "https://store.test/api/alerts", params={"modifiedAfter": str(_MODIFIED_MS)},
        )

    async def test_not_connected_raises(self) -> None:
        source = HttpDefinitionSource(_config())
        with pytest.raises(SourceConnectionError, match="not connected"):
            await source.find_alerts_by_status(True)

    async def test_connection_error_mapped(self) -> None:
        async with HttpDefinitionSource(_config()) as source:
            with patch.object(source._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
                mock_get.side_effect = httpx.ConnectError("connection refused")
                with pytest.raises(SourceConnectionError, match="request failed"):
                    await source.find_alerts_by_status(True)

    async def test_http_status_error_mapped(self) -> None:
        async with HttpDefinitionSource(_config()) as source:
            with patch.object(source._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
                mock_get.return_value = _response({"error": "boom"}, status=503)
                with pytest.raises(SourceConnectionError, match="503"):
                    await source.find_alerts_by_status(True)

    async def test_invalid_json_raises_parse_error(self) -> None:
        async with HttpDefinitionSource(_config()) as source:
            with patch.object(source._http, "get", new_callable=AsyncMock) as mock_get:  # type: ignore[union-attr]
                mock_get.return_value = httpx.Response(
                    status_code=200,
                    content=b"<html>",
                    request=httpx.Request("GET", "https://store.test/api/alerts"),
                )
                with pytest.raises(SourceParseError):
                    await source.find_alerts_by_status(True)
