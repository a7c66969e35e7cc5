"""DefinitionsRefresher — keeps a DefinitionIndex in step with the store.

The first pass bootstraps the index from every enabled definition. Every
later pass re-reads only the definitions modified inside a lookback window
and applies the difference. The window is at least ``lookback_intervals``
refresh intervals wide, so one slow pass or a missed tick cannot skip a
modification.
"""

from __future__ import annotations

import asyncio
import time
from datetime import UTC, datetime
from types import TracebackType

import structlog

from alertcache.cache.index import DefinitionIndex
from alertcache.core.config import RefresherConfig, get_settings
from alertcache.core.types import (
    AlertDefinition,
    Counter,
    RefreshPhase,
    RefreshResult,
)
from alertcache.metrics.counters import CounterSink
from alertcache.source.base import DefinitionSource

logger = structlog.stdlib.get_logger()


class DefinitionsRefresher:
    """Sole writer of a ``DefinitionIndex``.

    Usage::

        index = DefinitionIndex()
        refresher = DefinitionsRefresher(index, source, sink)
        async with refresher:
            await shutdown.wait()

        # Or drive passes by hand:
        await refresher.initialize()
        result = await refresher.refresh(time.time())
    """

    def __init__(
        self,
        index: DefinitionIndex,
        source: DefinitionSource,
        sink: CounterSink,
        config: RefresherConfig | None = None,
    ) -> None:
        self._index = index
        self._source = source
        self._sink = sink
        self._config = config or get_settings().refresher

        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._stop_event = asyncio.Event()

        self._pass_count = 0
        self._error_count = 0
        self._last_pass_duration_ms = 0.0
        self._last_refresh_started_at: float | None = None
        self._last_success_at: float | None = None
        self._last_result: RefreshResult | None = None

    # ── Properties ───────────────────────────────────────────────

    @property
    def index(self) -> DefinitionIndex:
        return self._index

    @property
    def source(self) -> DefinitionSource:
        return self._source

    @property
    def running(self) -> bool:
        """Whether the refresh loop is active."""
        return self._running

    @property
    def pass_count(self) -> int:
        """Number of passes that completed without raising."""
        return self._pass_count

    @property
    def error_count(self) -> int:
        """Number of passes aborted by an exception."""
        return self._error_count

    @property
    def last_pass_duration_ms(self) -> float:
        return self._last_pass_duration_ms

    @property
    def last_success_at(self) -> float | None:
        """Start time (epoch seconds) of the last pass that completed."""
        return self._last_success_at

    @property
    def last_result(self) -> RefreshResult | None:
        return self._last_result

    def staleness_ms(self, now: float | None = None) -> float | None:
        """Milliseconds since the last completed pass started.

        ``None`` until the first pass completes.
        """
        if self._last_success_at is None:
            return None
        return ((now if now is not None else time.time()) - self._last_success_at) * 1000.0

    def lookback_window_ms(self, last_duration_ms: float) -> float:
        """How far back a reconciliation pass looks for modifications."""
        return max(
            last_duration_ms + self._config.refresh_interval_ms,
            float(self._config.lookback_period_ms),
        )

    # ── Lifecycle ────────────────────────────────────────────────

    async def start(self) -> None:
        """Start the background refresh loop."""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self._task = asyncio.create_task(self.run())
        logger.info(
            "alert_cache_refresher_started",
            refresh_interval_ms=self._config.refresh_interval_ms,
            lookback_period_ms=self._config.lookback_period_ms,
        )

    async def stop(self) -> None:
        """Signal the loop to stop and wait for the task to finish."""
        self._running = False
        self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(
            "alert_cache_refresher_stopped",
            pass_count=self._pass_count,
            error_count=self._error_count,
        )

    async def run(self) -> None:
        """Refresh forever, one pass per interval, until stopped.

        A failed pass is logged and counted; the loop sleeps the normal
        interval and tries again. ``initialized`` is never reset.
        """
        self._running = True
        self._stop_event.clear()
        interval_ms = self._config.refresh_interval_ms
        try:
            while self._running:
                started_at = time.time()
                try:
                    await self.run_once(started_at)
                except asyncio.CancelledError:
                    break
                except Exception:
                    self._error_count += 1
                    logger.exception(
                        "alert_cache_refresh_error",
                        error_count=self._error_count,
                    )

                elapsed_ms = (time.time() - started_at) * 1000.0
                self._last_pass_duration_ms = elapsed_ms
                remaining_ms = interval_ms - elapsed_ms
                if remaining_ms > 0 and await self._wait_for_stop(remaining_ms / 1000.0):
                    break
        finally:
            self._running = False

    async def _wait_for_stop(self, timeout_secs: float) -> bool:
        """Sleep up to ``timeout_secs``; True if a stop was requested."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=timeout_secs)
        except TimeoutError:
            return False
        except asyncio.CancelledError:
            return True
        return True

    async def run_once(self, started_at: float | None = None) -> RefreshResult:
        """Run one pass: bootstrap if the index is empty, else reconcile."""
        if started_at is None:
            started_at = time.time()

        if not self._index.initialized:
            logger.info("alert_cache_initialization_starting")
            cached = await self.initialize()
            result = RefreshResult(
                phase=RefreshPhase.BOOTSTRAP,
                started_at=started_at,
                created_count=cached,
                cache_size=cached,
            )
        else:
            logger.info("alert_cache_refresh_starting")
            if self._last_refresh_started_at is not None:
                logger.info(
                    "alert_cache_refresh_interval",
                    since_last_refresh_ms=round((started_at - self._last_refresh_started_at) * 1000.0),
                )
            result = await self.refresh(started_at, self._last_pass_duration_ms)

        if self._stop_event.is_set():
            return result

        self._last_refresh_started_at = started_at
        self._last_success_at = started_at
        self._last_result = result
        self._pass_count += 1
        logger.info(
            "alert_cache_pass_completed",
            phase=result.phase.value,
            execution_ms=round((time.time() - started_at) * 1000.0),
            cache_size=len(self._index),
        )
        return result

    # ── Bootstrap ────────────────────────────────────────────────

    async def initialize(self) -> int:
        """Build the index from every enabled, valid definition.

        ``initialized`` flips only after both maps are populated.
        Returns the number of cached definitions.
        """
        enabled = await self._source.find_alerts_by_status(True)

        if self._stop_event.is_set():
            # Stopped while the fetch was in flight; stay uninitialized.
            logger.info("alert_cache_initialization_discarded", fetched=len(enabled))
            return 0

        schedulable = [
            a for a in enabled
            if a.enabled and not a.deleted and self._check_valid(a)
        ]
        cached = self._index.load(schedulable)
        logger.info(
            "alert_cache_initialized",
            enabled_count=len(enabled),
            cached_count=cached,
            excluded_count=len(enabled) - cached,
        )
        return cached

    # ── Reconciliation ───────────────────────────────────────────

    async def refresh(self, started_at: float, last_duration_ms: float = 0.0) -> RefreshResult:
        """Apply every definition modified inside the lookback window.

        Args:
            started_at: Pass start, epoch seconds. Discovery latencies are
                measured against it.
            last_duration_ms: Duration of the previous pass; widens the
                lookback when passes run long.
        """
        window_ms = self.lookback_window_ms(last_duration_ms)
        threshold = datetime.fromtimestamp(started_at - window_ms / 1000.0, tz=UTC)
        modified = await self._source.find_alerts_modified_after(threshold)

        if self._stop_event.is_set():
            # Stopped while the fetch was in flight; leave the index alone.
            logger.info("alert_cache_refresh_discarded", fetched=len(modified or []))
            return RefreshResult(
                phase=RefreshPhase.RECONCILE,
                started_at=started_at,
                cache_size=len(self._index),
            )

        updated_count = 0
        removed_count = 0
        created_count = 0
        sum_update_latency_ms = 0.0
        sum_new_latency_ms = 0.0

        for a in modified or []:
            logger.debug(
                "alert_cache_processing_definition",
                definition_id=a.id,
                name=a.name,
                cron_entry=a.cron_entry,
                expression=a.expression,
            )
            is_valid = self._check_valid(a)
            cached = self._index.get(a.id)

            if cached is not None:
                latency_ms = (started_at - a.modified_at.timestamp()) * 1000.0
                if a.deleted or not a.enabled or not is_valid:
                    self._index.remove(a.id)
                    removed_count += 1
                    updated_count += 1
                    sum_update_latency_ms += latency_ms
                    logger.debug(
                        "alert_cache_definition_removed",
                        definition_id=a.id,
                        modified_at=a.modified_at.isoformat(),
                        latency_ms=latency_ms,
                    )
                elif not a.same_as(cached):
                    self._index.put(a)
                    updated_count += 1
                    sum_update_latency_ms += latency_ms
                    logger.debug(
                        "alert_cache_definition_updated",
                        definition_id=a.id,
                        old_cron_entry=cached.cron_entry,
                        new_cron_entry=a.cron_entry,
                        latency_ms=latency_ms,
                    )
            elif a.enabled and not a.deleted and is_valid:
                latency_ms = (started_at - a.created_at.timestamp()) * 1000.0
                self._index.put(a)
                created_count += 1
                sum_new_latency_ms += latency_ms
                logger.debug(
                    "alert_cache_definition_added",
                    definition_id=a.id,
                    created_at=a.created_at.isoformat(),
                    latency_ms=latency_ms,
                )

        avg_update_latency_ms = (
            sum_update_latency_ms / updated_count if updated_count > 0 else None
        )
        avg_new_latency_ms = (
            sum_new_latency_ms / created_count if created_count > 0 else None
        )
        self._emit_counters(
            updated_count, created_count, avg_update_latency_ms, avg_new_latency_ms,
        )

        return RefreshResult(
            phase=RefreshPhase.RECONCILE,
            started_at=started_at,
            fetched_count=len(modified or []),
            updated_count=updated_count,
            removed_count=removed_count,
            created_count=created_count,
            avg_update_latency_ms=avg_update_latency_ms,
            avg_new_latency_ms=avg_new_latency_ms,
            cache_size=len(self._index),
        )

    def _emit_counters(
        self,
        updated_count: int,
        created_count: int,
        avg_update_latency_ms: float | None,
        avg_new_latency_ms: float | None,
    ) -> None:
        self._sink.update_counter(Counter.ALERTS_UPDATED_COUNT, float(updated_count))
        self._sink.update_counter(Counter.ALERTS_CREATED_COUNT, float(created_count))
        logger.info(
            "alert_cache_changes_applied",
            updated_count=updated_count,
            created_count=created_count,
        )

        if avg_update_latency_ms is not None:
            self._sink.update_counter(Counter.ALERTS_UPDATE_LATENCY, avg_update_latency_ms)
            logger.info("alert_cache_update_latency", avg_ms=round(avg_update_latency_ms))

        if avg_new_latency_ms is not None:
            self._sink.update_counter(Counter.ALERTS_NEW_LATENCY, avg_new_latency_ms)
            logger.info("alert_cache_new_latency", avg_ms=round(avg_new_latency_ms))

    def _check_valid(self, a: AlertDefinition) -> bool:
        """Run the definition's own validation; log and exclude failures."""
        try:
            valid = a.is_valid()
        except Exception:
            logger.exception("alert_cache_validation_error", definition_id=a.id)
            return False
        if not valid:
            logger.info(
                "alert_cache_excluding_invalid_definition",
                definition_id=a.id,
                name=a.name,
                cron_entry=a.cron_entry,
                expression=a.expression,
                reason=a.validation_message(),
            )
        return valid

    # ── Context manager ──────────────────────────────────────────

    async def __aenter__(self) -> DefinitionsRefresher:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
