"""
updater.py - Refresh loop: probe, merge, publish, report

Batch stages:
1. Probe the RIPE search, then every external source (concurrently, all
   joined before going on)
2. Replace the state slots of sources that reported new lines
3. If anything changed, rebuild the whole blob and publish it
4. Record the batch and report the status line, changed or not

The loop runs one batch right away, then one per interval tick. A batch
always finishes before the loop looks at the timer again, so batches never
overlap; ticks missed during a slow batch collapse into a single one.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import NamedTuple, Protocol

from btblocklist.cache import CacheStore
from btblocklist.compiler import compile_blob
from btblocklist.downloader import DEFAULT_CONCURRENCY, ExternalProbe, fetch_all
from btblocklist.exceptions import CompileError, ProbeError, PublishError
from btblocklist.state import BatchCounters, StateStore
from btblocklist.status import StatusSink, format_status, report_status

_LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RipeSource(Protocol):
    async def probe(self) -> list[str] | None: ...


class BatchReport(NamedTuple):
    """Outcome of one batch."""
    started_at: datetime
    changed: bool
    published: bool
    counters: BatchCounters
    status: str


class Updater:
    """Owns the state store and drives the cache refresh."""

    def __init__(
        self,
        ripe_probe: RipeSource,
        external_probe: ExternalProbe,
        sources: Mapping[str, str],
        cache: CacheStore,
        status_sink: StatusSink,
        *,
        interval: float,
        concurrency: int = DEFAULT_CONCURRENCY,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._ripe_probe = ripe_probe
        self._external_probe = external_probe
        self._sources = dict(sources)
        self._cache = cache
        self._status_sink = status_sink
        self._interval = interval
        self._concurrency = concurrency
        self._clock = clock
        self.state = StateStore(self._sources)
        # set when a compile or publish failed, so the next batch rebuilds
        self._pending = False

    # =========================================================================
    # Scheduler
    # =========================================================================

    async def run(self, stop: asyncio.Event) -> None:
        """Run batches until `stop` is set. A running batch is never interrupted."""
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self._interval
        # first batch does not wait for the first tick
        await self._safe_batch()
        while True:
            if stop.is_set():
                break
            delay = max(0.0, next_tick - loop.time())
            try:
                await asyncio.wait_for(stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass
            else:
                break
            missed = int((loop.time() - next_tick) // self._interval)
            next_tick += (max(missed, 0) + 1) * self._interval
            await self._safe_batch()
        _LOGGER.debug("worker received stop signal")

    async def _safe_batch(self) -> None:
        try:
            await self.run_batch()
        except Exception:
            _LOGGER.exception("batch failed unexpectedly")

    # =========================================================================
    # Batch
    # =========================================================================

    async def _probe_ripe(self) -> bool:
        try:
            lines = await self._ripe_probe.probe()
        except ProbeError as e:
            _LOGGER.warning("RIPE probe failed, keeping previous ranges: %s", e)
            return False
        except Exception:
            _LOGGER.exception("RIPE probe failed, keeping previous ranges")
            return False
        if lines is None:
            return False
        self.state.replace_ripe(lines)
        return True

    async def _probe_external(self) -> bool:
        changed = False
        for result in await fetch_all(self._external_probe, self._sources, self._concurrency):
            if not result.success:
                _LOGGER.warning(
                    "external blocklist '%s' failed, keeping previous lines: %s",
                    result.name,
                    result.error,
                )
            elif result.changed:
                self.state.replace_external(result.name, result.lines or [])
                changed = True
        return changed

    async def _compile_and_publish(self, batch_start: datetime) -> bool:
        ripe_lines, external = self.state.sections()
        try:
            blob = await asyncio.to_thread(compile_blob, ripe_lines, external)
            self._cache.publish(blob.data, batch_start)
        except (CompileError, PublishError) as e:
            _LOGGER.error("keeping previously published blocklist: %s", e, exc_info=True)
            self._pending = True
            return False
        self._pending = False
        _LOGGER.debug("global cache updated")
        return True

    async def run_batch(self) -> BatchReport:
        """Probe every source and republish the blob if anything changed."""
        _LOGGER.debug("starting a new batch")
        batch_start = self._clock()

        ripe_changed = await self._probe_ripe()
        external_changed = await self._probe_external()
        changed = ripe_changed or external_changed or self._pending

        published = False
        if changed:
            published = await self._compile_and_publish(batch_start)
        else:
            _LOGGER.info("No new data, keeping cache")

        snapshot = self._cache.mark_batch(batch_start)
        counters = self.state.counters()
        status = format_status(counters, snapshot.last_modified, snapshot.last_batch)
        await report_status(self._status_sink, status)
        return BatchReport(batch_start, changed, published, counters, status)
