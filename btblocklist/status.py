"""
status.py - Per-batch status summary

Every batch ends with one summary line handed to the configured sink,
whether or not the content changed:

    RIPE: 2 range(s) | External: 1 list(s) with a total of 2 line(s) |
    Last modification: 2 Jan 2026 15:04:05 UTC | Last update: 2 Jan 2026 15:04:05 UTC

(one line in practice). Reporting is best effort: a failing sink is logged
and never affects the published cache.
"""
from __future__ import annotations

import inspect
import logging
import os
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from pathlib import Path

import aiofiles

from btblocklist.exceptions import StatusReportError
from btblocklist.state import BatchCounters

_LOGGER = logging.getLogger(__name__)

NEVER = "never"

StatusSink = Callable[[str], Awaitable[None] | None]


def format_timestamp(value: datetime | None) -> str:
    """
    Render a timestamp as '2 Jan 2006 15:04:05 UTC'.

    Example:
        >>> from datetime import UTC, datetime
        >>> format_timestamp(datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC))
        '2 Jan 2026 03:04:05 UTC'
        >>> format_timestamp(None)
        'never'
    """
    if value is None:
        return NEVER
    return f"{value.day} {value:%b %Y %H:%M:%S %Z}".rstrip()


def format_status(
    counters: BatchCounters,
    last_modified: datetime | None,
    last_batch: datetime | None,
) -> str:
    return (
        f"RIPE: {counters.ripe_ranges} range(s) | "
        f"External: {counters.external_lists} list(s) with a total of {counters.external_lines} line(s) | "
        f"Last modification: {format_timestamp(last_modified)} | "
        f"Last update: {format_timestamp(last_batch)}"
    )


async def report_status(sink: StatusSink, message: str) -> bool:
    """
    Hand the summary to the sink, logging any failure.

    Returns:
        True if the sink accepted the message
    """
    try:
        result = sink(message)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        _LOGGER.error("can't update status msg: %s", e)
        return False
    return True


# ============================================================================
# SINKS
# ============================================================================

class LogStatusSink:
    """Writes the status line to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _LOGGER

    def __call__(self, message: str) -> None:
        self._logger.info("Status: %s", message)


class FileStatusSink:
    """Writes the status line to a file, replacing it atomically."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    async def __call__(self, message: str) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
                await f.write(message + "\n")
            temp_path.replace(self.path)
        except OSError as e:
            raise StatusReportError(f"can't write {self.path}: {e}") from e


class MultiStatusSink:
    """Fans one status line out to several sinks; the first failure is raised once all ran."""

    def __init__(self, sinks: Sequence[StatusSink]) -> None:
        self._sinks = list(sinks)

    async def __call__(self, message: str) -> None:
        failures: list[Exception] = []
        for sink in self._sinks:
            try:
                result = sink(message)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                failures.append(e)
        if failures:
            raise StatusReportError(str(failures[0])) from failures[0]
