#!/usr/bin/env python3
"""
service.py

Main entry point: wire the probes, the updater and the HTTP server together
and run until SIGINT/SIGTERM.

Usage:
    python -m btblocklist --ripe-search "seedbox hosting" --sources sources.txt

Shutdown:
    The signal only sets the stop event. A batch in progress runs to
    completion, then the loop returns and the server is torn down.
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

import aiohttp
from aiohttp import web

from btblocklist import __version__
from btblocklist.cache import CacheStore
from btblocklist.config import Config, parse_config
from btblocklist.downloader import BlocklistFetcher
from btblocklist.exceptions import ConfigError
from btblocklist.ripe import RipeProbe
from btblocklist.server import create_app
from btblocklist.status import FileStatusSink, LogStatusSink, MultiStatusSink, StatusSink
from btblocklist.updater import Updater

_LOGGER = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_status_sink(config: Config) -> StatusSink:
    sinks: list[StatusSink] = [LogStatusSink()]
    if config.status_file is not None:
        sinks.append(FileStatusSink(config.status_file))
    return MultiStatusSink(sinks) if len(sinks) > 1 else sinks[0]


def install_signal_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # not available on this platform / not the main thread
            _LOGGER.debug("can't install handler for %s", sig.name)


async def serve(config: Config, stop: asyncio.Event) -> None:
    """Run the updater and the HTTP server until `stop` is set."""
    cache = CacheStore(max_blob_size=config.max_blob_size)
    runner = web.AppRunner(create_app(cache, config.path))
    await runner.setup()
    site = web.TCPSite(runner, config.host, config.port)

    connector = aiohttp.TCPConnector(limit=config.concurrency, limit_per_host=2)
    async with aiohttp.ClientSession(connector=connector) as session:
        updater = Updater(
            RipeProbe(session, config.ripe_search, config.ripe_endpoint, config.timeout),
            BlocklistFetcher(session, config.timeout),
            config.sources,
            cache,
            build_status_sink(config),
            interval=config.interval,
            concurrency=config.concurrency,
        )
        try:
            await site.start()
            _LOGGER.info(
                "serving blocklist on http://%s:%d%s (%d external source(s), refresh every %gs)",
                config.host,
                config.port,
                config.path,
                len(config.sources),
                config.interval,
            )
            await updater.run(stop)
        finally:
            await runner.cleanup()


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point."""
    try:
        config = parse_config(argv)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)
    _LOGGER.info("btblocklist %s starting", __version__)

    async def _run() -> None:
        stop = asyncio.Event()
        install_signal_handlers(stop)
        await serve(config, stop)

    try:
        asyncio.run(_run())
    except OSError as e:
        _LOGGER.error("can't start: %s", e)
        return 1
    except KeyboardInterrupt:
        pass
    _LOGGER.info("stopped")
    return 0


if __name__ == "__main__":
    sys.exit(main())
