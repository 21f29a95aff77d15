"""
downloader.py - Async External Blocklist Probe with Conditional Fetching

Fetches the configured external blocklists, concurrently, and reports for
each one either its fresh cleaned lines or "unchanged" (None).

Change detection, per location:
    1. HTTP sources send If-None-Match / If-Modified-Since from the last
       successful response; a 304 means unchanged.
    2. Any source whose raw body hashes to the previous SHA-256 digest is
       unchanged as well (servers that ignore conditional requests, files).

Locations are http(s):// URLs, file:// URLs or plain filesystem paths.
No retries happen here: a failed probe leaves the source's previous lines
in place and the next scheduled batch tries again.
"""
from __future__ import annotations

import asyncio
import hashlib
import logging
import time
from collections.abc import Mapping
from pathlib import Path
from typing import NamedTuple, Protocol
from urllib.parse import unquote, urlparse

import aiofiles
import aiohttp

from btblocklist.cleaner import clean_text
from btblocklist.exceptions import ProbeError

_LOGGER = logging.getLogger(__name__)

# Default configuration
DEFAULT_TIMEOUT = 30
DEFAULT_CONCURRENCY = 8


class FetchResult(NamedTuple):
    """Result of probing one external source."""
    name: str
    location: str
    lines: list[str] | None
    error: str | None = None

    @property
    def changed(self) -> bool:
        return self.lines is not None

    @property
    def success(self) -> bool:
        return self.error is None


class ExternalProbe(Protocol):
    async def probe(self, name: str, location: str) -> list[str] | None: ...


def is_http_location(location: str) -> bool:
    return urlparse(location).scheme in ("http", "https")


def location_to_path(location: str) -> Path:
    """Map a file:// URL or plain path to a filesystem path."""
    parsed = urlparse(location)
    if parsed.scheme == "file":
        return Path(unquote(parsed.netloc + parsed.path))
    return Path(location)


class BlocklistFetcher:
    """
    Probe for external blocklists.

    Keeps ETag/Last-Modified headers and body digests in memory, keyed by
    location, for the lifetime of the process.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._session = session
        self._timeout = timeout
        self._state: dict[str, dict[str, str]] = {}

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _fetch_http(self, name: str, location: str) -> bytes | None:
        url_state = self._state.get(location, {})
        headers = {}
        if "etag" in url_state:
            headers["If-None-Match"] = url_state["etag"]
        if "last_modified" in url_state:
            headers["If-Modified-Since"] = url_state["last_modified"]

        try:
            async with self._session.get(
                location,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                allow_redirects=True,
            ) as response:
                # 304 Not Modified - keep cached lines
                if response.status == 304:
                    return None
                if response.status >= 400:
                    raise ProbeError(name, f"HTTP {response.status}")
                content = await response.read()
                new_state = dict(url_state)
                new_state.pop("etag", None)
                new_state.pop("last_modified", None)
                if "ETag" in response.headers:
                    new_state["etag"] = response.headers["ETag"]
                if "Last-Modified" in response.headers:
                    new_state["last_modified"] = response.headers["Last-Modified"]
                new_state["fetched_at"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
                self._state[location] = new_state
                return content
        except asyncio.TimeoutError as e:
            raise ProbeError(name, "Timeout") from e
        except aiohttp.ClientError as e:
            raise ProbeError(name, str(e) or type(e).__name__) from e

    async def _fetch_file(self, name: str, location: str) -> bytes:
        path = location_to_path(location)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise ProbeError(name, f"can't read {path}: {e.strerror or e}") from e

    # ------------------------------------------------------------------
    # Probe
    # ------------------------------------------------------------------

    async def probe(self, name: str, location: str) -> list[str] | None:
        """
        Fetch one source.

        Returns:
            The cleaned lines in source order, or None when unchanged

        Raises:
            ProbeError: fetch or decode failed
        """
        if is_http_location(location):
            content = await self._fetch_http(name, location)
        else:
            content = await self._fetch_file(name, location)
        if content is None:
            _LOGGER.debug("'%s' not modified", name)
            return None

        digest = hashlib.sha256(content).hexdigest()
        url_state = self._state.setdefault(location, {})
        if url_state.get("digest") == digest:
            _LOGGER.debug("'%s' content unchanged", name)
            return None

        try:
            body = content.decode("utf-8")
        except UnicodeDecodeError as e:
            self._state.pop(location, None)
            raise ProbeError(name, f"body is not valid UTF-8: {e}") from e
        lines, stats = clean_text(body)
        url_state["digest"] = digest
        _LOGGER.info(
            "'%s' updated: %d line(s) kept of %d (%d comment(s), %d empty)",
            name,
            stats.kept_lines,
            stats.total_lines,
            stats.comments_removed,
            stats.empty_removed,
        )
        return lines


async def fetch_all(
    probe: ExternalProbe,
    sources: Mapping[str, str],
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[FetchResult]:
    """
    Probe all sources concurrently with rate limiting.

    Every probe is joined before returning; failures are captured in the
    result instead of raised. Results are ordered by source name.
    """
    semaphore = asyncio.Semaphore(concurrency)
    names = sorted(sources)

    async def probe_with_semaphore(name: str) -> list[str] | None:
        async with semaphore:
            return await probe.probe(name, sources[name])

    results = await asyncio.gather(
        *(probe_with_semaphore(name) for name in names), return_exceptions=True
    )

    final_results = []
    for name, result in zip(names, results):
        if isinstance(result, Exception):
            final_results.append(FetchResult(name, sources[name], None, error=str(result)))
        elif isinstance(result, BaseException):
            raise result
        else:
            final_results.append(FetchResult(name, sources[name], result))
    return final_results
