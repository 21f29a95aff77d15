"""
ripe.py - RIPE database full-text search probe

Queries the RIPE database full-text search for a free-text, multi-term
query and turns every matching address object into one P2P blocklist line:

    inetnum  1.2.3.0 - 1.2.3.255, netname EXAMPLE-NET
        -> "EXAMPLE-NET:1.2.3.0-1.2.3.255"
    route    1.2.3.0/24, descr Example, origin AS1
        -> "Example (AS1):1.2.3.0-1.2.3.255"

The probe reports None ("no change") when the rebuilt lines equal the
previous ones, so an unchanged search never triggers a recompilation.
"""
from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Final

import aiohttp

from btblocklist.exceptions import ProbeError

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENDPOINT: Final[str] = "https://apps.db.ripe.net/db-web-ui/api/rest/fulltextsearch/select"
ROWS_PER_PAGE: Final[int] = 100
SOURCE_NAME: Final[str] = "RIPE"

RANGE_OBJECTS: Final[frozenset[str]] = frozenset({"inetnum", "inet6num"})
ROUTE_OBJECTS: Final[frozenset[str]] = frozenset({"route", "route6"})


@dataclass(frozen=True)
class Range:
    """One named address range returned by the search."""
    name: str
    range: str
    route: str = ""

    def to_line(self) -> str:
        label = f"{self.name} ({self.route})" if self.route else self.name
        return f"{label}:{normalize_range(self.range)}"


# ============================================================================
# QUERY / RESPONSE HANDLING
# ============================================================================

def build_query(search: str) -> str:
    """
    Join the search terms with AND.

    Example:
        >>> build_query("seedbox  hosting")
        '(seedbox AND hosting)'
    """
    return "(" + " AND ".join(search.split()) + ")"


def normalize_range(value: str) -> str:
    """
    Render a range as 'first-last'.

    Example:
        >>> normalize_range("10.0.0.0/30")
        '10.0.0.0-10.0.0.3'
        >>> normalize_range("1.2.3.0 - 1.2.3.255")
        '1.2.3.0-1.2.3.255'
    """
    value = value.strip()
    if "/" in value:
        try:
            network = ipaddress.ip_network(value, strict=False)
        except ValueError:
            return value
        return f"{network.network_address}-{network.broadcast_address}"
    if "-" in value:
        first, _, last = value.partition("-")
        return f"{first.strip()}-{last.strip()}"
    return value


def _doc_fields(doc: dict[str, Any]) -> dict[str, str]:
    fields: dict[str, str] = {}
    for entry in doc.get("doc", {}).get("strs", []):
        item = entry.get("str", {})
        name = item.get("name")
        # multi-valued attributes (descr) keep their first value
        if name and name not in fields:
            fields[name] = str(item.get("value", ""))
    return fields


def extract_ranges(payload: dict[str, Any]) -> tuple[list[Range], int]:
    """
    Extract ranges from one page of search results.

    Returns:
        (ranges, numFound)

    Raises:
        ValueError: payload does not look like a search result
    """
    result = payload.get("result")
    if not isinstance(result, dict):
        raise ValueError("missing 'result' object")
    docs = result.get("docs", [])
    if not isinstance(docs, list):
        raise ValueError("'docs' is not a list")

    ranges: list[Range] = []
    for doc in docs:
        fields = _doc_fields(doc)
        object_type = fields.get("object-type", "")
        if object_type in RANGE_OBJECTS:
            value = fields.get(object_type) or fields.get("lookup-key", "")
            name = fields.get("netname") or value
            ranges.append(Range(name=name, range=value))
        elif object_type in ROUTE_OBJECTS:
            value = fields.get(object_type) or fields.get("lookup-key", "")
            name = fields.get("descr") or fields.get("netname") or value
            ranges.append(Range(name=name, range=value, route=fields.get("origin", "")))
    return ranges, int(result.get("numFound", len(docs)))


# ============================================================================
# PROBE
# ============================================================================

class RipeProbe:
    """Runs the configured search and reports new lines or None."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        search: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = 30,
    ) -> None:
        self._session = session
        self._search = search
        self._endpoint = endpoint
        self._timeout = timeout
        self._last_lines: list[str] | None = None

    async def search(self) -> list[Range]:
        """Fetch every page of results for the configured search."""
        query = build_query(self._search)
        ranges: list[Range] = []
        start = 0
        while True:
            params = {"q": query, "start": str(start), "rows": str(ROWS_PER_PAGE)}
            try:
                async with self._session.get(
                    self._endpoint,
                    params=params,
                    headers={"Accept": "application/json"},
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as response:
                    if response.status >= 400:
                        raise ProbeError(SOURCE_NAME, f"HTTP {response.status}")
                    payload = await response.json(content_type=None)
            except (aiohttp.ClientError, TimeoutError) as e:
                raise ProbeError(SOURCE_NAME, f"search request failed: {e!r}") from e
            except ValueError as e:
                raise ProbeError(SOURCE_NAME, f"can't decode search result: {e}") from e

            try:
                page, found = extract_ranges(payload)
            except (ValueError, TypeError, AttributeError) as e:
                raise ProbeError(SOURCE_NAME, f"unexpected search result: {e}") from e
            ranges.extend(page)
            start += ROWS_PER_PAGE
            if start >= found:
                return ranges

    async def probe(self) -> list[str] | None:
        """
        Returns:
            The new ordered lines, or None when nothing changed

        Raises:
            ProbeError: the search failed
        """
        if not self._search.strip():
            return None
        lines = [r.to_line() for r in await self.search()]
        if lines == self._last_lines:
            _LOGGER.debug("RIPE search unchanged (%d range(s))", len(lines))
            return None
        self._last_lines = lines
        _LOGGER.info("RIPE search returned %d range(s)", len(lines))
        return lines
