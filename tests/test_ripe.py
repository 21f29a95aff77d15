from __future__ import annotations

from typing import Any

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from btblocklist.exceptions import ProbeError
from btblocklist.ripe import Range, RipeProbe, build_query, extract_ranges, normalize_range


def _doc(**fields: str) -> dict[str, Any]:
    return {"doc": {"strs": [{"str": {"name": k.replace("_", "-"), "value": v}} for k, v in fields.items()]}}


def _payload(docs: list[dict[str, Any]], found: int | None = None) -> dict[str, Any]:
    return {"result": {"numFound": len(docs) if found is None else found, "docs": docs}}


def test_build_query() -> None:
    assert build_query("seedbox hosting  france") == "(seedbox AND hosting AND france)"


def test_normalize_range() -> None:
    assert normalize_range("1.2.3.0/24") == "1.2.3.0-1.2.3.255"
    assert normalize_range("1.2.3.0 - 1.2.3.255") == "1.2.3.0-1.2.3.255"
    assert normalize_range("2001:db8::/126") == "2001:db8::-2001:db8::3"
    assert normalize_range("not-a/range") == "not-a/range"


def test_range_to_line() -> None:
    assert Range("A", "1.2.3.0/24", "AS1").to_line() == "A (AS1):1.2.3.0-1.2.3.255"
    assert Range("NET", "1.2.3.0 - 1.2.3.255").to_line() == "NET:1.2.3.0-1.2.3.255"


def test_extract_ranges_keeps_order_and_skips_other_objects() -> None:
    payload = _payload([
        _doc(object_type="route", route="1.2.3.0/24", descr="A", origin="AS1"),
        _doc(object_type="person", person="John Doe"),
        _doc(object_type="inetnum", inetnum="4.5.6.0 - 4.5.6.255", netname="B-NET"),
    ])

    ranges, found = extract_ranges(payload)
    assert ranges == [
        Range("A", "1.2.3.0/24", "AS1"),
        Range("B-NET", "4.5.6.0 - 4.5.6.255", ""),
    ]
    assert found == 3


def test_extract_ranges_rejects_garbage() -> None:
    with pytest.raises(ValueError):
        extract_ranges({"unexpected": True})


async def _start(handler) -> TestServer:
    app = web.Application()
    app.router.add_get("/select", handler)
    server = TestServer(app)
    await server.start_server()
    return server


@pytest.mark.asyncio
async def test_probe_paginates_and_reports_changes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("btblocklist.ripe.ROWS_PER_PAGE", 1)
    docs = [
        _doc(object_type="route", route="1.2.3.0/24", descr="A", origin="AS1"),
        _doc(object_type="route", route="4.5.6.0/24", descr="B", origin="AS2"),
    ]
    queries: list[str] = []

    async def handler(request: web.Request) -> web.Response:
        queries.append(request.query["q"])
        start = int(request.query["start"])
        return web.json_response(_payload(docs[start:start + 1], found=len(docs)))

    server = await _start(handler)
    try:
        async with aiohttp.ClientSession() as session:
            probe = RipeProbe(session, "seedbox hosting", str(server.make_url("/select")))
            first = await probe.probe()
            second = await probe.probe()
    finally:
        await server.close()

    assert first == ["A (AS1):1.2.3.0-1.2.3.255", "B (AS2):4.5.6.0-4.5.6.255"]
    assert second is None
    assert set(queries) == {"(seedbox AND hosting)"}


@pytest.mark.asyncio
async def test_probe_http_error_raises() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=502)

    server = await _start(handler)
    try:
        async with aiohttp.ClientSession() as session:
            probe = RipeProbe(session, "seedbox", str(server.make_url("/select")))
            with pytest.raises(ProbeError, match="HTTP 502"):
                await probe.probe()
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_probe_bad_json_raises() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(text="<html>maintenance</html>")

    server = await _start(handler)
    try:
        async with aiohttp.ClientSession() as session:
            probe = RipeProbe(session, "seedbox", str(server.make_url("/select")))
            with pytest.raises(ProbeError):
                await probe.probe()
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_empty_search_never_queries() -> None:
    async with aiohttp.ClientSession() as session:
        probe = RipeProbe(session, "   ", "http://127.0.0.1:9/unused")
        assert await probe.probe() is None
