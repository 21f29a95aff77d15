from __future__ import annotations

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from btblocklist.downloader import BlocklistFetcher, fetch_all, location_to_path
from btblocklist.exceptions import ProbeError


def test_location_to_path() -> None:
    assert str(location_to_path("file:///etc/lists/a.txt")) == "/etc/lists/a.txt"
    assert str(location_to_path("/etc/lists/a.txt")) == "/etc/lists/a.txt"


@pytest.mark.asyncio
async def test_file_source_changes_only_when_content_changes(tmp_path) -> None:
    path = tmp_path / "feodo.txt"
    path.write_text("# Feodo Tracker\n9.9.9.9\n8.8.8.8\n")

    async with aiohttp.ClientSession() as session:
        fetcher = BlocklistFetcher(session)
        assert await fetcher.probe("feodo", path.as_uri()) == ["9.9.9.9", "8.8.8.8"]
        assert await fetcher.probe("feodo", str(path)) == ["9.9.9.9", "8.8.8.8"]
        assert await fetcher.probe("feodo", str(path)) is None

        path.write_text("9.9.9.9\n")
        assert await fetcher.probe("feodo", str(path)) == ["9.9.9.9"]


@pytest.mark.asyncio
async def test_missing_file_raises(tmp_path) -> None:
    async with aiohttp.ClientSession() as session:
        fetcher = BlocklistFetcher(session)
        with pytest.raises(ProbeError, match="missing"):
            await fetcher.probe("missing", str(tmp_path / "nope.txt"))


@pytest.mark.asyncio
async def test_http_source_uses_etag() -> None:
    seen: list[str | None] = []

    async def handler(request: web.Request) -> web.Response:
        seen.append(request.headers.get("If-None-Match"))
        if request.headers.get("If-None-Match") == '"v1"':
            return web.Response(status=304)
        return web.Response(text="9.9.9.9\n8.8.8.8\n", headers={"ETag": '"v1"'})

    app = web.Application()
    app.router.add_get("/list.txt", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        async with aiohttp.ClientSession() as session:
            fetcher = BlocklistFetcher(session, timeout=5)
            url = str(server.make_url("/list.txt"))
            assert await fetcher.probe("feodo", url) == ["9.9.9.9", "8.8.8.8"]
            assert await fetcher.probe("feodo", url) is None
    finally:
        await server.close()

    assert seen == [None, '"v1"']


@pytest.mark.asyncio
async def test_http_error_raises() -> None:
    async def handler(request: web.Request) -> web.Response:
        return web.Response(status=404)

    app = web.Application()
    app.router.add_get("/list.txt", handler)
    server = TestServer(app)
    await server.start_server()
    try:
        async with aiohttp.ClientSession() as session:
            fetcher = BlocklistFetcher(session)
            with pytest.raises(ProbeError, match="HTTP 404"):
                await fetcher.probe("feodo", str(server.make_url("/list.txt")))
    finally:
        await server.close()


class _FakeProbe:
    def __init__(self, results: dict[str, list[str] | None | Exception]) -> None:
        self.results = results

    async def probe(self, name: str, location: str) -> list[str] | None:
        result = self.results[name]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.mark.asyncio
async def test_fetch_all_captures_failures_and_sorts() -> None:
    probe = _FakeProbe({
        "zeta": ["1"],
        "alpha": ProbeError("alpha", "Timeout"),
        "mid": None,
    })

    results = await fetch_all(probe, {"zeta": "z", "alpha": "a", "mid": "m"}, concurrency=2)

    assert [r.name for r in results] == ["alpha", "mid", "zeta"]
    assert not results[0].success and "Timeout" in results[0].error
    assert results[1].success and not results[1].changed
    assert results[2].changed and results[2].lines == ["1"]
