"""
server.py - Read side: serve the published blocklist over HTTP

GET <path>    the gzip blob (503 until the first successful batch)
GET /status   snapshot metadata as JSON

Each request reads one Snapshot from the cache and answers from it only,
so the body and its Last-Modified header always belong together.
"""
from __future__ import annotations

from datetime import UTC, datetime
from email.utils import format_datetime, parsedate_to_datetime

from aiohttp import web

from btblocklist.cache import CacheStore

DEFAULT_PATH = "/blocklist.gz"
CACHE_KEY = web.AppKey("cache", CacheStore)


def _not_modified_since(request: web.Request, last_modified: datetime | None) -> bool:
    header = request.headers.get("If-Modified-Since")
    if not header or last_modified is None:
        return False
    try:
        since = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return False
    if since.tzinfo is None:
        return False
    return last_modified.replace(microsecond=0) <= since


async def handle_blocklist(request: web.Request) -> web.StreamResponse:
    snapshot = request.app[CACHE_KEY].read()
    if snapshot.blob is None:
        raise web.HTTPServiceUnavailable(text="blocklist not compiled yet\n")

    headers = {}
    if snapshot.last_modified is not None:
        headers["Last-Modified"] = format_datetime(snapshot.last_modified.astimezone(UTC), usegmt=True)
    if _not_modified_since(request, snapshot.last_modified):
        raise web.HTTPNotModified(headers=headers)

    if "gzip" in request.headers.get("Accept-Encoding", ""):
        headers["Content-Encoding"] = "gzip"
        content_type = "text/plain"
        charset = "utf-8"
    else:
        content_type = "application/gzip"
        charset = None
    return web.Response(
        body=snapshot.blob, headers=headers, content_type=content_type, charset=charset
    )


async def handle_status(request: web.Request) -> web.Response:
    snapshot = request.app[CACHE_KEY].read()
    return web.json_response({
        "last_modified": snapshot.last_modified.isoformat() if snapshot.last_modified else None,
        "last_update": snapshot.last_batch.isoformat() if snapshot.last_batch else None,
        "size": len(snapshot.blob) if snapshot.blob is not None else 0,
    })


def create_app(cache: CacheStore, path: str = DEFAULT_PATH) -> web.Application:
    app = web.Application()
    app[CACHE_KEY] = cache
    app.router.add_get(path, handle_blocklist)
    app.router.add_get("/status", handle_status)
    return app
