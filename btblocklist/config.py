"""
config.py - Service configuration

Settings come from command-line flags; every flag falls back to a
BTBLOCKLIST_* environment variable, then to a built-in default.

Sources file format (one source per line):

    # name      location
    feodo       https://feodotracker.abuse.ch/downloads/ipblocklist.txt
    local       file:///etc/btblocklist/extra.txt
"""
from __future__ import annotations

import argparse
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from btblocklist.downloader import DEFAULT_CONCURRENCY, DEFAULT_TIMEOUT
from btblocklist.exceptions import ConfigError
from btblocklist.ripe import DEFAULT_ENDPOINT
from btblocklist.server import DEFAULT_PATH

ENV_PREFIX = "BTBLOCKLIST_"
DEFAULT_INTERVAL = 3600
DEFAULT_LISTEN = "0.0.0.0:8080"


@dataclass
class Config:
    interval: float = DEFAULT_INTERVAL
    ripe_search: str = ""
    ripe_endpoint: str = DEFAULT_ENDPOINT
    sources: dict[str, str] = field(default_factory=dict)
    host: str = "0.0.0.0"
    port: int = 8080
    path: str = DEFAULT_PATH
    status_file: Path | None = None
    timeout: float = DEFAULT_TIMEOUT
    concurrency: int = DEFAULT_CONCURRENCY
    max_blob_size: int | None = None
    log_level: str = "INFO"


def parse_source_line(line: str) -> tuple[str, str] | None:
    """
    Parse one 'name location' line; None for blanks and comments.

    Example:
        >>> parse_source_line("feodo https://example.org/list.txt")
        ('feodo', 'https://example.org/list.txt')
        >>> parse_source_line("# comment") is None
        True
    """
    line = line.strip()
    if not line or line.startswith("#"):
        return None
    if "=" in line.split()[0]:
        name, _, location = line.partition("=")
    else:
        parts = line.split(None, 1)
        if len(parts) != 2:
            raise ConfigError(f"source line needs a name and a location: {line!r}")
        name, location = parts
    name, location = name.strip(), location.strip()
    if not name or not location:
        raise ConfigError(f"source line needs a name and a location: {line!r}")
    return name, location


def add_source(sources: dict[str, str], name: str, location: str) -> None:
    if name in sources:
        raise ConfigError(f"duplicate source name: {name}")
    sources[name] = location


def load_sources(sources_file: str | os.PathLike[str]) -> dict[str, str]:
    """Load named sources from a file, skipping comments and empty lines."""
    path = Path(sources_file)
    sources: dict[str, str] = {}
    try:
        with open(path, encoding="utf-8") as f:
            for line in f:
                parsed = parse_source_line(line)
                if parsed is not None:
                    add_source(sources, *parsed)
    except OSError as e:
        raise ConfigError(f"can't read sources file {path}: {e.strerror or e}") from e
    return sources


def parse_listen(value: str) -> tuple[str, int]:
    host, sep, port = value.rpartition(":")
    if not sep:
        host, port = "", value
    try:
        port_number = int(port)
    except ValueError as e:
        raise ConfigError(f"invalid listen address: {value!r}") from e
    if not 0 < port_number < 65536:
        raise ConfigError(f"invalid listen port: {port_number}")
    return host.strip("[]") or "0.0.0.0", port_number


def _positive(name: str, value: str) -> float:
    try:
        number = float(value)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {value!r}") from e
    if number <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return number


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    def env(key: str, default: str | None = None) -> str | None:
        return environ.get(ENV_PREFIX + key, default)

    parser = argparse.ArgumentParser(
        prog="btblocklist",
        description="Serve a periodically refreshed, merged and compressed IP blocklist",
    )
    parser.add_argument("--interval", default=env("INTERVAL", str(DEFAULT_INTERVAL)),
                        help="Refresh interval in seconds")
    parser.add_argument("--ripe-search", default=env("RIPE_SEARCH", ""),
                        help="Free-text RIPE database search, terms are ANDed")
    parser.add_argument("--ripe-endpoint", default=env("RIPE_ENDPOINT", DEFAULT_ENDPOINT),
                        help="RIPE full-text search endpoint")
    parser.add_argument("--sources", default=env("SOURCES"),
                        help="Path to a file of 'name location' lines")
    parser.add_argument("--source", action="append", default=[], metavar="NAME=LOCATION",
                        help="External blocklist (repeatable)")
    parser.add_argument("--listen", default=env("LISTEN", DEFAULT_LISTEN),
                        help="host:port of the HTTP server")
    parser.add_argument("--path", default=env("PATH", DEFAULT_PATH),
                        help="URL path of the blocklist")
    parser.add_argument("--status-file", default=env("STATUS_FILE"),
                        help="File receiving the status line after every batch")
    parser.add_argument("--timeout", default=env("TIMEOUT", str(DEFAULT_TIMEOUT)),
                        help="Per-request probe timeout in seconds")
    parser.add_argument("--concurrency", default=env("CONCURRENCY", str(DEFAULT_CONCURRENCY)),
                        help="Max concurrent external probes")
    parser.add_argument("--max-blob-size", default=env("MAX_BLOB_SIZE"),
                        help="Refuse to publish blobs larger than this many bytes")
    parser.add_argument("--log-level", default=env("LOG_LEVEL", "INFO"),
                        help="Logging level")
    return parser


def parse_config(
    argv: Sequence[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """
    Build the Config from flags and environment.

    Raises:
        ConfigError: any invalid value
    """
    args = build_parser(os.environ if environ is None else environ).parse_args(argv)

    sources: dict[str, str] = {}
    if args.sources:
        sources.update(load_sources(args.sources))
    for item in args.source:
        name, sep, location = item.partition("=")
        if not sep or not name.strip() or not location.strip():
            raise ConfigError(f"--source expects NAME=LOCATION, got {item!r}")
        add_source(sources, name.strip(), location.strip())

    host, port = parse_listen(args.listen)
    path = args.path if args.path.startswith("/") else "/" + args.path
    if path == "/status":
        raise ConfigError("blocklist path can't be /status")

    max_blob_size = None
    if args.max_blob_size:
        max_blob_size = int(_positive("max-blob-size", args.max_blob_size))

    log_level = args.log_level.upper()
    if log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        raise ConfigError(f"unknown log level: {args.log_level}")

    return Config(
        interval=_positive("interval", args.interval),
        ripe_search=args.ripe_search,
        ripe_endpoint=args.ripe_endpoint,
        sources=sources,
        host=host,
        port=port,
        path=path,
        status_file=Path(args.status_file) if args.status_file else None,
        timeout=_positive("timeout", args.timeout),
        concurrency=max(1, int(_positive("concurrency", args.concurrency))),
        max_blob_size=max_blob_size,
        log_level=log_level,
    )
