"""
compiler.py - Merge and compress the cached source lines

This module is the core of the refresh pipeline. It takes the latest lines
of every source and produces the single gzip blob served to clients.

OUTPUT FORMAT (after decompression):

    # BTBlocklist RIPE search
    <ripe line 1>
    ...
    <ripe line n>
    <external source "a" lines, newline joined>
    <external source "b" lines, newline joined>

    Every section ends with a newline. External sources are written in
    ascending name order; lines inside a section keep the order received.

DETERMINISM:
    The gzip member is written with mtime=0 and no file name, so two
    compilations of identical state are byte-identical.
"""
from __future__ import annotations

import gzip
import io
import logging
import time
import zlib
from collections.abc import Sequence
from dataclasses import dataclass

from btblocklist.exceptions import CompileError

_LOGGER = logging.getLogger(__name__)

# ============================================================================
# CONFIGURATION
# ============================================================================

RIPE_HEADER = "# BTBlocklist RIPE search\n"
COMPRESS_LEVEL = 9  # best compression


# ============================================================================
# DATA STRUCTURES
# ============================================================================

@dataclass
class CompileStats:
    """Statistics from one compilation."""
    ripe_ranges: int = 0
    external_lists: int = 0
    external_lines: int = 0
    raw_size: int = 0
    compressed_size: int = 0
    duration: float = 0.0


@dataclass(frozen=True)
class CompiledBlob:
    """Immutable compressed output plus the counts it was built from."""
    data: bytes
    stats: CompileStats


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def format_size(size: float) -> str:
    """Human readable byte size: 1536 -> '1.50 KiB'."""
    for unit in ("B", "KiB", "MiB", "GiB"):
        if size < 1024 or unit == "GiB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} GiB"


def _write_section(compressor: gzip.GzipFile, label: str, lines: Sequence[str]) -> int:
    chunk = ("\n".join(lines) + "\n").encode("utf-8")
    try:
        compressor.write(chunk)
    except (OSError, zlib.error) as e:
        raise CompileError(f"can't write {label} lines to the compressor: {e}") from e
    return len(chunk)


# ============================================================================
# MAIN COMPILATION
# ============================================================================

def compile_blob(
    ripe_lines: Sequence[str],
    external: Sequence[tuple[str, Sequence[str]]],
) -> CompiledBlob:
    """
    Merge all sections into one gzip stream.

    Args:
        ripe_lines: RIPE search lines, written after the header
        external: (name, lines) pairs; sorted by name here regardless of
            the order given

    Returns:
        CompiledBlob with the compressed bytes and line counts

    Raises:
        CompileError: on any encoding or compression failure. Nothing is
            returned in that case.
    """
    start = time.monotonic()
    _LOGGER.info("Merging and compressing all cached results")
    stats = CompileStats(
        ripe_ranges=len(ripe_lines),
        external_lists=len(external),
    )

    buffer = io.BytesIO()
    try:
        with gzip.GzipFile(
            filename="", mode="wb", compresslevel=COMPRESS_LEVEL, fileobj=buffer, mtime=0
        ) as compressor:
            try:
                compressor.write(RIPE_HEADER.encode("utf-8"))
            except (OSError, zlib.error) as e:
                raise CompileError(f"can't write RIPE search header: {e}") from e
            stats.raw_size += len(RIPE_HEADER)

            stats.raw_size += _write_section(compressor, "RIPE", ripe_lines)

            for name, lines in sorted(external, key=lambda item: item[0]):
                stats.external_lines += len(lines)
                stats.raw_size += _write_section(compressor, f"'{name}'", lines)
    except UnicodeEncodeError as e:
        raise CompileError(f"can't encode cached lines: {e}") from e
    except (OSError, zlib.error) as e:
        raise CompileError(f"can't flush remaining bytes from the compressor: {e}") from e

    data = buffer.getvalue()
    stats.compressed_size = len(data)
    stats.duration = time.monotonic() - start

    _LOGGER.info(
        "%d range(s) from RIPE search and %d line(s) from %d external blocklist(s) "
        "compressed to %s in %.3fs",
        stats.ripe_ranges,
        stats.external_lines,
        stats.external_lists,
        format_size(stats.compressed_size),
        stats.duration,
    )
    return CompiledBlob(data=data, stats=stats)
