"""
btblocklist package - Merged IP blocklist service

Modules:
    ripe: RIPE database full-text search probe
    downloader: External blocklists with ETag/Last-Modified change detection
    cleaner: Strip comments and blank lines from external lists
    state: Latest lines per source
    compiler: Deterministic merge and gzip compression
    cache: Published snapshot with reader/writer locking
    status: Per-batch status line and sinks
    updater: Refresh loop and batch orchestration
    server: HTTP read side
    service: Command-line entry point
"""

__version__ = "1.0.0"
