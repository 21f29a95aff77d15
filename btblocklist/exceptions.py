"""
exceptions.py - Error taxonomy for the blocklist updater

Only CompileError and PublishError discard a batch's content update.
ProbeError is recovered per source, StatusReportError is logged and ignored.
"""
from __future__ import annotations


class BlocklistError(Exception):
    """Base class for all btblocklist errors."""


class ConfigError(BlocklistError, ValueError):
    """Invalid configuration value."""


class ProbeError(BlocklistError):
    """A single source could not be fetched or decoded."""

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source


class CompileError(BlocklistError):
    """Merging or compressing the cached lines failed."""


class PublishError(BlocklistError):
    """The cache refused the compiled blob."""


class StatusReportError(BlocklistError):
    """A status sink failed to accept the summary."""
