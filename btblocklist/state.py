"""
state.py - Latest known lines per source

One slot for the RIPE search, one slot per configured external source.
Slots are replaced wholesale by probe results and never partially updated.
The set of external names is fixed when the store is created.

Only the batch sequence touches this store; batches never overlap, so it
carries no lock of its own.
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import NamedTuple


class BatchCounters(NamedTuple):
    """Line counts derived from the store at the end of a batch."""
    ripe_ranges: int
    external_lists: int
    external_lines: int


class StateStore:
    """Holds the RIPE lines and the lines of every external source."""

    def __init__(self, external_names: Iterable[str]) -> None:
        self._ripe: list[str] = []
        self._external: dict[str, list[str]] = {name: [] for name in external_names}

    @property
    def ripe_lines(self) -> list[str]:
        return self._ripe

    @property
    def external_names(self) -> list[str]:
        """External source names, ascending."""
        return sorted(self._external)

    def external_lines(self, name: str) -> list[str]:
        return self._external[name]

    def replace_ripe(self, lines: list[str]) -> None:
        self._ripe = list(lines)

    def replace_external(self, name: str, lines: list[str]) -> None:
        if name not in self._external:
            raise KeyError(f"unknown external source: {name}")
        self._external[name] = list(lines)

    def sections(self) -> tuple[list[str], list[tuple[str, list[str]]]]:
        """
        Snapshot the store for the compiler.

        Returns:
            (ripe_lines, [(name, lines), ...]) with external sources
            ordered by name so the merged output is reproducible.
        """
        return self._ripe, [(name, self._external[name]) for name in self.external_names]

    def counters(self) -> BatchCounters:
        return BatchCounters(
            ripe_ranges=len(self._ripe),
            external_lists=len(self._external),
            external_lines=sum(len(lines) for lines in self._external.values()),
        )
