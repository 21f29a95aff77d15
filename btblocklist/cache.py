"""
cache.py - Published snapshot with reader/writer exclusion

The cache holds exactly one artifact: the latest compressed blob together
with its two timestamps. Readers always get one consistent Snapshot; a
commit replaces the whole triple under the write lock.

Invariants:
    - last_modified <= last_batch whenever both are set
    - blob is None only until the first successful compilation
"""
from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime

from btblocklist.exceptions import PublishError


class ReadWriteLock:
    """
    Many concurrent readers or exactly one writer.

    Writers are preferred: once a writer waits, new readers queue behind it
    so a steady stream of reads cannot starve a publish.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class Snapshot:
    """The published blob and its timestamps, read as one unit."""
    blob: bytes | None = None
    last_modified: datetime | None = None
    last_batch: datetime | None = None


class CacheStore:
    """Owner of the published snapshot, shared by the updater and the server."""

    def __init__(self, max_blob_size: int | None = None) -> None:
        self._lock = ReadWriteLock()
        self._snapshot = Snapshot()
        self._max_blob_size = max_blob_size

    def read(self) -> Snapshot:
        with self._lock.read():
            return self._snapshot

    def publish(self, blob: bytes, modified_at: datetime) -> Snapshot:
        """
        Replace the blob and advance the content timestamp.

        The batch timestamp is pulled forward with it when needed so the
        snapshot never shows a modification newer than the last batch.

        Raises:
            PublishError: blob exceeds the configured size limit
        """
        if self._max_blob_size is not None and len(blob) > self._max_blob_size:
            raise PublishError(
                f"compiled blob is {len(blob)} bytes, limit is {self._max_blob_size}"
            )
        with self._lock.write():
            last_batch = self._snapshot.last_batch
            if last_batch is None or last_batch < modified_at:
                last_batch = modified_at
            self._snapshot = Snapshot(blob=blob, last_modified=modified_at, last_batch=last_batch)
            return self._snapshot

    def mark_batch(self, batch_at: datetime) -> Snapshot:
        """
        Record a finished batch attempt without touching the blob.

        A wall clock stepping back never puts the batch time before the
        last modification.
        """
        with self._lock.write():
            current = self._snapshot
            if current.last_modified is not None and batch_at < current.last_modified:
                batch_at = current.last_modified
            self._snapshot = Snapshot(
                blob=current.blob, last_modified=current.last_modified, last_batch=batch_at
            )
            return self._snapshot
