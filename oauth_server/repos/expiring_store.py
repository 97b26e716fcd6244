"""Keyed in-memory store with per-record expiry.

Holds authorization codes and access tokens.  Two properties matter:

  1. Expiry is checked at READ time.  ``get`` and ``pop`` treat a record
     whose deadline has passed as absent (and evict it), so correctness
     never depends on when the background sweep last ran.  ``sweep`` only
     reclaims memory.

  2. ``pop`` is atomic.  Sync FastAPI handlers run in a thread pool, so
     two requests redeeming the same authorization code can interleave.
     Read-and-remove happens under one lock acquisition: exactly one
     caller gets the record, every other caller sees None.

The clock is injectable so tests can move time without sleeping.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar

V = TypeVar("V")

Clock = Callable[[], float]


class ExpiringStore(Protocol[V]):
    def now(self) -> float: ...
    def put(self, key: str, value: V, ttl: float) -> None: ...
    def get(self, key: str) -> V | None: ...
    def pop(self, key: str, *, include_expired: bool = False) -> V | None: ...
    def delete(self, key: str) -> None: ...
    def sweep(self) -> int: ...
    def __len__(self) -> int: ...


@dataclass(frozen=True, slots=True)
class _Entry(Generic[V]):
    value: V
    expires_at: float


class InMemoryExpiringStore(Generic[V]):
    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry[V]] = {}
        self._lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def put(self, key: str, value: V, ttl: float) -> None:
        entry = _Entry(value=value, expires_at=self._clock() + ttl)
        with self._lock:
            self._entries[key] = entry

    def get(self, key: str) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.expires_at < self._clock():
                del self._entries[key]
                return None
            return entry.value

    def pop(self, key: str, *, include_expired: bool = False) -> V | None:
        """Remove the record and return it, or None if absent or expired.

        The record is removed in both cases.  With ``include_expired`` an
        expired record is returned as well, for callers that report expiry
        differently from absence.
        """
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is None:
            return None
        if not include_expired and entry.expires_at < self._clock():
            return None
        return entry.value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired record.  Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.expires_at < now]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
