"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Shared in-flight map, argument validation and bookkeeping for coalescers.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, fields
from typing import Any, Generic, TypeVar

from . import metrics as names
from .contracts import CoalescerStats, CoalescingPolicy
from .errors import InvalidArgumentError
from .metrics import CoalescerMetrics, NoOpCoalescerMetrics

EntryT = TypeVar("EntryT", bound="BaseEntry")


@dataclass(eq=False, slots=True)
class BaseEntry:
    """One in-flight epoch for a key. Compared by identity only."""

    key: str
    started_at_s: float
    waiters: int = 1

    def elapsed_s(self) -> float:
        return time.monotonic() - self.started_at_s


@dataclass(slots=True)
class _Tally:
    """Data type for tally."""

    started: int = 0
    joined: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    abandoned: int = 0


_METRIC_NAMES = {
    "started": names.STARTED,
    "joined": names.JOINED,
    "succeeded": names.SUCCEEDED,
    "failed": names.FAILED,
    "cancelled": names.CANCELLED,
    "abandoned": names.ABANDONED,
}


def validate_request(key: Any, factory: Any) -> None:
    """Reject caller mistakes before anything is registered."""
    if not isinstance(key, str) or not key:
        raise InvalidArgumentError("Key cannot be null or empty.", argument="key")
    if factory is None:
        raise InvalidArgumentError("Factory cannot be None.", argument="factory")
    if not callable(factory):
        raise InvalidArgumentError("Factory must be callable.", argument="factory")


class BaseCoalescer(Generic[EntryT]):
    """
    Key -> in-flight entry map with an atomic claim-or-join step.

    Subclasses decide how an entry runs its factory and how waiters block.
    Every mutation of the map happens under one `threading.Lock` and never
    spans a suspension point, so claim-or-join and release are indivisible.
    Metrics sinks may be called under that lock and must not call back into
    the coalescer.
    """

    def __init__(
        self,
        *,
        name: str = "default",
        policy: CoalescingPolicy | None = None,
        metrics: CoalescerMetrics | None = None,
    ) -> None:
        self.name = name
        self.policy = policy or CoalescingPolicy()
        self._metrics: CoalescerMetrics = metrics or NoOpCoalescerMetrics()
        self._entries: dict[str, EntryT] = {}
        self._lock = threading.Lock()
        self._tally = _Tally()

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._entries)

    def is_in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def keys(self) -> list[str]:
        """Return keys with a computation currently in flight."""
        with self._lock:
            return list(self._entries)

    def stats(self) -> CoalescerStats:
        with self._lock:
            counts = {f.name: getattr(self._tally, f.name) for f in fields(_Tally)}
            return CoalescerStats(in_flight=len(self._entries), **counts)

    def _claim_or_join(self, key: str, create) -> tuple[EntryT, bool]:
        """
        Return the entry bound to `key` and whether this caller created it.

        `create` is only invoked when no entry exists and runs inside the
        critical section; it must not block or run the factory.

        The metrics sink is called before the map or the entry changes, so a
        raising sink leaves no registration behind.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._count("joined")
                entry.waiters += 1
                self._tally.joined += 1
                return entry, False
            self._count("started")
            entry = create()
            self._entries[key] = entry
            self._tally.started += 1
            return entry, True

    def _release(self, entry: EntryT) -> bool:
        """Remove `entry` only if it still occupies its key."""
        with self._lock:
            if self._entries.get(entry.key) is entry:
                del self._entries[entry.key]
                return True
            return False

    def _leave(self, entry: EntryT) -> int:
        """Drop one waiter from `entry` and return how many remain."""
        with self._lock:
            entry.waiters = max(0, entry.waiters - 1)
            return entry.waiters

    def _record(self, outcome: str) -> None:
        with self._lock:
            setattr(self._tally, outcome, getattr(self._tally, outcome) + 1)
        self._count(outcome)

    def _count(self, outcome: str) -> None:
        self._metrics.incr(_METRIC_NAMES[outcome], tags={"coalescer": self.name})
