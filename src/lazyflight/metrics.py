"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Metrics adapters for coalescer observability.
"""

from __future__ import annotations

import threading
import weakref
from collections.abc import Mapping
from typing import Any, Protocol

STARTED = "coalescer_started"
JOINED = "coalescer_joined"
SUCCEEDED = "coalescer_succeeded"
FAILED = "coalescer_failed"
CANCELLED = "coalescer_cancelled"
ABANDONED = "coalescer_abandoned"


class CoalescerMetrics(Protocol):
    """Minimal metrics interface for coalescer instrumentation."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        """Increment a counter metric."""


class NoOpCoalescerMetrics:
    """Default metrics sink when no metrics backend is provided."""

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        _ = name
        _ = value
        _ = tags


class InMemoryCoalescerMetrics:
    """Counter sink that keeps totals in process memory."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._totals: dict[tuple[str, tuple[tuple[str, str], ...]], int] = {}

    def incr(
        self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None
    ) -> None:
        row = (name, tuple(sorted((tags or {}).items())))
        with self._lock:
            self._totals[row] = self._totals.get(row, 0) + int(value)

    def total(self, name: str, *, tags: Mapping[str, str] | None = None) -> int:
        """
        Return the accumulated value for `name`.

        When `tags` is given only rows carrying exactly those tags are counted.
        """
        wanted = tuple(sorted(tags.items())) if tags is not None else None
        with self._lock:
            return sum(
                count
                for (row_name, row_tags), count in self._totals.items()
                if row_name == name and (wanted is None or row_tags == wanted)
            )

    def clear(self) -> None:
        with self._lock:
            self._totals.clear()


# One counter per (namespace, name, label names) per registry.
_SHARED_COUNTERS: weakref.WeakKeyDictionary[Any, dict[tuple[str, str, tuple[str, ...]], Any]] = (
    weakref.WeakKeyDictionary()
)
_SHARED_LOCK = threading.Lock()


class PrometheusCoalescerMetrics:
    """
    Prometheus-backed coalescer metrics adapter.

    Requires `prometheus_client` package. Instances with the same namespace
    and registry report into the same counters, labelled by coalescer name.
    """

    def __init__(self, *, namespace: str = "lazyflight", registry: Any | None = None) -> None:
        try:
            from prometheus_client import REGISTRY, Counter
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "PrometheusCoalescerMetrics requires `prometheus_client` to be installed."
            ) from exc

        self._Counter = Counter
        self._namespace = namespace
        self._registry = registry if registry is not None else REGISTRY

    def incr(self, name: str, value: int = 1, *, tags: Mapping[str, str] | None = None) -> None:
        label_names = tuple(sorted((tags or {}).keys()))
        key = (self._namespace, name, label_names)
        with _SHARED_LOCK:
            counters = _SHARED_COUNTERS.setdefault(self._registry, {})
            counter = counters.get(key)
            if counter is None:
                counter = self._Counter(
                    name=name,
                    documentation=f"lazyflight coalescer metric {name}",
                    namespace=self._namespace,
                    labelnames=label_names,
                    registry=self._registry,
                )
                counters[key] = counter

        if label_names:
            label_values = [str((tags or {})[label]) for label in label_names]
            counter.labels(*label_values).inc(value)
        else:
            counter.inc(value)
