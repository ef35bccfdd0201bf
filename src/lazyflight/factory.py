"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Factory helpers for building coalescers from settings or environment variables.
"""

from __future__ import annotations

from typing import Any

from .coalescer import RequestCoalescer
from .metrics import (
    CoalescerMetrics,
    InMemoryCoalescerMetrics,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
)
from .settings import CoalescerSettings
from .threaded import ThreadCoalescer


def create_metrics(settings: CoalescerSettings) -> CoalescerMetrics:
    """Build the metrics sink named by `settings.metrics_backend`."""
    if settings.metrics_backend == "inmemory":
        return InMemoryCoalescerMetrics()
    if settings.metrics_backend == "prometheus":
        return PrometheusCoalescerMetrics(namespace=settings.metrics_namespace)
    return NoOpCoalescerMetrics()


def create_coalescer(
    settings: CoalescerSettings,
    *,
    name: str = "default",
    metrics: CoalescerMetrics | None = None,
) -> RequestCoalescer[Any] | ThreadCoalescer[Any]:
    """
    Build a coalescer from explicit settings.

    Backends:
    - `asyncio` (default): `RequestCoalescer`
    - `thread`: `ThreadCoalescer`
    """
    sink = metrics if metrics is not None else create_metrics(settings)
    policy = settings.to_policy()
    if settings.backend == "thread":
        return ThreadCoalescer(name=name, policy=policy, metrics=sink)
    return RequestCoalescer(name=name, policy=policy, metrics=sink)


def create_coalescer_from_env(
    *,
    name: str = "default",
    metrics: CoalescerMetrics | None = None,
) -> RequestCoalescer[Any] | ThreadCoalescer[Any]:
    """Create a coalescer from `LAZYFLIGHT_*` environment variables."""
    return create_coalescer(CoalescerSettings.from_env(), name=name, metrics=metrics)
