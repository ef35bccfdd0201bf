"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Single-flight request coalescing for asyncio tasks and OS threads.

Concurrent callers asking for the same key share one factory run and all
observe its outcome. Nothing is kept once that run settles; the next call
for the key runs its factory again.

Quick start::

    from lazyflight import RequestCoalescer

    users = RequestCoalescer(name="users")

    async def load_user(user_id: int) -> dict:
        return await users.get_or_run(
            f"user:{user_id}",
            lambda: db.fetch_user(user_id),
        )
"""

from .coalescer import RequestCoalescer
from .contracts import CoalescerStats, CoalescingPolicy
from .errors import CoalescerError, InvalidArgumentError
from .factory import create_coalescer, create_coalescer_from_env, create_metrics
from .metrics import (
    CoalescerMetrics,
    InMemoryCoalescerMetrics,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
)
from .settings import CoalescerSettings
from .threaded import ThreadCoalescer

__all__ = [
    "RequestCoalescer",
    "ThreadCoalescer",
    "CoalescingPolicy",
    "CoalescerStats",
    "CoalescerSettings",
    "CoalescerError",
    "InvalidArgumentError",
    "CoalescerMetrics",
    "NoOpCoalescerMetrics",
    "InMemoryCoalescerMetrics",
    "PrometheusCoalescerMetrics",
    "create_coalescer",
    "create_coalescer_from_env",
    "create_metrics",
]
