#!/usr/bin/env python3
"""
Stampede benchmark: how many factory runs a burst of callers triggers.

Usage examples:
  PYTHONPATH=src python scripts/stampede_benchmark.py --backend asyncio
  PYTHONPATH=src python scripts/stampede_benchmark.py --backend thread --callers 64 --keys 4
"""

from __future__ import annotations

import argparse
import asyncio
import statistics
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from lazyflight import (
    CoalescingPolicy,
    InMemoryCoalescerMetrics,
    RequestCoalescer,
    ThreadCoalescer,
)


def _report(
    *,
    backend: str,
    callers: int,
    keys: int,
    latency_ms: float,
    elapsed: float,
    latencies: list[float],
    metrics: InMemoryCoalescerMetrics,
) -> None:
    p50 = statistics.median(latencies) if latencies else 0.0
    p95 = sorted(latencies)[int(0.95 * (len(latencies) - 1))] if latencies else 0.0

    print(f"backend={backend}")
    print(f"callers={callers}")
    print(f"keys={keys}")
    print(f"factory_latency_ms={latency_ms:.2f}")
    print(f"factory_runs={metrics.total('coalescer_started')}")
    print(f"joined_callers={metrics.total('coalescer_joined')}")
    print(f"elapsed_s={elapsed:.3f}")
    print(f"caller_latency_p50_ms={p50 * 1000:.2f}")
    print(f"caller_latency_p95_ms={p95 * 1000:.2f}")


async def run_asyncio_benchmark(
    *, callers: int, keys: int, latency_ms: float, enabled: bool
) -> None:
    metrics = InMemoryCoalescerMetrics()
    coalescer = RequestCoalescer(
        name="bench", policy=CoalescingPolicy(enabled=enabled), metrics=metrics
    )
    latencies: list[float] = []

    async def factory() -> bool:
        await asyncio.sleep(latency_ms / 1000.0)
        return True

    async def caller(index: int) -> None:
        started = time.perf_counter()
        await coalescer.get_or_run(f"bench:{index % keys}", factory)
        latencies.append(time.perf_counter() - started)

    started = time.perf_counter()
    await asyncio.gather(*(caller(i) for i in range(callers)))
    elapsed = time.perf_counter() - started

    _report(
        backend="asyncio",
        callers=callers,
        keys=keys,
        latency_ms=latency_ms,
        elapsed=elapsed,
        latencies=latencies,
        metrics=metrics,
    )


def run_thread_benchmark(
    *, callers: int, keys: int, latency_ms: float, enabled: bool
) -> None:
    metrics = InMemoryCoalescerMetrics()
    coalescer = ThreadCoalescer(
        name="bench", policy=CoalescingPolicy(enabled=enabled), metrics=metrics
    )
    latencies: list[float] = []
    lock = threading.Lock()
    barrier = threading.Barrier(callers)

    def factory() -> bool:
        time.sleep(latency_ms / 1000.0)
        return True

    def caller(index: int) -> None:
        barrier.wait()
        started = time.perf_counter()
        coalescer.get_or_run(f"bench:{index % keys}", factory)
        with lock:
            latencies.append(time.perf_counter() - started)

    started = time.perf_counter()
    with ThreadPoolExecutor(max_workers=callers) as pool:
        list(pool.map(caller, range(callers)))
    elapsed = time.perf_counter() - started

    _report(
        backend="thread",
        callers=callers,
        keys=keys,
        latency_ms=latency_ms,
        elapsed=elapsed,
        latencies=latencies,
        metrics=metrics,
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Cache stampede benchmark utility")
    parser.add_argument("--backend", choices=("asyncio", "thread"), default="asyncio")
    parser.add_argument("--callers", type=int, default=200)
    parser.add_argument("--keys", type=int, default=1)
    parser.add_argument("--latency-ms", type=float, default=50.0)
    parser.add_argument(
        "--no-coalescing",
        action="store_true",
        help="Run every factory call for comparison.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.keys < 1:
        raise ValueError("--keys must be >= 1")
    options = {
        "callers": args.callers,
        "keys": args.keys,
        "latency_ms": args.latency_ms,
        "enabled": not args.no_coalescing,
    }
    if args.backend == "thread":
        run_thread_benchmark(**options)
    else:
        asyncio.run(run_asyncio_benchmark(**options))


if __name__ == "__main__":
    main()
