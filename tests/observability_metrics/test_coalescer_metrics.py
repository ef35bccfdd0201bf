from __future__ import annotations

import asyncio

import pytest

from lazyflight import (
    CoalescerSettings,
    InMemoryCoalescerMetrics,
    NoOpCoalescerMetrics,
    PrometheusCoalescerMetrics,
    RequestCoalescer,
    ThreadCoalescer,
    create_coalescer,
)


class BoomError(Exception):
    pass


def run_async(coro):
    return asyncio.run(coro)


def test_inmemory_metrics_track_epochs_and_joins():
    metrics = InMemoryCoalescerMetrics()

    async def scenario() -> None:
        coalescer = RequestCoalescer(name="profiles", metrics=metrics)

        async def factory() -> str:
            await asyncio.sleep(0.01)
            return "v"

        async def failing() -> str:
            await asyncio.sleep(0.01)
            raise BoomError("bad")

        await asyncio.gather(*(coalescer.get_or_run("k", factory) for _ in range(5)))
        await asyncio.gather(
            *(coalescer.get_or_run("k", failing) for _ in range(2)),
            return_exceptions=True,
        )

    run_async(scenario())

    tags = {"coalescer": "profiles"}
    assert metrics.total("coalescer_started", tags=tags) == 2
    assert metrics.total("coalescer_joined", tags=tags) == 5
    assert metrics.total("coalescer_succeeded", tags=tags) == 1
    assert metrics.total("coalescer_failed", tags=tags) == 1
    assert metrics.total("coalescer_started", tags={"coalescer": "other"}) == 0

    metrics.clear()
    assert metrics.total("coalescer_started") == 0


def test_thread_coalescer_reports_to_shared_sink():
    metrics = InMemoryCoalescerMetrics()
    first = ThreadCoalescer(name="a", metrics=metrics)
    second = ThreadCoalescer(name="b", metrics=metrics)

    first.get_or_run("k", lambda: 1)
    second.get_or_run("k", lambda: 2)

    assert metrics.total("coalescer_started") == 2
    assert metrics.total("coalescer_succeeded", tags={"coalescer": "b"}) == 1


def test_noop_metrics_accept_any_counter():
    NoOpCoalescerMetrics().incr("coalescer_started", 3, tags={"coalescer": "x"})


def test_prometheus_metrics_export_counters():
    prometheus_client = pytest.importorskip("prometheus_client")
    registry = prometheus_client.CollectorRegistry()
    metrics = PrometheusCoalescerMetrics(namespace="lazyflight", registry=registry)
    coalescer = ThreadCoalescer(name="prom", metrics=metrics)

    coalescer.get_or_run("k", lambda: "v")
    coalescer.get_or_run("k", lambda: "v")

    labels = {"coalescer": "prom"}
    assert registry.get_sample_value("lazyflight_coalescer_started_total", labels) == 2.0
    assert registry.get_sample_value("lazyflight_coalescer_succeeded_total", labels) == 2.0


def test_prometheus_sinks_on_one_registry_share_counters():
    prometheus_client = pytest.importorskip("prometheus_client")
    registry = prometheus_client.CollectorRegistry()
    users = ThreadCoalescer(
        name="users",
        metrics=PrometheusCoalescerMetrics(namespace="shared", registry=registry),
    )
    orders = ThreadCoalescer(
        name="orders",
        metrics=PrometheusCoalescerMetrics(namespace="shared", registry=registry),
    )

    assert users.get_or_run("k", lambda: 1) == 1
    assert orders.get_or_run("k", lambda: 2) == 2

    for name in ("users", "orders"):
        assert registry.get_sample_value(
            "shared_coalescer_started_total", {"coalescer": name}
        ) == 1.0
    assert orders.in_flight_count == 0


def test_factory_built_prometheus_coalescers_coexist():
    pytest.importorskip("prometheus_client")
    settings = CoalescerSettings(
        backend="thread",
        metrics_backend="prometheus",
        metrics_namespace="lazyflight_factory_test",
    )
    users = create_coalescer(settings, name="users")
    orders = create_coalescer(settings, name="orders")

    assert users.get_or_run("k", lambda: 1) == 1
    assert orders.get_or_run("k", lambda: 2) == 2
    assert orders.keys() == []
