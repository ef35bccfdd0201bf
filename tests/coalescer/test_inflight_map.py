from __future__ import annotations

import asyncio
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from lazyflight import RequestCoalescer, ThreadCoalescer
from lazyflight.base import BaseCoalescer, BaseEntry


def _entry(key: str) -> BaseEntry:
    return BaseEntry(key=key, started_at_s=0.0)


def test_stale_release_never_removes_a_newer_epoch():
    coalescer = BaseCoalescer()
    first, claimed = coalescer._claim_or_join("k", lambda: _entry("k"))  # noqa: SLF001
    assert claimed
    assert coalescer._release(first)  # noqa: SLF001

    second, claimed = coalescer._claim_or_join("k", lambda: _entry("k"))  # noqa: SLF001
    assert claimed
    assert second is not first

    assert coalescer._release(first) is False  # noqa: SLF001
    assert coalescer.is_in_flight("k")
    assert coalescer._release(second)  # noqa: SLF001
    assert coalescer.in_flight_count == 0


def test_join_binds_to_existing_entry_without_creating():
    coalescer = BaseCoalescer()
    created: list[str] = []

    def create() -> BaseEntry:
        created.append("k")
        return _entry("k")

    owner, claimed = coalescer._claim_or_join("k", create)  # noqa: SLF001
    joined, joined_claimed = coalescer._claim_or_join("k", create)  # noqa: SLF001

    assert claimed and not joined_claimed
    assert joined is owner
    assert created == ["k"]
    assert owner.waiters == 2
    assert coalescer._leave(owner) == 1  # noqa: SLF001
    assert coalescer.stats().joined == 1


class _FlakySink:
    """Metrics sink that raises for the first `failures` calls to `name`."""

    def __init__(self, name: str, failures: int = 1) -> None:
        self.name = name
        self.failures = failures

    def incr(self, name, value=1, *, tags=None) -> None:
        if name == self.name and self.failures > 0:
            self.failures -= 1
            raise RuntimeError("metrics sink down")


def test_raising_sink_on_claim_leaves_thread_key_free():
    coalescer = ThreadCoalescer(metrics=_FlakySink("coalescer_started"))
    calls: list[int] = []

    with pytest.raises(RuntimeError, match="metrics sink down"):
        coalescer.get_or_run("k", lambda: calls.append(1))

    assert calls == []
    assert coalescer.keys() == []
    assert coalescer.get_or_run("k", lambda: "v") == "v"
    assert coalescer.in_flight_count == 0


def test_raising_sink_on_claim_leaves_async_key_free():
    async def scenario() -> None:
        coalescer = RequestCoalescer(metrics=_FlakySink("coalescer_started"))
        calls: list[int] = []

        async def factory() -> str:
            calls.append(1)
            return "v"

        with pytest.raises(RuntimeError, match="metrics sink down"):
            await coalescer.get_or_run("k", factory)

        assert calls == []
        assert coalescer.keys() == []
        assert await coalescer.get_or_run("k", factory) == "v"
        assert calls == [1]

    asyncio.run(scenario())


def test_raising_sink_on_join_does_not_bind_the_joiner():
    coalescer = ThreadCoalescer(metrics=_FlakySink("coalescer_joined"))
    release = threading.Event()

    def factory() -> str:
        release.wait(timeout=5)
        return "v"

    with ThreadPoolExecutor(max_workers=1) as pool:
        owner = pool.submit(coalescer.get_or_run, "k", factory)
        deadline = time.monotonic() + 5
        while not coalescer.is_in_flight("k"):
            assert time.monotonic() < deadline
            time.sleep(0.001)

        with pytest.raises(RuntimeError, match="metrics sink down"):
            coalescer.get_or_run("k", factory)
        release.set()
        assert owner.result(timeout=5) == "v"

    assert coalescer.in_flight_count == 0
    assert coalescer.stats().joined == 0
