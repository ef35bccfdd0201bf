"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Module: coalescer.py.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Generic, TypeVar

from .base import BaseCoalescer, BaseEntry, validate_request

logger = logging.getLogger("lazyflight.coalescer")

T = TypeVar("T")

Factory = Callable[[], Awaitable[T] | T]


@dataclass(eq=False, slots=True)
class _TaskEntry(BaseEntry):
    """In-flight entry backed by one shared asyncio task."""

    task: asyncio.Task[Any] | None = None
    loop: asyncio.AbstractEventLoop | None = None
    # Mirror of the task outcome for waiters running on other event loops.
    outcome: Future[Any] = field(default_factory=Future)

    def settled(self) -> bool:
        return self.outcome.done() or (self.task is not None and self.task.done())


async def _invoke(factory: Factory[T]) -> T:
    # Runs inside the shared task, so a synchronous raise becomes the
    # task's exception like any other factory failure.
    result = factory()
    if inspect.isawaitable(result):
        return await result
    return result


class RequestCoalescer(BaseCoalescer[_TaskEntry], Generic[T]):
    """
    Deduplicate identical in-flight requests across asyncio tasks.

    The first caller for a key starts the factory in a task on its own event
    loop; every caller that arrives before that task settles awaits the same
    outcome. Callers on that loop await the task directly, callers on other
    loops (other threads) await a thread-safe mirror of it. The entry is
    dropped as soon as the task settles, so the next call starts a new epoch.

    A caller that is cancelled or times out only stops its own wait. With
    `cancel_when_abandoned` the shared task is cancelled once its last
    waiter leaves early.
    """

    async def get_or_run(
        self,
        key: str,
        factory: Factory[T],
        *,
        timeout_s: float | None = None,
    ) -> T:
        """
        Join the in-flight computation for `key` or start one with `factory`.

        Args:
            key: Non-empty identifier of the shared work.
            factory: Zero-argument callable returning an awaitable or a value.
                Discarded unexecuted when another computation is in flight.
            timeout_s: Caller-local wait limit; defaults to the policy value.

        Raises:
            InvalidArgumentError: For an empty key or a missing factory.
            TimeoutError: When this caller's wait exceeds `timeout_s`.
        """
        validate_request(key, factory)
        if not self.policy.enabled:
            return await _invoke(factory)

        wait_s = self.policy.wait_timeout_s if timeout_s is None else timeout_s
        entry, claimed = self._claim_or_join(key, partial(self._start, key, factory))
        if claimed:
            logger.debug("Coalescer %s started key=%s", self.name, key)
        else:
            logger.debug("Coalescer %s joined key=%s", self.name, key)

        left_early = False
        try:
            if entry.loop is asyncio.get_running_loop():
                shared = asyncio.shield(entry.task)
            else:
                shared = asyncio.shield(asyncio.wrap_future(entry.outcome))
            if wait_s is None:
                return await shared
            return await asyncio.wait_for(shared, timeout=wait_s)
        except (asyncio.CancelledError, TimeoutError):
            left_early = not entry.settled()
            raise
        finally:
            remaining = self._leave(entry)
            if left_early:
                self._abandon(entry, remaining)

    def _start(self, key: str, factory: Factory[T]) -> _TaskEntry:
        loop = asyncio.get_running_loop()
        entry = _TaskEntry(key=key, started_at_s=time.monotonic(), loop=loop)
        task = loop.create_task(_invoke(factory), name=f"lazyflight:{self.name}:{key}")
        # Registered before any waiter subscribes, so the map is clean by
        # the time waiters resume.
        task.add_done_callback(partial(self._settle, entry))
        entry.task = task
        return entry

    def _settle(self, entry: _TaskEntry, task: asyncio.Task[Any]) -> None:
        self._release(entry)
        if task.cancelled():
            outcome = "cancelled"
            entry.outcome.cancel()
        elif task.exception() is not None:
            outcome = "failed"
            entry.outcome.set_exception(task.exception())
        else:
            outcome = "succeeded"
            entry.outcome.set_result(task.result())
        self._record(outcome)
        logger.debug(
            "Coalescer %s %s key=%s after %.3fs",
            self.name,
            outcome,
            entry.key,
            entry.elapsed_s(),
        )

    def _abandon(self, entry: _TaskEntry, remaining: int) -> None:
        self._record("abandoned")
        if remaining or not self.policy.cancel_when_abandoned:
            return
        task = entry.task
        if task is not None and not task.done():
            logger.info(
                "Coalescer %s cancelling abandoned computation key=%s",
                self.name,
                entry.key,
            )
            if entry.loop is asyncio.get_running_loop():
                task.cancel()
            else:
                entry.loop.call_soon_threadsafe(task.cancel)
