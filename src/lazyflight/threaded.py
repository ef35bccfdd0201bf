"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Request coalescing for callers running on OS threads.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Generic, TypeVar

from .base import BaseCoalescer, BaseEntry, validate_request
from .errors import InvalidArgumentError

logger = logging.getLogger("lazyflight.threaded")

T = TypeVar("T")


@dataclass(eq=False, slots=True)
class _FutureEntry(BaseEntry):
    """In-flight entry whose outcome is published through one future."""

    future: Future[Any] = field(default_factory=Future)


class ThreadCoalescer(BaseCoalescer[_FutureEntry], Generic[T]):
    """
    Thread-safe single-flight: one factory run per key per in-flight window.

    The winning caller runs the factory on its own thread. Joiners block on
    the entry's future. The entry leaves the map before its outcome is
    published, so a caller that has returned never sees its own epoch again.
    """

    def get_or_run(
        self,
        key: str,
        factory: Callable[[], T],
        *,
        timeout_s: float | None = None,
    ) -> T:
        """
        Join the in-flight run for `key` or run `factory` on this thread.

        `factory` must return a plain value. An awaitable result is closed and
        delivered to every bound waiter as `InvalidArgumentError`; the factory
        body itself has still run once by then, side effects included.

        Raises:
            InvalidArgumentError: For an empty key, a missing factory or an
                awaitable factory result.
            TimeoutError: When a joiner's wait exceeds `timeout_s`.
        """
        validate_request(key, factory)
        if not self.policy.enabled:
            return factory()

        entry, claimed = self._claim_or_join(
            key, partial(_FutureEntry, key=key, started_at_s=time.monotonic())
        )
        if claimed:
            logger.debug("Coalescer %s started key=%s", self.name, key)
            try:
                return self._run(entry, factory)
            finally:
                self._leave(entry)

        logger.debug("Coalescer %s joined key=%s", self.name, key)
        wait_s = self.policy.wait_timeout_s if timeout_s is None else timeout_s
        try:
            return entry.future.result(timeout=wait_s)
        except TimeoutError:
            if not entry.future.done():
                self._record("abandoned")
            raise
        finally:
            self._leave(entry)

    def _run(self, entry: _FutureEntry, factory: Callable[[], T]) -> T:
        try:
            value = factory()
            if inspect.isawaitable(value):
                if inspect.iscoroutine(value):
                    value.close()
                raise InvalidArgumentError(
                    "Factory must return a value, not an awaitable.",
                    argument="factory",
                )
        except BaseException as exc:
            self._release(entry)
            entry.future.set_exception(exc)
            self._settled(entry, "failed")
            raise
        self._release(entry)
        entry.future.set_result(value)
        self._settled(entry, "succeeded")
        return value

    def _settled(self, entry: _FutureEntry, outcome: str) -> None:
        self._record(outcome)
        logger.debug(
            "Coalescer %s %s key=%s after %.3fs",
            self.name,
            outcome,
            entry.key,
            entry.elapsed_s(),
        )
