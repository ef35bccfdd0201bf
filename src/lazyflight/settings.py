"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Coalescer settings and explicit config loading.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from .contracts import CoalescingPolicy

BACKENDS = ("asyncio", "thread")
METRICS_BACKENDS = ("none", "inmemory", "prometheus")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_first(*names: str, default: str | None = None) -> str | None:
    """
    Return the first non-empty environment variable in `names`.

    Args:
        *names: Environment variable names to check in order.
        default: Value returned if no non-empty variable is found.
    """
    for name in names:
        raw = os.getenv(name)
        if raw is None:
            continue
        value = raw.strip()
        if value:
            return value
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = _env_first(name)
    if raw is None:
        return default
    value = raw.lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (_env_first(name, default=default) or default).lower()
    if value not in choices:
        raise ValueError(f"Unknown {name}: {value}")
    return value


@dataclass(frozen=True, slots=True)
class CoalescerSettings:
    """Explicit settings used to build a coalescer."""

    backend: str = "asyncio"
    enabled: bool = True
    cancel_when_abandoned: bool = False
    wait_timeout_s: float | None = None
    metrics_backend: str = "none"
    metrics_namespace: str = "lazyflight"

    def __post_init__(self) -> None:
        if self.backend not in BACKENDS:
            raise ValueError(f"Unknown coalescer backend: {self.backend}")
        if self.metrics_backend not in METRICS_BACKENDS:
            raise ValueError(f"Unknown metrics backend: {self.metrics_backend}")
        if self.wait_timeout_s is not None and self.wait_timeout_s <= 0:
            raise ValueError("wait_timeout_s must be > 0")

    @staticmethod
    def from_env() -> "CoalescerSettings":
        """Load settings from `LAZYFLIGHT_*` environment variables."""
        raw_timeout = _env_first("LAZYFLIGHT_WAIT_TIMEOUT_S")
        return CoalescerSettings(
            backend=_env_choice("LAZYFLIGHT_BACKEND", "asyncio", BACKENDS),
            enabled=_env_bool("LAZYFLIGHT_COALESCING_ENABLED", True),
            cancel_when_abandoned=_env_bool("LAZYFLIGHT_CANCEL_WHEN_ABANDONED", False),
            wait_timeout_s=float(raw_timeout) if raw_timeout is not None else None,
            metrics_backend=_env_choice(
                "LAZYFLIGHT_METRICS_BACKEND", "none", METRICS_BACKENDS
            ),
            metrics_namespace=_env_first(
                "LAZYFLIGHT_METRICS_NAMESPACE", default="lazyflight"
            )
            or "lazyflight",
        )

    def to_policy(self) -> CoalescingPolicy:
        """Adapt settings into the policy object consumed by coalescers."""
        return CoalescingPolicy(
            enabled=self.enabled,
            cancel_when_abandoned=self.cancel_when_abandoned,
            wait_timeout_s=self.wait_timeout_s,
        )
