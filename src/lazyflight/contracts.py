"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Typed policies and snapshots for request coalescing.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CoalescingPolicy:
    """In-flight request deduplication controls."""

    enabled: bool = True
    cancel_when_abandoned: bool = False
    wait_timeout_s: float | None = None


@dataclass(frozen=True, slots=True)
class CoalescerStats:
    """Point-in-time counters for one coalescer instance."""

    in_flight: int = 0
    started: int = 0
    joined: int = 0
    succeeded: int = 0
    failed: int = 0
    cancelled: int = 0
    abandoned: int = 0
