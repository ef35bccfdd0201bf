"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Error types raised by the coalescing layer itself.

Factory failures and cancellations are never wrapped; only caller mistakes
surface as library errors.
"""

from __future__ import annotations


class CoalescerError(RuntimeError):
    """Base class for coalescer errors."""


class InvalidArgumentError(CoalescerError, ValueError):
    """Raised for an empty/missing key or a missing factory."""

    def __init__(self, message: str, *, argument: str) -> None:
        super().__init__(f"{message} (Parameter '{argument}')")
        self.argument = argument
