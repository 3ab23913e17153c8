# Copyright (c) 2025 Stephen Clau
#
# This file is part of Kill Cooldown.
#
# Kill Cooldown is dual-licensed:
#
# 1. GNU Affero General Public License v3.0 (AGPL-3.0)
#    See LICENSE file for full terms
#
# 2. Commercial License
#    For proprietary use without AGPL requirements
#    Contact: licensing@laudiversified.com
#
# SPDX-License-Identifier: AGPL-3.0-only OR Commercial

"""
Time sources for cooldown expiry math.

All instants are float seconds. Only differences between readings are
meaningful, so a monotonic clock is used in production.
"""

import threading
import time
from typing import Any, Optional, Protocol


class ClockUnavailableError(RuntimeError):
    """Raised when no usable time reading can be obtained."""
    pass


class Clock(Protocol):
    """Anything that can report the current instant in seconds."""

    def now(self) -> float:
        ...


class MonotonicClock:
    """Process clock backed by time.monotonic()."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """
    Clock that only moves when told to.

    Used by tests and event replays where expiry must be deterministic.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._lock = threading.Lock()

    def now(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> float:
        """
        Move the clock forward.

        Args:
            seconds: Non-negative amount to advance by

        Returns:
            The new current instant

        Raises:
            ValueError: If seconds is negative (clock must never go backwards)
        """
        if seconds < 0:
            raise ValueError(f"ManualClock cannot move backwards: {seconds}")
        with self._lock:
            self._now += seconds
            return self._now


def require_clock(clock: Optional[Any]) -> Any:
    """Fail fast when a component is built without a clock."""
    if clock is None or not callable(getattr(clock, "now", None)):
        raise ClockUnavailableError("A clock with a now() method is required")
    return clock


def read_clock(clock: Any) -> float:
    """
    Take one reading from clock and validate it.

    Raises:
        ClockUnavailableError: If the reading is missing or not a number
    """
    reading = clock.now()
    if isinstance(reading, bool) or not isinstance(reading, (int, float)):
        raise ClockUnavailableError(
            f"Clock returned an unusable reading: {reading!r}"
        )
    return float(reading)
