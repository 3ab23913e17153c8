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
Per-actor cooldown store with lazy expiry.

One record per actor. Expired records are evicted when they are next read;
there is no background sweep thread.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import math
import threading
import structlog

from clock import read_clock, require_clock

logger = structlog.get_logger()


class InvalidDurationError(ValueError):
    """Raised when a cooldown duration is negative or not finite."""
    pass


def is_valid_duration(seconds: float) -> bool:
    """True for finite durations >= 0."""
    return math.isfinite(seconds) and seconds >= 0


@dataclass(frozen=True, slots=True)
class CooldownRecord:
    """Active cooldown for a single actor."""
    actor_id: int
    expires_at: float


class CooldownStore:
    """Thread-safe map of actor id -> cooldown expiry."""

    def __init__(self, clock) -> None:
        """
        Initialize cooldown store.

        Args:
            clock: Object with a now() method returning seconds

        Raises:
            ClockUnavailableError: If clock is missing
        """
        self.clock = require_clock(clock)
        self._records: Dict[int, CooldownRecord] = {}
        self._lock = threading.Lock()
        logger.debug("cooldown_store_initialized")

    def is_active(self, actor_id: int) -> Tuple[bool, float]:
        """
        Check whether an actor is on cooldown.

        Args:
            actor_id: Actor's unique ID

        Returns:
            Tuple of (active, remaining_seconds)
            - remaining_seconds is 0.0 when not active
        """
        with self._lock:
            record = self._records.get(actor_id)
            if record is None:
                return False, 0.0

            now = read_clock(self.clock)
            if record.expires_at > now:
                return True, record.expires_at - now

            # Expired - evict on read
            del self._records[actor_id]

        logger.debug("cooldown_expired", actor_id=actor_id)
        return False, 0.0

    def set_active(self, actor_id: int, duration: float) -> CooldownRecord:
        """
        Start (or restart) a cooldown for an actor.

        Args:
            actor_id: Actor's unique ID
            duration: Cooldown length in seconds, finite and >= 0

        Returns:
            The stored record

        Raises:
            InvalidDurationError: If duration is negative, NaN or infinite
        """
        if not is_valid_duration(duration):
            raise InvalidDurationError(
                f"Cooldown duration must be finite and >= 0, got {duration}"
            )

        with self._lock:
            now = read_clock(self.clock)
            record = CooldownRecord(actor_id=actor_id, expires_at=now + duration)
            replaced = actor_id in self._records
            self._records[actor_id] = record

        logger.debug(
            "cooldown_record_written",
            actor_id=actor_id,
            duration=duration,
            replaced=replaced,
        )
        return record

    def get_record(self, actor_id: int) -> Optional[CooldownRecord]:
        """Return the stored record without evicting it, if any."""
        with self._lock:
            return self._records.get(actor_id)

    def reset(self, actor_id: int) -> bool:
        """
        Remove one actor's cooldown.

        Returns:
            True if a record was removed
        """
        with self._lock:
            removed = self._records.pop(actor_id, None) is not None
        if removed:
            logger.debug("cooldown_reset", actor_id=actor_id)
        return removed

    def reset_all(self) -> None:
        """Drop every record (store teardown)."""
        with self._lock:
            count = len(self._records)
            self._records.clear()
        logger.debug("all_cooldowns_reset", dropped=count)

    def sweep_expired(self) -> int:
        """
        Evict every expired record in one pass.

        Optional memory bound; lookups stay correct without it.

        Returns:
            Number of records evicted
        """
        with self._lock:
            now = read_clock(self.clock)
            expired = [
                actor_id
                for actor_id, record in self._records.items()
                if record.expires_at <= now
            ]
            for actor_id in expired:
                del self._records[actor_id]

        if expired:
            logger.debug("expired_cooldowns_swept", count=len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, actor_id: object) -> bool:
        with self._lock:
            return actor_id in self._records
