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

import threading
from unittest.mock import MagicMock

import pytest

from clock import ClockUnavailableError, ManualClock, MonotonicClock
from cooldown_store import CooldownRecord, CooldownStore, InvalidDurationError


# ============================================================================
# is_active / set_active
# ============================================================================

class TestCooldownStore:
    """Test lazy-expiry cooldown store."""

    def test_unknown_actor_not_active(self, store: CooldownStore) -> None:
        assert store.is_active(12345) == (False, 0.0)

    def test_active_immediately_after_set(self, store: CooldownStore) -> None:
        """Scenario: SetActive(100, 3600s) then IsActive(100)."""
        store.set_active(100, 3600.0)

        active, remaining = store.is_active(100)
        assert active is True
        assert remaining == pytest.approx(3600.0)

    def test_remaining_bounded_with_real_clock(self) -> None:
        store = CooldownStore(MonotonicClock())
        store.set_active(1, 5.0)

        active, remaining = store.is_active(1)
        assert active is True
        assert 0.0 < remaining <= 5.0

    def test_remaining_decreases_with_time(self, store: CooldownStore, clock: ManualClock) -> None:
        store.set_active(1, 60.0)
        clock.advance(15.0)

        active, remaining = store.is_active(1)
        assert active is True
        assert remaining == pytest.approx(45.0)

    def test_expired_record_evicted(self, store: CooldownStore, clock: ManualClock) -> None:
        """Scenario: SetActive(600, 10s); clock +11s -> not restricted, evicted."""
        store.set_active(600, 10.0)
        assert len(store) == 1

        clock.advance(11.0)

        assert store.is_active(600) == (False, 0.0)
        assert len(store) == 0
        assert 600 not in store

        # A fresh write does not see a phantom record
        store.set_active(600, 10.0)
        assert len(store) == 1

    def test_expiry_is_idempotent(self, store: CooldownStore, clock: ManualClock) -> None:
        store.set_active(1, 10.0)
        clock.advance(10.0)

        assert store.is_active(1)[0] is False
        assert store.is_active(1)[0] is False
        assert store.get_record(1) is None

    def test_expires_exactly_at_deadline(self, store: CooldownStore, clock: ManualClock) -> None:
        store.set_active(1, 10.0)
        clock.advance(5.0)
        assert store.is_active(1)[0] is True
        clock.advance(5.0)
        assert store.is_active(1)[0] is False

    def test_zero_duration_never_active(self, store: CooldownStore) -> None:
        store.set_active(1, 0.0)
        assert store.is_active(1) == (False, 0.0)

    def test_negative_duration_rejected(self, store: CooldownStore) -> None:
        with pytest.raises(InvalidDurationError):
            store.set_active(1, -1.0)
        assert len(store) == 0

    @pytest.mark.parametrize("duration", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_duration_rejected(self, store: CooldownStore, duration: float) -> None:
        with pytest.raises(InvalidDurationError):
            store.set_active(1, duration)
        assert len(store) == 0

    def test_invalid_duration_is_value_error(self) -> None:
        assert issubclass(InvalidDurationError, ValueError)

    def test_overwrite_replaces_record(self, store: CooldownStore, clock: ManualClock) -> None:
        store.set_active(1, 100.0)
        clock.advance(50.0)
        store.set_active(1, 10.0)

        active, remaining = store.is_active(1)
        assert active is True
        assert remaining == pytest.approx(10.0)
        assert len(store) == 1

    def test_set_active_returns_record(self, store: CooldownStore) -> None:
        record = store.set_active(7, 30.0)
        assert record == CooldownRecord(actor_id=7, expires_at=1030.0)
        assert store.get_record(7) == record

    def test_cooldowns_are_per_actor(self, store: CooldownStore) -> None:
        store.set_active(111, 60.0)
        assert store.is_active(222) == (False, 0.0)


# ============================================================================
# Admin operations
# ============================================================================

class TestCooldownStoreMaintenance:

    def test_reset(self, store: CooldownStore) -> None:
        store.set_active(1, 60.0)
        assert store.reset(1) is True
        assert store.reset(1) is False
        assert store.is_active(1)[0] is False

    def test_reset_all(self, store: CooldownStore) -> None:
        for actor_id in (1, 2, 3):
            store.set_active(actor_id, 60.0)

        store.reset_all()

        assert len(store) == 0

    def test_sweep_expired(self, store: CooldownStore, clock: ManualClock) -> None:
        store.set_active(1, 10.0)
        store.set_active(2, 100.0)
        clock.advance(50.0)

        assert store.sweep_expired() == 1
        assert store.get_record(1) is None
        assert store.is_active(2)[0] is True

    def test_get_record_does_not_evict(self, store: CooldownStore, clock: ManualClock) -> None:
        store.set_active(1, 10.0)
        clock.advance(20.0)
        assert store.get_record(1) is not None
        assert len(store) == 1


# ============================================================================
# Clock failures and concurrency
# ============================================================================

class TestCooldownStoreClock:

    def test_requires_clock(self) -> None:
        with pytest.raises(ClockUnavailableError):
            CooldownStore(None)

    def test_broken_clock_propagates(self) -> None:
        clock = MagicMock()
        clock.now.return_value = None
        store = CooldownStore(clock)

        with pytest.raises(ClockUnavailableError):
            store.set_active(1, 10.0)


class TestCooldownStoreConcurrency:

    def test_concurrent_writers_different_actors(self, store: CooldownStore) -> None:
        def writer(base: int) -> None:
            for offset in range(200):
                store.set_active(base + offset, 60.0)
                store.is_active(base + offset)

        threads = [threading.Thread(target=writer, args=(i * 1000,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(store) == 8 * 200
