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
Cooldown policy engine.

- Attempted: the actor is restricted if they, or anyone related to them,
  has an active cooldown. The first active match wins.
- Completed: a fresh cooldown is written for the acting actor only. Related
  actors are never written; they are caught at check time instead.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Set
import structlog

from cooldown_store import CooldownStore, InvalidDurationError, is_valid_duration
from relationship_resolver import RelationshipResolver

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class CooldownCheck:
    """Outcome of an attempted-action check."""
    restricted: bool
    remaining_seconds: float = 0.0
    blocking_actor_id: Optional[int] = None
    checked_actor_id: Optional[int] = None

    @property
    def via_related_actor(self) -> bool:
        """True when the block comes from someone other than the checked actor."""
        return self.restricted and self.blocking_actor_id != self.checked_actor_id


class CooldownPolicyEngine:
    """Orchestrates cooldown checks and writes."""

    def __init__(
        self,
        store: CooldownStore,
        resolver: RelationshipResolver,
        cooldown_seconds: float,
    ) -> None:
        """
        Initialize policy engine.

        Args:
            store: Shared cooldown store
            resolver: Relationship resolver used to expand actors
            cooldown_seconds: Duration applied when an action completes

        Raises:
            InvalidDurationError: If cooldown_seconds is negative or not finite
        """
        self.store = store
        self.resolver = resolver
        self.cooldown_seconds = self._validate_duration(cooldown_seconds)
        logger.info("cooldown_policy_initialized", cooldown_seconds=self.cooldown_seconds)

    @staticmethod
    def _validate_duration(seconds: float) -> float:
        if not is_valid_duration(seconds):
            raise InvalidDurationError(f"Cooldown duration must be finite and >= 0, got {seconds}")
        return float(seconds)

    def update_cooldown(self, cooldown_seconds: float) -> None:
        """Replace the configured duration (applies to future completions only)."""
        self.cooldown_seconds = self._validate_duration(cooldown_seconds)
        logger.info("cooldown_duration_updated", cooldown_seconds=self.cooldown_seconds)

    def check_attempt(self, actor_id: int) -> CooldownCheck:
        """
        Check whether actor_id may perform the restricted action.

        The actor's own cooldown is checked first; related actors are only
        resolved if the actor is clear.

        Args:
            actor_id: Actor attempting the action

        Returns:
            CooldownCheck describing the first active cooldown found, or a
            not-restricted result
        """
        active, remaining = self.store.is_active(actor_id)
        if active:
            logger.info(
                "actor_on_cooldown",
                actor_id=actor_id,
                remaining=round(remaining, 1),
            )
            return CooldownCheck(
                restricted=True,
                remaining_seconds=remaining,
                blocking_actor_id=actor_id,
                checked_actor_id=actor_id,
            )

        checked: Set[int] = {actor_id}
        for related_id in self.resolver.related_actors(actor_id):
            if related_id in checked:
                continue
            checked.add(related_id)

            active, remaining = self.store.is_active(related_id)
            if active:
                logger.info(
                    "related_actor_on_cooldown",
                    actor_id=actor_id,
                    related_actor_id=related_id,
                    remaining=round(remaining, 1),
                )
                return CooldownCheck(
                    restricted=True,
                    remaining_seconds=remaining,
                    blocking_actor_id=related_id,
                    checked_actor_id=actor_id,
                )

        logger.debug("actor_not_restricted", actor_id=actor_id, checked=len(checked))
        return CooldownCheck(restricted=False, checked_actor_id=actor_id)

    def record_completion(self, actor_id: int) -> float:
        """
        Start a cooldown for the actor who completed the action.

        Args:
            actor_id: Actor who completed the action

        Returns:
            Duration applied, in seconds
        """
        self.store.set_active(actor_id, self.cooldown_seconds)
        logger.info(
            "cooldown_started",
            actor_id=actor_id,
            duration=self.cooldown_seconds,
        )
        return self.cooldown_seconds
