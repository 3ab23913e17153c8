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
Action event handler: the glue between host game events and the policy engine.

- attempted: called before damage is applied; a restricted verdict tells the
  host to scale the damage to zero.
- completed: called after the kill is final; starts the actor's cooldown.

NPC actors and actors holding the bypass permission never reach the engine.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import structlog

from cooldown_policy import CooldownPolicyEngine
from messages import KIND_COOLDOWN_STARTED, KIND_ON_COOLDOWN, Notifier
from permissions import PermissionRegistry

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class ActionEvent:
    """A restricted-action event delivered by the host."""
    actor_id: int
    is_npc: bool = False


@dataclass(frozen=True, slots=True)
class AttemptVerdict:
    """What the host should do with an attempted action."""
    allowed: bool
    remaining_seconds: float = 0.0
    blocking_actor_id: Optional[int] = None
    message: Optional[str] = None

    @property
    def damage_scale(self) -> float:
        return 1.0 if self.allowed else 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "allowed": self.allowed,
            "remaining_seconds": round(self.remaining_seconds, 3),
            "blocking_actor_id": self.blocking_actor_id,
            "damage_scale": self.damage_scale,
            "message": self.message,
        }


ALLOWED = AttemptVerdict(allowed=True)


class ActionEventHandler:
    """Apply permission/NPC filtering, consult the engine, notify players."""

    def __init__(
        self,
        engine: CooldownPolicyEngine,
        permissions: PermissionRegistry,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.engine = engine
        self.permissions = permissions
        self.notifier = notifier

    def _skip(self, event: ActionEvent, hook: str) -> bool:
        if event.is_npc:
            logger.debug("action_skipped_npc", hook=hook, actor_id=event.actor_id)
            return True
        if self.permissions.is_exempt(event.actor_id):
            logger.debug("action_skipped_bypass", hook=hook, actor_id=event.actor_id)
            return True
        return False

    def _notify(self, actor_id: int, kind: str, duration: float) -> Optional[str]:
        if self.notifier is None:
            return None
        try:
            return self.notifier.notify(actor_id, kind, duration)
        except Exception as e:
            # Notification failure must not change the verdict
            logger.error(
                "notification_failed",
                actor_id=actor_id,
                kind=kind,
                error=str(e),
                exc_info=True,
            )
            return None

    def on_action_attempted(self, event: ActionEvent) -> AttemptVerdict:
        """
        Handle an attempted restricted action.

        Args:
            event: Attempt event from the host

        Returns:
            AttemptVerdict - allowed=False means the host must neutralize the action
        """
        if self._skip(event, "attempted"):
            return ALLOWED

        check = self.engine.check_attempt(event.actor_id)
        if not check.restricted:
            return ALLOWED

        message = self._notify(event.actor_id, KIND_ON_COOLDOWN, check.remaining_seconds)
        logger.info(
            "action_blocked",
            actor_id=event.actor_id,
            blocking_actor_id=check.blocking_actor_id,
            remaining=round(check.remaining_seconds, 1),
        )
        return AttemptVerdict(
            allowed=False,
            remaining_seconds=check.remaining_seconds,
            blocking_actor_id=check.blocking_actor_id,
            message=message,
        )

    def on_action_completed(self, event: ActionEvent) -> Optional[float]:
        """
        Handle a completed restricted action.

        Returns:
            Cooldown duration started, or None if the actor was skipped
        """
        if self._skip(event, "completed"):
            return None

        duration = self.engine.record_completion(event.actor_id)
        self._notify(event.actor_id, KIND_COOLDOWN_STARTED, duration)
        return duration
