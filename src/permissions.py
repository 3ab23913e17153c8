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

"""Permission registry used to exempt actors from cooldowns."""

from typing import Dict, Iterable, Optional, Set
import threading
import structlog

logger = structlog.get_logger()

BYPASS_PERMISSION = "killcooldown.bypass"

DEFAULT_PERMISSIONS = (BYPASS_PERMISSION,)


class PermissionRegistry:
    """Registered permissions and per-actor grants."""

    def __init__(self, permissions: Iterable[str] = DEFAULT_PERMISSIONS) -> None:
        self._lock = threading.Lock()
        self._registered: Set[str] = set()
        self._grants: Dict[int, Set[str]] = {}
        for permission in permissions:
            self.register(permission)

    def register(self, permission: str) -> None:
        """Register a permission name so it can be granted."""
        if not permission:
            raise ValueError("Permission name cannot be empty")
        with self._lock:
            self._registered.add(permission)
        logger.debug("permission_registered", permission=permission)

    def is_registered(self, permission: str) -> bool:
        with self._lock:
            return permission in self._registered

    def _require_registered(self, permission: str) -> None:
        if permission not in self._registered:
            raise KeyError(f"Unknown permission: {permission}")

    def grant(self, actor_id: int, permission: str) -> None:
        with self._lock:
            self._require_registered(permission)
            self._grants.setdefault(actor_id, set()).add(permission)
        logger.info("permission_granted", actor_id=actor_id, permission=permission)

    def revoke(self, actor_id: int, permission: str) -> bool:
        """
        Revoke a permission from an actor.

        Returns:
            True if the actor held the permission
        """
        with self._lock:
            self._require_registered(permission)
            held = self._grants.get(actor_id, set())
            if permission not in held:
                return False
            held.discard(permission)
            if not held:
                del self._grants[actor_id]
        logger.info("permission_revoked", actor_id=actor_id, permission=permission)
        return True

    def has_permission(self, actor_id: int, permission: str) -> bool:
        """
        Check whether an actor holds a permission.

        Raises:
            KeyError: If the permission was never registered
        """
        with self._lock:
            self._require_registered(permission)
            return permission in self._grants.get(actor_id, set())

    def is_exempt(self, actor_id: int) -> bool:
        """Shortcut for the cooldown bypass permission."""
        return self.has_permission(actor_id, BYPASS_PERMISSION)


def build_permissions(bypass_actors: Optional[Iterable[int]] = None) -> PermissionRegistry:
    """Registry with the default permissions and the given bypass grants."""
    registry = PermissionRegistry()
    for actor_id in bypass_actors or ():
        registry.grant(actor_id, BYPASS_PERMISSION)
    return registry
