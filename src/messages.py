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
Player-facing messages and notifiers.

Messages are looked up by key per language (falling back to English) and
formatted positionally with {0}-style placeholders. Notifiers are pure sinks;
nothing they do feeds back into cooldown decisions.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol
import math
import threading
import structlog

logger = structlog.get_logger()

DEFAULT_LANGUAGE = "en"


class Lang:
    """Message keys."""
    NOTICE_ON_COOLDOWN = "Notice.OnCooldown"
    NOTICE_COOLDOWN_STARTED = "Notice.CooldownStarted"


# Notification kinds map 1:1 onto message keys
KIND_ON_COOLDOWN = "on_cooldown"
KIND_COOLDOWN_STARTED = "cooldown_started"

KIND_TO_KEY: Dict[str, str] = {
    KIND_ON_COOLDOWN: Lang.NOTICE_ON_COOLDOWN,
    KIND_COOLDOWN_STARTED: Lang.NOTICE_COOLDOWN_STARTED,
}

DEFAULT_MESSAGES: Dict[str, Dict[str, str]] = {
    DEFAULT_LANGUAGE: {
        Lang.NOTICE_ON_COOLDOWN: "You must wait {0} before engaging another Bradley.",
        Lang.NOTICE_COOLDOWN_STARTED: (
            "You and your allies are restricted from attacking another Bradley "
            "for the next {0}."
        ),
    },
}


def format_duration(seconds: float) -> str:
    """
    Render a duration for players.

    Returns "Xh Ym" for an hour or more, otherwise "Xm Ys".
    Fractional seconds are rounded up so a live cooldown never shows "0m 0s".
    """
    total = max(0, int(math.ceil(seconds)))
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours >= 1:
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"


class MessageCatalog:
    """Per-language message templates with English fallback."""

    def __init__(
        self,
        overrides: Optional[Dict[str, Dict[str, str]]] = None,
        language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self.language = language
        self._messages: Dict[str, Dict[str, str]] = {
            lang: dict(entries) for lang, entries in DEFAULT_MESSAGES.items()
        }
        for lang, entries in (overrides or {}).items():
            if not isinstance(entries, dict):
                logger.warning("message_overrides_ignored", language=lang)
                continue
            self._messages.setdefault(lang, {}).update(
                {str(k): str(v) for k, v in entries.items()}
            )

    def get_message(self, key: str, *args: Any, language: Optional[str] = None) -> str:
        """
        Resolve and format a message.

        Args:
            key: Message key (see Lang)
            *args: Positional values for {0}, {1}, ...
            language: Language code, defaults to the catalog language

        Returns:
            Formatted message, or "" if the key is unknown everywhere.
            An override that cannot be formatted falls back to the
            built-in English text.
        """
        lang = language or self.language
        template = self._messages.get(lang, {}).get(key)
        if template is None:
            template = self._messages[DEFAULT_LANGUAGE].get(key, "")
        if not (args and template):
            return template

        try:
            return template.format(*args)
        except (KeyError, IndexError, ValueError) as e:
            logger.warning(
                "message_format_failed",
                key=key,
                language=lang,
                template=template,
                error=str(e),
            )
            return DEFAULT_MESSAGES[DEFAULT_LANGUAGE].get(key, "").format(*args)

    def render(self, kind: str, duration_seconds: float, language: Optional[str] = None) -> str:
        """Message for a notification kind with the duration filled in."""
        key = KIND_TO_KEY.get(kind)
        if key is None:
            raise KeyError(f"Unknown notification kind: {kind}")
        return self.get_message(key, format_duration(duration_seconds), language=language)


class Notifier(Protocol):
    """Sink for player notifications."""

    def notify(self, actor_id: int, kind: str, duration_seconds: float) -> Optional[str]:
        ...


class LogNotifier:
    """Render notifications and write them to the structured log."""

    def __init__(self, catalog: Optional[MessageCatalog] = None) -> None:
        self.catalog = catalog or MessageCatalog()

    def notify(self, actor_id: int, kind: str, duration_seconds: float) -> Optional[str]:
        message = self.catalog.render(kind, duration_seconds)
        if not message.strip():
            return None
        logger.info(
            "player_notified",
            actor_id=actor_id,
            kind=kind,
            message=message,
        )
        return message


@dataclass(frozen=True, slots=True)
class Notification:
    actor_id: int
    kind: str
    duration_seconds: float
    message: str


class RecordingNotifier(LogNotifier):
    """LogNotifier that also keeps every delivered notification in memory."""

    def __init__(self, catalog: Optional[MessageCatalog] = None, max_history: int = 1000) -> None:
        super().__init__(catalog)
        self.max_history = max_history
        self._history: List[Notification] = []
        self._lock = threading.Lock()

    def notify(self, actor_id: int, kind: str, duration_seconds: float) -> Optional[str]:
        message = super().notify(actor_id, kind, duration_seconds)
        if message is None:
            return None
        with self._lock:
            self._history.append(
                Notification(actor_id, kind, duration_seconds, message)
            )
            if len(self._history) > self.max_history:
                del self._history[: len(self._history) - self.max_history]
        return message

    def history(self, actor_id: Optional[int] = None) -> List[Notification]:
        with self._lock:
            if actor_id is None:
                return list(self._history)
            return [n for n in self._history if n.actor_id == actor_id]
