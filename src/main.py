"""
Kill Cooldown - Main Entry Point

Cooldown service for high-value kills. The host game server reports
attempted/completed kills over HTTP; cooldowns are shared across teams,
clans (and their allies) and friend lists.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from typing import Optional, Any

import structlog

from action_handler import ActionEventHandler
from action_server import ActionServer
from clock import MonotonicClock
from config import Config, load_config, validate_config
from cooldown_policy import CooldownPolicyEngine
from cooldown_store import CooldownStore
from messages import MessageCatalog, RecordingNotifier
from permissions import build_permissions
from relationship_resolver import RelationshipResolver
from relationship_sources import load_relationships

logger = structlog.get_logger()


def setup_logging(log_level: str, log_format: str) -> None:
    """
    Configure structured logging.

    Args:
        log_level: Logging level (debug, info, warning, error, critical)
        log_format: Output format ("json" or "console")
    """
    level_map: dict[str, int] = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    min_level = level_map.get(log_level.lower(), logging.INFO)

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(min_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logger.info("logging_configured", level=log_level, format=log_format)


class Application:
    """Main application orchestrator: owns the store and wires the engine."""

    def __init__(self, config: Optional[Config] = None, clock: Any = None) -> None:
        """
        Initialize application components.

        Args:
            config: Pre-built config (loaded from disk/env when None)
            clock: Time source (MonotonicClock when None)
        """
        self.config: Optional[Config] = config
        self.clock: Any = clock
        self.store: Optional[CooldownStore] = None
        self.resolver: Optional[RelationshipResolver] = None
        self.engine: Optional[CooldownPolicyEngine] = None
        self.notifier: Optional[RecordingNotifier] = None
        self.handler: Optional[ActionEventHandler] = None
        self.server: Optional[ActionServer] = None
        self.shutdown_event: asyncio.Event = asyncio.Event()

    def setup(self) -> None:
        """Load configuration and build the cooldown engine."""
        logger.info("application_starting")

        if self.config is None:
            try:
                self.config = load_config()
            except Exception as e:
                logger.error("config_load_failed", error=str(e))
                raise

        if not validate_config(self.config):
            raise ValueError("Configuration validation failed")

        setup_logging(self.config.log_level, self.config.log_format)

        if self.clock is None:
            self.clock = MonotonicClock()

        self.store = CooldownStore(self.clock)
        self.resolver = RelationshipResolver(
            sources=load_relationships(self.config.relationships_file),
            source_timeout=self.config.source_timeout_seconds,
        )
        self.engine = CooldownPolicyEngine(
            store=self.store,
            resolver=self.resolver,
            cooldown_seconds=self.config.cooldown_seconds,
        )
        self.notifier = RecordingNotifier(
            MessageCatalog(self.config.messages, language=self.config.language)
        )
        self.handler = ActionEventHandler(
            engine=self.engine,
            permissions=build_permissions(self.config.bypass_actors),
            notifier=self.notifier,
        )
        self.server = ActionServer(
            handler=self.handler,
            store=self.store,
            host=self.config.http_host,
            port=self.config.http_port,
            api_token=self.config.api_token,
            notifications=self.notifier,
        )

        logger.info(
            "application_configured",
            cooldown_minutes=self.config.cooldown_minutes,
            relationship_sources=self.resolver.sources.available(),
            http_port=self.config.http_port,
        )

    async def start(self) -> None:
        """Start serving action events."""
        assert self.server is not None, "Application not set up"
        await self.server.start()
        logger.info("application_running")

    async def stop(self) -> None:
        """Gracefully stop all components and drop cooldown state."""
        logger.info("application_stopping")

        if self.server is not None:
            try:
                await self.server.stop()
            except Exception as e:
                logger.error("action_server_stop_failed", error=str(e))

        if self.resolver is not None:
            self.resolver.close()

        # Cooldowns are process-local by design
        if self.store is not None:
            self.store.reset_all()

        logger.info("application_stopped")

    async def run(self) -> None:
        """Main application run loop."""
        try:
            self.setup()
            await self.start()
            await self.shutdown_event.wait()
        except KeyboardInterrupt:
            logger.info("received_keyboard_interrupt")
        except Exception as e:
            logger.error("application_error", error=str(e), exc_info=True)
            raise
        finally:
            await self.stop()


async def main() -> None:
    """Main async entry point."""
    app = Application()

    # Signal handlers for graceful shutdown
    def _signal_handler(signum: int, frame: Any) -> None:
        logger.info("received_signal", signal=signal.Signals(signum).name)
        app.shutdown_event.set()

    # Only register signals on real OS (not always available on Windows/threads)
    try:
        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)
    except ValueError:
        logger.debug("signal_handlers_unavailable")

    try:
        await app.run()
    except Exception as e:
        logger.error("fatal_error", error=str(e), exc_info=True)
        sys.exit(1)


def run() -> None:
    """Console script entry point."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutdown complete.")
        sys.exit(0)


if __name__ == "__main__":
    run()
