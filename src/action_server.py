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
HTTP API the host game server calls on restricted-action events.

Endpoints:
- GET  /health                  liveness + store size
- GET  /                        service info
- POST /actions/attempted       {"actor_id": int, "is_npc": bool} -> verdict
- POST /actions/completed       {"actor_id": int, "is_npc": bool} -> cooldown started
- GET  /cooldowns/{actor_id}    actor's own cooldown state
- GET  /notifications/{actor_id} recent messages delivered to the actor

Event handling runs in a worker thread so slow relationship lookups never
block the event loop.
"""

import asyncio
import hmac
from typing import Any, Dict, Optional

from aiohttp import web
import structlog

from action_handler import ActionEvent, ActionEventHandler
from cooldown_store import CooldownStore
from messages import RecordingNotifier
from relationship_sources import parse_actor_id

logger = structlog.get_logger()

SERVICE_NAME = "kill-cooldown"


class RequestError(Exception):
    """Client sent an unusable request body."""
    pass


class ActionServer:
    """aiohttp server exposing the action event handler."""

    def __init__(
        self,
        handler: ActionEventHandler,
        store: CooldownStore,
        host: str = "0.0.0.0",
        port: int = 8080,
        api_token: Optional[str] = None,
        notifications: Optional[RecordingNotifier] = None,
    ):
        """
        Initialize action server.

        Args:
            handler: Action event handler to dispatch to
            store: Cooldown store (read-only here, for status endpoints)
            host: Host to bind to (default: 0.0.0.0)
            port: Port to bind to (default: 8080)
            api_token: If set, action/cooldown routes require this bearer token
            notifications: Notifier whose history backs /notifications
        """
        self.handler = handler
        self.store = store
        self.host = host
        self.port = port
        self.api_token = api_token
        self.notifications = notifications
        self.app = web.Application(middlewares=[self._auth_middleware])
        self.runner: Optional[web.AppRunner] = None
        self.site: Optional[web.TCPSite] = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Configure HTTP routes."""
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/", self.root_handler)
        self.app.router.add_post("/actions/attempted", self.attempted_handler)
        self.app.router.add_post("/actions/completed", self.completed_handler)
        self.app.router.add_get("/cooldowns/{actor_id}", self.cooldown_handler)
        self.app.router.add_get("/notifications/{actor_id}", self.notifications_handler)

    @web.middleware
    async def _auth_middleware(self, request: web.Request, handler: Any) -> web.StreamResponse:
        if self.api_token and request.path not in ("/", "/health"):
            header = request.headers.get("Authorization", "")
            expected = f"Bearer {self.api_token}"
            if not hmac.compare_digest(header.encode(), expected.encode()):
                logger.warning("action_api_unauthorized", path=request.path)
                return web.json_response({"error": "unauthorized"}, status=401)
        return await handler(request)

    async def health_handler(self, request: web.Request) -> web.Response:
        """
        Health check endpoint.

        Returns:
            200 OK with status info
        """
        return web.json_response({
            "status": "healthy",
            "service": SERVICE_NAME,
            "active_records": len(self.store),
        })

    async def root_handler(self, request: web.Request) -> web.Response:
        """
        Root endpoint.

        Returns:
            200 OK with service info
        """
        return web.json_response({
            "service": SERVICE_NAME,
            "endpoints": {
                "health": "/health",
                "attempted": "/actions/attempted",
                "completed": "/actions/completed",
                "cooldown": "/cooldowns/{actor_id}",
                "notifications": "/notifications/{actor_id}",
            }
        })

    @staticmethod
    async def _read_event(request: web.Request) -> ActionEvent:
        try:
            body = await request.json()
        except ValueError:
            raise RequestError("request body must be JSON")

        if not isinstance(body, dict):
            raise RequestError("request body must be a JSON object")

        raw_actor = body.get("actor_id")
        actor_id = parse_actor_id(raw_actor) if isinstance(raw_actor, int) else None
        if actor_id is None:
            raise RequestError("actor_id must be a non-negative integer")

        is_npc = body.get("is_npc", False)
        if not isinstance(is_npc, bool):
            raise RequestError("is_npc must be a boolean")

        return ActionEvent(actor_id=actor_id, is_npc=is_npc)

    @staticmethod
    def _bad_request(error: RequestError) -> web.Response:
        return web.json_response({"error": str(error)}, status=400)

    async def attempted_handler(self, request: web.Request) -> web.Response:
        """Handle an attempted action; allowed=false means neutralize it."""
        try:
            event = await self._read_event(request)
        except RequestError as e:
            return self._bad_request(e)

        verdict = await asyncio.to_thread(self.handler.on_action_attempted, event)
        return web.json_response(verdict.to_dict())

    async def completed_handler(self, request: web.Request) -> web.Response:
        """Handle a completed action; starts the actor's cooldown."""
        try:
            event = await self._read_event(request)
        except RequestError as e:
            return self._bad_request(e)

        duration = await asyncio.to_thread(self.handler.on_action_completed, event)
        payload: Dict[str, Any] = {
            "cooldown_started": duration is not None,
            "duration_seconds": duration,
        }
        return web.json_response(payload)

    async def cooldown_handler(self, request: web.Request) -> web.Response:
        """Report one actor's own cooldown (related actors are not expanded)."""
        actor_id = parse_actor_id(request.match_info["actor_id"])
        if actor_id is None:
            return self._bad_request(RequestError("actor_id must be a non-negative integer"))

        active, remaining = self.store.is_active(actor_id)
        return web.json_response({
            "actor_id": actor_id,
            "active": active,
            "remaining_seconds": round(remaining, 3),
        })

    async def notifications_handler(self, request: web.Request) -> web.Response:
        """Messages recently delivered to one actor, oldest first."""
        if self.notifications is None:
            return web.json_response({"error": "notification history disabled"}, status=404)

        actor_id = parse_actor_id(request.match_info["actor_id"])
        if actor_id is None:
            return self._bad_request(RequestError("actor_id must be a non-negative integer"))

        return web.json_response({
            "actor_id": actor_id,
            "notifications": [
                {
                    "kind": n.kind,
                    "duration_seconds": round(n.duration_seconds, 3),
                    "message": n.message,
                }
                for n in self.notifications.history(actor_id)
            ],
        })

    async def start(self) -> None:
        """Start the action server."""
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()

        self.site = web.TCPSite(
            self.runner,
            self.host,
            self.port
        )
        await self.site.start()

        logger.info(
            "action_server_started",
            host=self.host,
            port=self.port,
            auth=bool(self.api_token),
        )

    async def stop(self) -> None:
        """Stop the action server."""
        if self.site is not None:
            await self.site.stop()

        if self.runner is not None:
            await self.runner.cleanup()

        logger.info("action_server_stopped")
