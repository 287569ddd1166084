"""Webhook HTTP server: aiohttp-based ingress for schedule deliveries."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from aiohttp import web

from rsched.log_context import set_log_context
from rsched.webhook.auth import validate_authorization
from rsched.webhook.events import DATA_EVENT

if TYPE_CHECKING:
    from rsched.config import WebhookConfig
    from rsched.webhook.events import EventRegistry

logger = logging.getLogger(__name__)

# Identical for accepted, rejected and dropped deliveries.
ACK_BODY: dict[str, Any] = {"status": 200, "message": "Webhook received successfully."}


class WebhookServer:
    """HTTP server accepting schedule deliveries and emitting them as ``data`` events.

    Routes:
    - ``POST /webhook`` (configurable) -- delivery endpoint.

    Authentication failures, unparseable bodies and oversized bodies are
    dropped without telling the sender: every request gets the same 200 ack.
    """

    def __init__(
        self,
        config: WebhookConfig,
        token: str,
        events: EventRegistry,
    ) -> None:
        self._config = config
        self._token = token
        self._events = events
        self._runner: web.AppRunner | None = None
        self._port: int | None = None

    @property
    def running(self) -> bool:
        return self._runner is not None

    @property
    def port(self) -> int | None:
        """Bound port (resolved when the config asks for port 0)."""
        return self._port

    def build_app(self) -> web.Application:
        app = web.Application(client_max_size=self._config.max_body_bytes)
        app.router.add_post(self._config.path, self._handle_webhook)
        return app

    async def start(self) -> None:
        """Create the aiohttp app and start listening."""
        runner = web.AppRunner(self.build_app(), access_log=None)
        await runner.setup()
        site = web.TCPSite(runner, self._config.host, self._config.port)
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        addresses = runner.addresses
        self._port = addresses[0][1] if addresses else self._config.port
        logger.info(
            "Webhook server listening on %s:%d%s",
            self._config.host,
            self._port,
            self._config.path,
        )

    async def stop(self) -> None:
        """Shut down the server."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Webhook server stopped")

    # -- Handlers --

    async def _handle_webhook(self, request: web.Request) -> web.Response:
        set_log_context(operation="wh")
        logger.debug("Webhook request received remote=%s", request.remote)

        try:
            raw_body = await request.read()
        except web.HTTPRequestEntityTooLarge:
            logger.warning("Webhook dropped: body exceeds %d bytes", self._config.max_body_bytes)
            return self._ack()

        try:
            payload: Any = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Webhook dropped: invalid JSON (%d bytes)", len(raw_body))
            return self._ack()

        auth_header = request.headers.get("Authorization", "")
        if not validate_authorization(auth_header, self._token):
            logger.warning("Webhook dropped: unauthorized remote=%s", request.remote)
            return self._ack()

        delivered = await self._events.emit(DATA_EVENT, payload)
        logger.info("Webhook delivered to %d listener(s)", delivered)
        return self._ack()

    @staticmethod
    def _ack() -> web.Response:
        return web.json_response(ACK_BODY, status=200)
