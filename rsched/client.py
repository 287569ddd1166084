"""Scheduler client: typed operations over the service's HTTP API."""

from __future__ import annotations

import logging
from types import TracebackType
from typing import Any, Self
from urllib.parse import quote

import aiohttp
from yarl import URL

from rsched.config import ClientConfig, WebhookConfig, build_config
from rsched.envelope import decode_body, unwrap
from rsched.errors import ConfigError, ProtocolError, SchedulerError, TransportError
from rsched.log_context import log_scope
from rsched.models import ScheduleRecord, ScheduleRequest, ScheduleUpdate, StatsSnapshot
from rsched.webhook.events import EventRegistry, Listener
from rsched.webhook.server import WebhookServer

logger = logging.getLogger(__name__)

# Schedule keys look like "rsch-ref:default:<id>"; ":" stays readable in the path.
_KEY_SAFE = ":@"


class SchedulerClient:
    """Client for one scheduler instance.

    Build it with ``await SchedulerClient.connect(...)``: construction validates
    the configuration and probes the instance, so a returned client is known
    to be usable. When the config carries a webhook section, the client also
    owns a webhook receiver whose deliveries reach listeners registered with
    `on` / `once`.

    Use as an async context manager, or call `close` when done.
    """

    def __init__(
        self,
        config: ClientConfig,
        session: aiohttp.ClientSession,
    ) -> None:
        self._config = config
        self._session = session
        self._base = config.base_url
        self._events = EventRegistry()
        self._webhook: WebhookServer | None = None
        self._closed = False

    @classmethod
    async def connect(
        cls,
        config: ClientConfig | None = None,
        *,
        instance_url: str | None = None,
        authorization: str | None = None,
        webhook_port: int | None = None,
    ) -> SchedulerClient:
        """Validate *config*, probe the instance and start the webhook receiver.

        Raises `ConfigError` if the URL is malformed, the liveness probe does
        not return a success envelope, or the webhook port cannot be bound.
        """
        if config is None:
            config = build_config(
                instance_url=instance_url or "",
                authorization=authorization or "",
                webhook_port=webhook_port,
            )

        # total=None lifts aiohttp's default 5 minute cap
        session = aiohttp.ClientSession(
            headers=_headers(config.authorization),
            timeout=aiohttp.ClientTimeout(total=config.timeout),
        )
        client = cls(config, session)
        try:
            await client._probe()
            if config.webhook is not None:
                await client._start_webhook(config.webhook)
        except BaseException:
            await client.close()
            raise
        logger.info("Connected to scheduler at %s", config.instance_url)
        return client

    async def close(self) -> None:
        """Stop the webhook receiver and close the HTTP session. Idempotent."""
        if self._closed:
            return
        self._closed = True
        if self._webhook is not None:
            await self._webhook.stop()
            self._webhook = None
        await self._session.close()
        self._events.remove_all_listeners()
        logger.debug("Scheduler client closed")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def webhook_enabled(self) -> bool:
        return self._webhook is not None

    @property
    def webhook_port(self) -> int | None:
        return self._webhook.port if self._webhook else None

    # -- Schedules --

    async def schedule(self, request: ScheduleRequest) -> str:
        """Create a schedule and return the key the service assigned to it."""
        data = await self._request("POST", "schedule", json=request.to_dict())
        if isinstance(data, dict) and isinstance(data.get("key"), str):
            key: str = data["key"]
        elif isinstance(data, str) and data:
            key = data
        else:
            msg = f"Schedule response carries no key: {data!r}"
            raise ProtocolError(msg)
        logger.info("Scheduled key=%s ttl=%ds", key, request.ttl)
        return key

    async def get_schedule(self, key: str) -> ScheduleRecord:
        data = await self._request("GET", "schedule", key)
        return ScheduleRecord.from_dict(data)

    async def get_all_schedules(self) -> list[ScheduleRecord]:
        data = await self._request("GET", "schedules")
        if not isinstance(data, list):
            msg = f"Expected a list of schedules, got {type(data).__name__}"
            raise ProtocolError(msg)
        return [ScheduleRecord.from_dict(item) for item in data]

    async def update_schedule(self, key: str, update: ScheduleUpdate) -> bool:
        """Patch a schedule. True when the service returned a non-empty success body."""
        return bool(await self._request("PATCH", "schedule", key, json=update.to_dict()))

    async def delete_schedule(self, key: str) -> bool:
        return bool(await self._request("DELETE", "schedule", key))

    async def delete_all_schedules(self) -> bool:
        return bool(await self._request("DELETE", "schedules"))

    async def get_stats(self) -> StatsSnapshot:
        return StatsSnapshot.from_wire(await self._request("GET", "stats"))

    # -- Events --

    def on(self, event: str, listener: Listener) -> Listener:
        return self._events.on(event, listener)

    def once(self, event: str, listener: Listener) -> Listener:
        return self._events.once(event, listener)

    def off(self, event: str, listener: Listener) -> bool:
        return self._events.off(event, listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        self._events.remove_all_listeners(event)

    def listeners(self, event: str) -> list[Listener]:
        return self._events.listeners(event)

    def listener_count(self, event: str) -> int:
        return self._events.listener_count(event)

    # -- Internals --

    async def _probe(self) -> None:
        with log_scope(operation="req"):
            try:
                await self._send("GET", self._base)
            except SchedulerError as exc:
                msg = f"Invalid instance URL {self._config.instance_url}: {exc}"
                raise ConfigError(msg) from exc

    async def _start_webhook(self, webhook: WebhookConfig) -> None:
        server = WebhookServer(webhook, self._config.authorization, self._events)
        try:
            await server.start()
        except OSError as exc:
            msg = f"Failed to start webhook server on port {webhook.port}: {exc}"
            raise ConfigError(msg) from exc
        self._webhook = server

    async def _request(
        self,
        method: str,
        resource: str,
        key: str | None = None,
        *,
        json: dict[str, Any] | None = None,
    ) -> Any:
        url = resource_url(self._base, resource, key)
        with log_scope(operation="req", key=key):
            return await self._send(method, url, json=json)

    async def _send(self, method: str, url: URL, *, json: dict[str, Any] | None = None) -> Any:
        if self._closed:
            msg = "Client is closed"
            raise TransportError(msg)
        logger.debug("%s %s", method, url)
        try:
            async with self._session.request(method, url, json=json) as resp:
                raw = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            msg = f"{method} {url} failed: {exc or type(exc).__name__}"
            raise TransportError(msg) from exc

        logger.debug("%s %s -> HTTP %d (%d bytes)", method, url, status, len(raw))
        return unwrap(decode_body(raw))


def resource_url(base: URL, resource: str, key: str | None = None) -> URL:
    """Join *resource* and *key* onto *base*, keeping *key* a single path segment."""
    if key is None:
        return base.joinpath(resource)
    return base.joinpath(resource, quote(key, safe=_KEY_SAFE), encoded=True)


def _headers(token: str) -> dict[str, str]:
    return {
        "Authorization": token,
        "Content-Type": "application/json",
    }
