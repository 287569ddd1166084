"""Tests for webhook HTTP server (aiohttp)."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import MagicMock

import aiohttp
import pytest
from aiohttp.test_utils import TestClient, TestServer

from rsched.client import SchedulerClient
from rsched.config import WebhookConfig
from rsched.errors import ConfigError
from rsched.webhook.events import DATA_EVENT, EventRegistry
from rsched.webhook.server import ACK_BODY, WebhookServer

_TOKEN = "test-secret-token"
_ACK = {"status": 200, "message": "Webhook received successfully."}


def _make_config(**overrides: Any) -> WebhookConfig:
    defaults: dict[str, Any] = {
        "host": "127.0.0.1",
        "port": 0,
        "max_body_bytes": 1024,
    }
    defaults.update(overrides)
    return WebhookConfig(**defaults)


def _headers(token: str = _TOKEN) -> dict[str, str]:
    return {
        "Authorization": token,
        "Content-Type": "application/json",
    }


@pytest.fixture
def events() -> EventRegistry:
    return EventRegistry()


@pytest.fixture
async def server_client(events: EventRegistry) -> AsyncIterator[TestClient[Any, Any]]:
    """Create a test client with a real WebhookServer app."""
    server = WebhookServer(_make_config(), _TOKEN, events)
    client = TestClient(TestServer(server.build_app()))
    await client.start_server()
    yield client
    await client.close()


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


class TestDelivery:
    async def test_authorized_delivery_reaches_all_listeners_in_order(
        self, server_client: TestClient[Any, Any], events: EventRegistry
    ) -> None:
        calls: list[tuple[str, Any]] = []
        events.on(DATA_EVENT, lambda p: calls.append(("a", p)))
        events.on(DATA_EVENT, lambda p: calls.append(("b", p)))

        resp = await server_client.post(
            "/webhook", headers=_headers(), data=json.dumps({"job": "send-mail"})
        )

        assert resp.status == 200
        assert await resp.json() == _ACK
        assert calls == [("a", {"job": "send-mail"}), ("b", {"job": "send-mail"})]

    async def test_non_object_payload_is_delivered(
        self, server_client: TestClient[Any, Any], events: EventRegistry
    ) -> None:
        listener = MagicMock()
        events.on(DATA_EVENT, listener)
        await server_client.post("/webhook", headers=_headers(), data=json.dumps([1, "two"]))
        listener.assert_called_once_with([1, "two"])

    async def test_no_listeners_still_acknowledged(
        self, server_client: TestClient[Any, Any]
    ) -> None:
        resp = await server_client.post("/webhook", headers=_headers(), data="{}")
        assert resp.status == 200
        assert await resp.json() == _ACK

    async def test_failing_listener_does_not_change_ack(
        self, server_client: TestClient[Any, Any], events: EventRegistry
    ) -> None:
        good = MagicMock()
        events.on(DATA_EVENT, MagicMock(side_effect=RuntimeError("boom")))
        events.on(DATA_EVENT, good)

        resp = await server_client.post("/webhook", headers=_headers(), data='{"a": 1}')

        assert resp.status == 200
        assert await resp.json() == _ACK
        good.assert_called_once_with({"a": 1})


# ---------------------------------------------------------------------------
# Silent rejection
# ---------------------------------------------------------------------------


class TestSilentRejection:
    @pytest.mark.parametrize(
        "headers",
        [
            {"Content-Type": "application/json"},
            _headers("wrong-token"),
            _headers(f"Bearer {_TOKEN}"),
        ],
    )
    async def test_bad_auth_dispatches_nothing_with_identical_ack(
        self,
        server_client: TestClient[Any, Any],
        events: EventRegistry,
        headers: dict[str, str],
    ) -> None:
        listener = MagicMock()
        events.on(DATA_EVENT, listener)

        accepted = await server_client.post("/webhook", headers=_headers(), data='{"a": 1}')
        rejected = await server_client.post("/webhook", headers=headers, data='{"a": 1}')

        assert rejected.status == accepted.status == 200
        assert await rejected.read() == await accepted.read()
        listener.assert_called_once_with({"a": 1})

    async def test_invalid_json_dropped(
        self, server_client: TestClient[Any, Any], events: EventRegistry
    ) -> None:
        listener = MagicMock()
        events.on(DATA_EVENT, listener)
        resp = await server_client.post("/webhook", headers=_headers(), data="not json{{{")
        assert resp.status == 200
        assert await resp.json() == _ACK
        listener.assert_not_called()

    async def test_empty_body_dropped(
        self, server_client: TestClient[Any, Any], events: EventRegistry
    ) -> None:
        listener = MagicMock()
        events.on(DATA_EVENT, listener)
        resp = await server_client.post("/webhook", headers=_headers(), data=b"")
        assert resp.status == 200
        listener.assert_not_called()

    async def test_oversized_body_dropped(
        self, server_client: TestClient[Any, Any], events: EventRegistry
    ) -> None:
        listener = MagicMock()
        events.on(DATA_EVENT, listener)
        body = json.dumps({"blob": "x" * 4096})
        resp = await server_client.post("/webhook", headers=_headers(), data=body)
        assert resp.status == 200
        assert await resp.json() == _ACK
        listener.assert_not_called()

    async def test_ack_body_constant(self) -> None:
        assert ACK_BODY == _ACK


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestLifecycle:
    async def test_start_resolves_ephemeral_port_and_stop(self, events: EventRegistry) -> None:
        server = WebhookServer(_make_config(), _TOKEN, events)
        await server.start()
        try:
            assert server.running is True
            assert server.port
        finally:
            await server.stop()
        assert server.running is False

    async def test_custom_path(self, events: EventRegistry) -> None:
        listener = MagicMock()
        events.on(DATA_EVENT, listener)
        server = WebhookServer(_make_config(path="/hooks/rsched"), _TOKEN, events)
        client = TestClient(TestServer(server.build_app()))
        await client.start_server()
        try:
            resp = await client.post("/hooks/rsched", headers=_headers(), data="{}")
            assert resp.status == 200
            missing = await client.post("/webhook", headers=_headers(), data="{}")
            assert missing.status == 404
        finally:
            await client.close()
        listener.assert_called_once_with({})


# ---------------------------------------------------------------------------
# Client integration
# ---------------------------------------------------------------------------


class TestClientWebhook:
    async def test_delivery_through_connected_client(self, instance_url: str) -> None:
        received: list[Any] = []
        client = await SchedulerClient.connect(
            instance_url=instance_url,
            authorization="test-secret-token",
            webhook_port=0,
        )
        try:
            assert client.webhook_enabled is True
            client.on(DATA_EVENT, received.append)
            url = f"http://127.0.0.1:{client.webhook_port}/webhook"
            async with (
                aiohttp.ClientSession() as session,
                session.post(url, headers=_headers(), json={"job": 1}) as resp,
            ):
                assert resp.status == 200
                assert await resp.json() == _ACK
        finally:
            await client.close()

        assert received == [{"job": 1}]
        assert client.webhook_enabled is False
        assert client.listener_count(DATA_EVENT) == 0

    async def test_registries_are_per_client(self, instance_url: str) -> None:
        first = await SchedulerClient.connect(
            instance_url=instance_url, authorization="test-secret-token"
        )
        second = await SchedulerClient.connect(
            instance_url=instance_url, authorization="test-secret-token"
        )
        try:
            first.on(DATA_EVENT, MagicMock())
            assert first.listener_count(DATA_EVENT) == 1
            assert second.listener_count(DATA_EVENT) == 0
        finally:
            await first.close()
            await second.close()

    async def test_port_in_use_is_config_error(self, instance_url: str) -> None:
        holder = await SchedulerClient.connect(
            instance_url=instance_url, authorization="test-secret-token", webhook_port=0
        )
        try:
            with pytest.raises(ConfigError, match="webhook server"):
                await SchedulerClient.connect(
                    instance_url=instance_url,
                    authorization="test-secret-token",
                    webhook_port=holder.webhook_port,
                )
        finally:
            await holder.close()
