"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from aiohttp.test_utils import TestServer

from rsched.client import SchedulerClient
from tests.fake_scheduler import TOKEN, FakeScheduler


@pytest.fixture
def fake() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
async def service(fake: FakeScheduler) -> AsyncIterator[TestServer]:
    """Running fake scheduler on an ephemeral port."""
    server = TestServer(fake.build_app())
    await server.start_server()
    yield server
    await server.close()


@pytest.fixture
def instance_url(service: TestServer) -> str:
    return str(service.make_url("/"))


@pytest.fixture
async def client(instance_url: str) -> AsyncIterator[SchedulerClient]:
    """Connected client without a webhook receiver."""
    c = await SchedulerClient.connect(instance_url=instance_url, authorization=TOKEN)
    yield c
    await c.close()
