"""rsched: asyncio client for the redis scheduler service."""

from rsched.client import SchedulerClient
from rsched.config import ClientConfig, WebhookConfig, load_config
from rsched.errors import (
    ConfigError,
    ProtocolError,
    RemoteError,
    SchedulerError,
    TransportError,
)
from rsched.models import ScheduleRecord, ScheduleRequest, ScheduleUpdate, StatsSnapshot

__all__ = [
    "ClientConfig",
    "ConfigError",
    "ProtocolError",
    "RemoteError",
    "ScheduleRecord",
    "ScheduleRequest",
    "ScheduleUpdate",
    "SchedulerClient",
    "SchedulerError",
    "StatsSnapshot",
    "TransportError",
    "WebhookConfig",
    "load_config",
]
