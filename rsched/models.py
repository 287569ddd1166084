"""Schedule and stats data models with wire (de)serialization."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from rsched.errors import ProtocolError

_UNSET: Any = object()


@dataclass(frozen=True)
class ScheduleRequest:
    """A task to be scheduled.

    There is no retry field: the service assigns the retry counter itself.
    """

    webhook: str
    ttl: int  # seconds until the webhook fires
    payload: Any = None

    def __post_init__(self) -> None:
        if self.ttl < 0:
            msg = f"ttl must be >= 0, got {self.ttl}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        return {"webhook": self.webhook, "ttl": self.ttl, "data": self.payload}


@dataclass(frozen=True)
class ScheduleUpdate:
    """Partial update for an existing schedule. Only supplied fields are sent."""

    webhook: str | None = None
    ttl: int | None = None
    retry: int | None = None
    payload: Any = _UNSET

    def __post_init__(self) -> None:
        if self.ttl is not None and self.ttl < 0:
            msg = f"ttl must be >= 0, got {self.ttl}"
            raise ValueError(msg)
        if self.retry is not None and self.retry < 0:
            msg = f"retry must be >= 0, got {self.retry}"
            raise ValueError(msg)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if self.webhook is not None:
            body["webhook"] = self.webhook
        if self.ttl is not None:
            body["ttl"] = self.ttl
        if self.retry is not None:
            body["retry"] = self.retry
        if self.payload is not _UNSET:
            body["data"] = self.payload
        return body


@dataclass(frozen=True)
class ScheduleRecord:
    """A schedule as reported by the service. ``key`` is its only stable identifier."""

    key: str
    ttl: int
    retry: int
    webhook: str
    expires_at: datetime
    payload: Any = None

    @classmethod
    def from_dict(cls, data: Any) -> ScheduleRecord:
        """Build from the wire form ``{"info": {...}, "data": ...}``."""
        try:
            info = data["info"]
            return cls(
                key=str(info["key"]),
                ttl=int(info["ttl"]),
                retry=int(info.get("retry", 0)),
                webhook=str(info["webhook"]),
                expires_at=datetime.fromisoformat(info["expires"]),
                payload=data.get("data"),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            msg = f"Malformed schedule record: {exc!r}"
            raise ProtocolError(msg) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "ttl": self.ttl,
            "retryCount": self.retry,
            "webhook": self.webhook,
            "expiresAt": self.expires_at.isoformat(),
            "payload": self.payload,
        }


# wire field -> attribute. Pure rename, values pass through untouched.
_STATS_FIELDS: dict[str, str] = {
    "total_redis_keys": "total_keys",
    "running_schedules": "running_schedules",
    "cpu_usage": "cpu_usage_percent",
    "ram_usage": "ram_usage_percent",
    "ram_usage_bytes": "ram_usage_bytes",
    "system_uptime": "system_uptime",
    "go_routines": "worker_count",
}


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    """Point-in-time service statistics."""

    total_keys: int
    running_schedules: int
    cpu_usage_percent: float
    ram_usage_percent: str  # pre-formatted by the server, e.g. "30%" or "12.5 MB"
    ram_usage_bytes: int
    system_uptime: str
    worker_count: int

    @classmethod
    def from_wire(cls, raw: Any) -> StatsSnapshot:
        try:
            return cls(**{attr: raw[wire] for wire, attr in _STATS_FIELDS.items()})
        except (KeyError, TypeError) as exc:
            msg = f"Malformed stats payload: {exc!r}"
            raise ProtocolError(msg) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalKeys": self.total_keys,
            "runningSchedules": self.running_schedules,
            "cpuUsagePercent": self.cpu_usage_percent,
            "ramUsagePercent": self.ram_usage_percent,
            "ramUsageBytes": self.ram_usage_bytes,
            "systemUptime": self.system_uptime,
            "workerCount": self.worker_count,
        }
