"""Client configuration: validated, immutable for the lifetime of a client."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from yarl import URL

from rsched.errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "RSCHED_"


class WebhookConfig(BaseModel):
    """Settings for the inbound webhook receiver."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(ge=0, le=65535)
    path: str = "/webhook"
    max_body_bytes: int = Field(default=262144, gt=0)

    @field_validator("path")
    @classmethod
    def _path_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            msg = "webhook path must start with '/'"
            raise ValueError(msg)
        return value


class ClientConfig(BaseModel):
    """Connection settings shared by the scheduler client and the webhook receiver."""

    model_config = ConfigDict(frozen=True)

    instance_url: str
    # Sent verbatim on every request and expected verbatim on every delivery.
    authorization: str = Field(min_length=1, repr=False)
    webhook: WebhookConfig | None = None
    timeout: float | None = Field(default=None, gt=0)

    @field_validator("instance_url")
    @classmethod
    def _valid_instance_url(cls, value: str) -> str:
        if not value:
            msg = "instance URL is required"
            raise ValueError(msg)
        try:
            url = URL(value)
        except (ValueError, TypeError) as exc:
            msg = f"invalid instance URL: {value!r}"
            raise ValueError(msg) from exc
        if not url.is_absolute() or url.scheme not in ("http", "https") or not url.host:
            msg = f"instance URL must be an absolute http(s) URL with a host: {value!r}"
            raise ValueError(msg)
        return value.rstrip("/")

    @property
    def base_url(self) -> URL:
        return URL(self.instance_url)

    @property
    def webhook_enabled(self) -> bool:
        return self.webhook is not None


def build_config(
    *,
    instance_url: str,
    authorization: str,
    webhook_port: int | None = None,
    webhook_host: str | None = None,
    timeout: float | None = None,
) -> ClientConfig:
    """Validate keyword settings into a `ClientConfig`, raising `ConfigError`."""
    data: dict[str, Any] = {
        "instance_url": instance_url,
        "authorization": authorization,
        "timeout": timeout,
    }
    if webhook_port is not None:
        webhook: dict[str, Any] = {"port": webhook_port}
        if webhook_host:
            webhook["host"] = webhook_host
        data["webhook"] = webhook
    return validate_config(data)


def validate_config(data: dict[str, Any]) -> ClientConfig:
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def load_config(
    path: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ClientConfig:
    """Load settings from an optional JSON file, overlaid with ``RSCHED_*`` env vars.

    Recognized variables: ``RSCHED_INSTANCE_URL``, ``RSCHED_AUTHORIZATION``,
    ``RSCHED_WEBHOOK_PORT``, ``RSCHED_WEBHOOK_HOST``. Non-None *overrides*
    (command line flags) win over both.
    """
    data: dict[str, Any] = {}
    if path is not None:
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError) as exc:
            msg = f"Failed to read config file {path}: {exc}"
            raise ConfigError(msg) from exc
        if not isinstance(data, dict):
            msg = f"Config file {path} must contain a JSON object"
            raise ConfigError(msg)
        logger.debug("Loaded config file %s", path)

    env = os.environ
    if url := env.get(f"{ENV_PREFIX}INSTANCE_URL"):
        data["instance_url"] = url
    if token := env.get(f"{ENV_PREFIX}AUTHORIZATION"):
        data["authorization"] = token

    port = env.get(f"{ENV_PREFIX}WEBHOOK_PORT")
    host = env.get(f"{ENV_PREFIX}WEBHOOK_HOST")
    if port or host:
        webhook = dict(data.get("webhook") or {})
        if port:
            webhook["port"] = port
        if host:
            webhook["host"] = host
        data["webhook"] = webhook

    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key == "webhook" and isinstance(value, dict):
            data["webhook"] = {**(data.get("webhook") or {}), **value}
        else:
            data[key] = value

    return validate_config(data)
