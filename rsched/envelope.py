"""Envelope codec: every service response is ``{status, data}`` or ``{status, error}``.

The codec is a pure transform over a single response body. It never retries
and never swallows a failure: each one is raised as a `SchedulerError` subclass.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from rsched.errors import ProtocolError, RemoteError, TransportError

logger = logging.getLogger(__name__)

STATUS_OK = 200


@dataclass(frozen=True, slots=True)
class Success:
    """Success envelope carrying the response payload."""

    data: Any
    status: int = STATUS_OK


@dataclass(frozen=True, slots=True)
class Failure:
    """Failure envelope carrying the server-provided message."""

    status: int | None
    error: str


Envelope = Success | Failure


def _failure_message(body: dict[str, Any], status: Any) -> str:
    error = body.get("error")
    if error is not None:
        return str(error)
    # Auth rejections come back as {"status": 401, "data": "Unauthorized."}
    data = body.get("data")
    if isinstance(data, str) and data:
        return data
    return f"Request failed with status {status}"


def parse_envelope(body: Any) -> Envelope:
    """Classify a decoded response body as `Success` or `Failure`.

    Raises `ProtocolError` when the body is not an envelope at all.
    """
    if not isinstance(body, dict):
        msg = f"Expected a JSON object envelope, got {type(body).__name__}"
        raise ProtocolError(msg)

    status = body.get("status")
    if "error" in body or status != STATUS_OK:
        code = status if isinstance(status, int) and not isinstance(status, bool) else None
        return Failure(status=code, error=_failure_message(body, status))

    if "data" not in body:
        msg = "Success envelope is missing 'data'"
        raise ProtocolError(msg)
    return Success(data=body["data"])


def unwrap(body: Any) -> Any:
    """Return the ``data`` of a success envelope or raise.

    ``None`` stands for "no response reached us" and raises `TransportError`.
    """
    if body is None:
        msg = "No response received from scheduler"
        raise TransportError(msg)

    envelope = parse_envelope(body)
    if isinstance(envelope, Failure):
        logger.debug("Remote failure status=%s error=%s", envelope.status, envelope.error)
        raise RemoteError(envelope.error, status=envelope.status)
    return envelope.data


def decode_body(raw: bytes) -> Any:
    """Decode a raw response body as JSON, raising `ProtocolError` on failure."""
    if not raw.strip():
        msg = "Empty response body"
        raise ProtocolError(msg)
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"Response body is not valid JSON: {exc}"
        raise ProtocolError(msg) from exc
