"""Project-level exception hierarchy."""

from __future__ import annotations


class SchedulerError(Exception):
    """Base for all rsched exceptions."""


class ConfigError(SchedulerError):
    """Client configuration is invalid or the instance failed its liveness probe."""


class TransportError(SchedulerError):
    """No response reached the client (connection refused, timeout, reset)."""


class RemoteError(SchedulerError):
    """The service answered with a non-success envelope."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class ProtocolError(SchedulerError):
    """A response body violates the envelope or record shape."""
