"""Subscriber registry for webhook events.

Listeners are held in an immutable tuple that is replaced on every
registration change (copy-on-write). ``emit`` iterates the snapshot taken
when it starts, so a listener may unsubscribe itself or others mid-dispatch
without affecting the delivery in progress.
"""

from __future__ import annotations

import inspect
import logging
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

DATA_EVENT = "data"
_EVENTS = frozenset({DATA_EVENT})

Listener = Callable[[Any], Awaitable[None] | None]


@dataclass(frozen=True, slots=True, eq=False)
class _Subscription:
    listener: Listener
    once: bool


def _check_event(event: str) -> None:
    if event not in _EVENTS:
        msg = f"Unknown event '{event}' (supported: {', '.join(sorted(_EVENTS))})"
        raise ValueError(msg)


class EventRegistry:
    """Per-client registry of ``data`` event listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: tuple[_Subscription, ...] = ()

    def on(self, event: str, listener: Listener) -> Listener:
        """Register *listener* for every delivery. Returns *listener*."""
        _check_event(event)
        self._add(_Subscription(listener, once=False))
        return listener

    def once(self, event: str, listener: Listener) -> Listener:
        """Register *listener* for the next delivery only."""
        _check_event(event)
        self._add(_Subscription(listener, once=True))
        return listener

    def off(self, event: str, listener: Listener) -> bool:
        """Remove the most recently added registration of *listener*.

        Returns False if it was not registered.
        """
        _check_event(event)
        with self._lock:
            for idx in range(len(self._subs) - 1, -1, -1):
                if self._subs[idx].listener == listener:
                    self._subs = self._subs[:idx] + self._subs[idx + 1 :]
                    return True
        return False

    def remove_all_listeners(self, event: str | None = None) -> None:
        if event is not None:
            _check_event(event)
        with self._lock:
            self._subs = ()

    def listeners(self, event: str) -> list[Listener]:
        _check_event(event)
        return [s.listener for s in self._subs]

    def listener_count(self, event: str) -> int:
        _check_event(event)
        return len(self._subs)

    def _add(self, sub: _Subscription) -> None:
        with self._lock:
            self._subs = (*self._subs, sub)

    def _discard(self, sub: _Subscription) -> bool:
        """Drop one exact registration. Returns False if it was already gone."""
        with self._lock:
            if sub not in self._subs:
                return False
            self._subs = tuple(s for s in self._subs if s is not sub)
            return True

    async def emit(self, event: str, payload: Any) -> int:
        """Deliver *payload* to every listener registered when dispatch starts.

        Listeners run one after another in registration order; coroutine
        results are awaited before the next listener runs. A failing listener
        is logged and skipped. Returns the number of listeners invoked.
        """
        _check_event(event)
        snapshot = self._subs
        if not snapshot:
            logger.debug("No listeners for '%s', payload dropped", event)
            return 0

        delivered = 0
        for sub in snapshot:
            if sub.once and not self._discard(sub):
                continue
            delivered += 1
            try:
                result = sub.listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Listener %r failed for '%s'", sub.listener, event)
        return delivered
