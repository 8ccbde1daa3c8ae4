"""Synchronous in-process event bus.

Handlers subscribe to an event name or to ``"*"`` (every event). Each handler
receives its own copy of the payload with ``event`` and ``ts`` filled in. A
failing handler is logged and counted; the remaining handlers still run and
the emitter never sees the exception.

Every SessionStore owns a bus (its observers are the UI layer); the
module-level bus carries process-wide events such as quota and tool calls.
"""
from __future__ import annotations

import logging
from threading import RLock
from time import time
from typing import Any, Callable, Dict, List, Tuple

from chatcore import metrics

Handler = Callable[[Dict[str, Any]], None]

WILDCARD = "*"

logger = logging.getLogger("chatdesk.eventbus")


class EventBus:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[Handler]] = {}
        self._lock = RLock()

    def subscribe(self, event: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler``; the returned callable removes it again."""
        with self._lock:
            self._handlers.setdefault(event, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event)
                if handlers and handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def _targets(self, event: str) -> Tuple[Handler, ...]:
        with self._lock:
            return tuple(self._handlers.get(event, ())) + tuple(
                self._handlers.get(WILDCARD, ())
            )

    def emit(self, event: str, payload: Dict[str, Any]) -> int:
        """Deliver to matching handlers; returns how many raised."""
        payload.setdefault("ts", time())
        labels = {"event": event}
        metrics.inc("events_emitted_total", labels)
        failed = 0
        with metrics.timed("event_dispatch_ms", labels):
            for handler in self._targets(event):
                try:
                    handler({**payload, "event": event})
                except Exception:  # noqa: BLE001
                    failed += 1
                    metrics.inc("handler_exceptions_total", labels)
                    logger.exception("event handler failed event=%s", event)
        return failed

    def handler_count(self, event: str | None = None) -> int:
        with self._lock:
            if event is None:
                return sum(len(v) for v in self._handlers.values())
            return len(self._handlers.get(event, ()))

    def reset_for_tests(self) -> None:
        with self._lock:
            self._handlers.clear()


_BUS = EventBus()


def get_bus() -> EventBus:
    return _BUS


def subscribe(event: str, handler: Handler) -> Callable[[], None]:
    return _BUS.subscribe(event, handler)


def emit(event: str, payload: Dict[str, Any]) -> int:
    return _BUS.emit(event, payload)


__all__ = ["EventBus", "Handler", "WILDCARD", "emit", "get_bus", "subscribe"]
