"""In-process publish/subscribe bus connecting the engine lifecycle to the reactor.

Handlers run inline on the event loop, one after another, in the order they
subscribed. A handler must never publish synchronously while a delivery is in
progress; anything that produces a new event goes through
:meth:`EventBus.publish_deferred`, which lets the current delivery unwind
before the new one starts.
"""

from __future__ import annotations

import asyncio
import contextvars
import inspect
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

logger = logging.getLogger(__name__)

Handler = Callable[..., Union[Awaitable[None], None]]

_delivering: contextvars.ContextVar[Optional["EventKind"]] = contextvars.ContextVar(
    "event_bus_delivering", default=None
)


class EventKind(str, Enum):
    MESSAGE_RESPONSE_ARRIVED = "message-response-arrived"
    MESSAGE_RESPONSE_UPDATED = "message-response-updated"
    MODEL_READY = "model-ready"
    MODEL_LOAD_FAILED = "model-load-failed"
    MODEL_STOPPED = "model-stopped"
    MESSAGE_SEND_REQUESTED = "message-send-requested"


class ReentrantPublishError(RuntimeError):
    """Raised when a handler publishes synchronously from inside a delivery."""


class EventBus:
    """Process-wide channel carrying typed lifecycle events."""

    def __init__(self) -> None:
        self._handlers: dict[EventKind, list[Handler]] = defaultdict(list)

    def subscribe(self, kind: EventKind, handler: Handler) -> None:
        handlers = self._handlers[kind]
        if handler in handlers:
            return
        handlers.append(handler)
        logger.debug("Subscribed %s to %s", getattr(handler, "__qualname__", handler), kind.value)

    def unsubscribe(self, kind: EventKind, handler: Handler) -> None:
        handlers = self._handlers.get(kind)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        logger.debug("Unsubscribed %s from %s", getattr(handler, "__qualname__", handler), kind.value)

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._handlers.get(kind, ()))

    async def publish(self, kind: EventKind, payload: Any = None) -> None:
        current = _delivering.get()
        if current is not None:
            raise ReentrantPublishError(
                f"Cannot publish {kind.value} while delivering {current.value}; use publish_deferred"
            )

        # Snapshot so handlers may unsubscribe during delivery.
        handlers = list(self._handlers.get(kind, ()))
        if not handlers:
            logger.debug("No subscribers for %s", kind.value)
            return

        token = _delivering.set(kind)
        try:
            for handler in handlers:
                try:
                    result = handler() if payload is None else handler(payload)
                    if inspect.isawaitable(result):
                        await result
                except Exception:
                    logger.exception("Handler %s failed on %s", getattr(handler, "__qualname__", handler), kind.value)
        finally:
            _delivering.reset(token)

    def publish_deferred(self, kind: EventKind, payload: Any = None, delay: float = 0.0) -> asyncio.Task:
        """Schedule ``publish`` on its own task, outside any delivery in progress."""
        loop = asyncio.get_running_loop()
        return loop.create_task(
            self._publish_after(kind, payload, delay),
            name=f"publish-{kind.value}",
            context=contextvars.Context(),
        )

    async def _publish_after(self, kind: EventKind, payload: Any, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        else:
            await asyncio.sleep(0)
        await self.publish(kind, payload)
