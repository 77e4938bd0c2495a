"""Reactor bridging engine lifecycle events and the conversation state.

Handlers are registered once and may fire long after activation, so they
never close over historical values: threads, messages and the active model
are read from :class:`Snapshot` mirrors that observation keeps current.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from typing import Any, Coroutine, Generic, Optional, Protocol, TypeVar

from src.config.configuration import ReactorConfiguration

from .events import EventBus, EventKind
from .models import (
    ChatRole,
    MessageRequestType,
    MessageStatus,
    Model,
    ModelLoadFailure,
    ModelLoadStatus,
    ModelState,
    Thread,
    ThreadMessage,
)
from .notifications import LoggingNotifier, NotificationKind, Notifier
from .state import ConversationState, LatestValue
from .title import build_title_request, extract_title, needs_title

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ThreadPersistence(Protocol):
    async def save_thread(self, thread: Thread) -> None: ...

    async def append_message(self, message: ThreadMessage) -> None: ...


class Snapshot(Generic[T]):
    """Read-only mirror of a state cell, refreshed whenever the cell changes."""

    def __init__(self, cell: LatestValue[T]) -> None:
        self._cell = cell
        self._value: T = cell.get()
        self._unobserve = None

    @property
    def value(self) -> T:
        return self._value

    def start(self) -> None:
        if self._unobserve is None:
            self._unobserve = self._cell.observe(self._refresh)

    def stop(self) -> None:
        if self._unobserve is not None:
            self._unobserve()
            self._unobserve = None

    def _refresh(self, value: T) -> None:
        self._value = value


class Reactor:
    def __init__(
        self,
        bus: EventBus,
        state: ConversationState,
        persistence: ThreadPersistence,
        notifier: Optional[Notifier] = None,
        configuration: Optional[ReactorConfiguration] = None,
    ) -> None:
        self._bus = bus
        self._state = state
        self._persistence = persistence
        self._notifier = notifier or LoggingNotifier()
        self._configuration = configuration or ReactorConfiguration()

        self._threads = Snapshot(state.threads)
        self._messages = Snapshot(state.messages)
        self._active_model = Snapshot(state.active_model)

        self._deferred: set[asyncio.Task] = set()
        self._pending_stop: Optional[asyncio.Task] = None
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def _subscriptions(self):
        return (
            (EventKind.MESSAGE_RESPONSE_ARRIVED, self.on_new_message_response),
            (EventKind.MESSAGE_RESPONSE_UPDATED, self.on_message_response_update),
            (EventKind.MODEL_READY, self.on_model_ready),
            (EventKind.MODEL_LOAD_FAILED, self.on_model_init_failed),
            (EventKind.MODEL_STOPPED, self.on_model_stopped),
        )

    def activate(self) -> None:
        for snapshot in (self._threads, self._messages, self._active_model):
            snapshot.start()
        for kind, handler in self._subscriptions():
            self._bus.subscribe(kind, handler)
        if not self._active:
            logger.info("Reactor registered event handlers")
        self._active = True

    def deactivate(self) -> None:
        for kind, handler in self._subscriptions():
            self._bus.unsubscribe(kind, handler)
        for snapshot in (self._threads, self._messages, self._active_model):
            snapshot.stop()

        # Deferred work must not run against a torn-down reactor.
        pending = [task for task in self._deferred if not task.done()]
        for task in pending:
            task.cancel()
        self._pending_stop = None
        if self._active:
            logger.info("Reactor unregistered event handlers, cancelled %d deferred task(s)", len(pending))
        self._active = False

    async def wait_idle(self) -> None:
        """Wait until every deferred callback scheduled so far has run."""
        while self._deferred:
            await asyncio.gather(*list(self._deferred), return_exceptions=True)

    # -- message events --------------------------------------------------------

    async def on_new_message_response(self, message: ThreadMessage) -> None:
        if message.type is MessageRequestType.THREAD:
            self._state.add_new_message(message)

    async def on_message_response_update(self, message: ThreadMessage) -> None:
        if message.type is MessageRequestType.SUMMARY:
            await self._update_thread_title(message)
        else:
            await self._update_thread_message(message)

    async def _update_thread_title(self, message: ThreadMessage) -> None:
        # Only a completed summarization may become the title.
        if message.status is MessageStatus.PENDING:
            return

        thread = self._find_thread(message.thread_id)
        title = extract_title(message)
        if thread is None or title is None:
            logger.debug("Skipping title update for thread %s", message.thread_id)
            return
        if not needs_title(thread):
            logger.debug("Thread %s already titled %r", thread.id, thread.title)
            return

        updated = replace(thread, title=title)
        self._state.update_thread(updated)
        await self._save_thread(updated)
        logger.info("Thread %s titled %r", thread.id, title)

    async def _update_thread_message(self, message: ThreadMessage) -> None:
        previous = self._find_message(message.thread_id, message.id)
        if previous is not None and previous.status.is_terminal:
            # Late or duplicate update for a finished turn.
            logger.debug("Message %s already %s; dropping update", message.id, previous.status.value)
            return

        self._state.update_message(message.id, message.thread_id, message.content, message.status)

        if message.status is MessageStatus.PENDING:
            # First streamed token: stop the spinner, start showing partial text.
            if message.text:
                self._state.update_thread_waiting(message.thread_id, False)
                self._state.set_generating(False)
            return

        self._state.update_thread_waiting(message.thread_id, False)
        self._state.set_generating(False)

        thread = self._find_thread(message.thread_id)
        if thread is None:
            logger.debug("Thread %s not found; dropping completion side effects for %s", message.thread_id, message.id)
            return

        metadata = dict(thread.metadata)
        content = message.text
        if content and message.role is ChatRole.ASSISTANT:
            metadata["lastMessage"] = content
        updated = replace(thread, metadata=metadata)

        self._state.update_thread(updated)
        await self._save_thread(updated)
        await self._append_message(message)

        # The thread may have been renamed or removed while persistence was awaited.
        latest = self._find_thread(message.thread_id)
        if latest is None:
            return
        self._generate_thread_title(message, latest)

    def _generate_thread_title(self, message: ThreadMessage, thread: Thread) -> None:
        model: Optional[Model] = self._active_model.value
        if not needs_title(thread) or model is None:
            return

        history = self._messages.value.get(message.thread_id, [])
        request = build_title_request(message.thread_id, history, model)
        # The turn's persistence has returned by now; the delay lets the UI settle
        # before the summary request shows up behind it.
        task = self._bus.publish_deferred(
            EventKind.MESSAGE_SEND_REQUESTED,
            request,
            delay=self._configuration.title_dispatch_delay,
        )
        self._track(task)
        logger.info("Scheduled title generation %s for thread %s", request.id, thread.id)

    # -- model events ----------------------------------------------------------

    async def on_model_ready(self, model: Model) -> None:
        self._cancel_pending_stop()
        self._state.set_active_model(model)
        self._state.set_load_model_error(None)
        self._notify("Success!", f"Model {model.id} has been started.", NotificationKind.SUCCESS)
        self._state.set_model_load_status(ModelLoadStatus(state=ModelState.RUNNING, loading=False, model=model.id))

    async def on_model_init_failed(self, failure: ModelLoadFailure) -> None:
        error_message = f"{failure.error}"
        logger.error("Failed to load model %s: %s", failure.model_id, error_message)
        self._state.set_model_load_status(ModelLoadStatus(state=ModelState.IDLE, loading=False, model=failure.model_id))
        self._state.set_load_model_error(error_message)
        # A message queued behind the load is abandoned, not retried.
        self._state.set_queued_message(False)

    async def on_model_stopped(self) -> None:
        self._cancel_pending_stop()
        self._pending_stop = self._defer(self._reset_stopped_model(), name="model-stopped-reset")

    async def _reset_stopped_model(self) -> None:
        delay = self._configuration.model_stop_delay
        if delay > 0:
            await asyncio.sleep(delay)
        self._state.set_active_model(None)
        self._state.set_model_load_status(ModelLoadStatus(state=ModelState.IDLE, loading=False, model=""))
        logger.info("Active model cleared after stop")

    def _cancel_pending_stop(self) -> None:
        if self._pending_stop is not None and not self._pending_stop.done():
            self._pending_stop.cancel()
        self._pending_stop = None

    # -- helpers ---------------------------------------------------------------

    def _find_thread(self, thread_id: str) -> Optional[Thread]:
        return next((thread for thread in self._threads.value if thread.id == thread_id), None)

    def _find_message(self, thread_id: str, message_id: str) -> Optional[ThreadMessage]:
        return next((item for item in self._messages.value.get(thread_id, []) if item.id == message_id), None)

    def _defer(self, coro: Coroutine[Any, Any, None], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._track(task)
        return task

    def _track(self, task: asyncio.Task) -> None:
        self._deferred.add(task)
        task.add_done_callback(self._deferred.discard)

    async def _save_thread(self, thread: Thread) -> None:
        try:
            await self._persistence.save_thread(thread)
        except Exception as exc:  # noqa: BLE001 - persistence errors must not break event delivery
            logger.warning("Failed to persist thread %s: %s", thread.id, exc)

    async def _append_message(self, message: ThreadMessage) -> None:
        try:
            await self._persistence.append_message(message)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Failed to persist message %s: %s", message.id, exc)

    def _notify(self, title: str, description: str, kind: NotificationKind) -> None:
        try:
            self._notifier.notify(title, description, kind)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Notifier failed for %r: %s", title, exc)
