from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .events import EventBus, EventKind
from .models import (
    ChatRole,
    ContentPart,
    MessageRequest,
    MessageRequestType,
    MessageStatus,
    Model,
    ModelLoadFailure,
    ThreadMessage,
    new_id,
)
from .reactor import ThreadPersistence
from .state import ConversationState
from .title import build_prompt

logger = logging.getLogger(__name__)


class MessageSender:
    """Turns a user prompt into a ``message-send-requested`` event.

    When no model is running yet the request is held, ``queued_message`` is
    raised, and the request goes out on the next ``model-ready``. A failed
    load drops it.
    """

    def __init__(self, bus: EventBus, state: ConversationState, persistence: ThreadPersistence) -> None:
        self._bus = bus
        self._state = state
        self._persistence = persistence
        self._queued: Optional[MessageRequest] = None
        self._tasks: set[asyncio.Task] = set()

    def activate(self) -> None:
        self._bus.subscribe(EventKind.MODEL_READY, self.on_model_ready)
        self._bus.subscribe(EventKind.MODEL_LOAD_FAILED, self.on_model_load_failed)

    def deactivate(self) -> None:
        self._bus.unsubscribe(EventKind.MODEL_READY, self.on_model_ready)
        self._bus.unsubscribe(EventKind.MODEL_LOAD_FAILED, self.on_model_load_failed)
        for task in list(self._tasks):
            task.cancel()
        self._queued = None

    @property
    def queued_request(self) -> Optional[MessageRequest]:
        return self._queued

    async def send(self, thread_id: str, text: str) -> ThreadMessage:
        if self._state.get_thread(thread_id) is None:
            raise ValueError(f"Thread {thread_id} not found")
        prompt = text.strip()
        if not prompt:
            raise ValueError("Message must not be empty")

        message = ThreadMessage(
            id=new_id(),
            thread_id=thread_id,
            role=ChatRole.USER,
            status=MessageStatus.READY,
            content=[ContentPart(text=prompt)],
            type=MessageRequestType.THREAD,
        )
        self._state.add_new_message(message)
        await self._persistence.append_message(message)

        self._state.update_thread_waiting(thread_id, True)
        self._state.set_generating(True)

        model = self._state.active_model.get()
        request = MessageRequest(
            id=new_id(),
            thread_id=thread_id,
            type=MessageRequestType.THREAD,
            messages=build_prompt(self._state.get_thread_messages(thread_id)),
            model=model or Model(id=""),
        )
        if model is None:
            logger.info("No active model; queueing request %s for thread %s", request.id, thread_id)
            self._queued = request
            self._state.set_queued_message(True)
        else:
            self._dispatch(request)
        return message

    async def on_model_ready(self, model: Model) -> None:
        request = self._queued
        if request is None:
            return
        self._queued = None
        request.model = model
        self._state.set_queued_message(False)
        self._dispatch(request)

    async def on_model_load_failed(self, failure: ModelLoadFailure) -> None:
        if self._queued is not None:
            logger.info("Dropping queued request %s after %s failed to load", self._queued.id, failure.model_id)
            self._queued = None

    def _dispatch(self, request: MessageRequest) -> None:
        task = self._bus.publish_deferred(EventKind.MESSAGE_SEND_REQUESTED, request)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug("Dispatched request %s for thread %s", request.id, request.thread_id)

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
