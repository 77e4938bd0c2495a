from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Generic, Optional, TypeVar

from .models import (
    ContentPart,
    MessageStatus,
    Model,
    ModelLoadStatus,
    ModelState,
    Thread,
    ThreadMessage,
    utc_now,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
Observer = Callable[[T], None]


class LatestValue(Generic[T]):
    """A single-writer, multi-reader cell that pushes every change to its observers."""

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._observers: list[Observer] = []

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for observer in list(self._observers):
            observer(value)

    def observe(self, observer: Observer) -> Callable[[], None]:
        self._observers.append(observer)
        observer(self._value)

        def _unobserve() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return _unobserve


class ConversationState:
    """Mutable cells shared between the reactor (writer) and the UI-facing readers."""

    def __init__(self) -> None:
        self.active_model: LatestValue[Optional[Model]] = LatestValue(None)
        self.model_load_status: LatestValue[ModelLoadStatus] = LatestValue(ModelLoadStatus())
        self.waiting_threads: LatestValue[dict[str, bool]] = LatestValue({})
        self.is_generating: LatestValue[bool] = LatestValue(False)
        self.queued_message: LatestValue[bool] = LatestValue(False)
        self.load_model_error: LatestValue[Optional[str]] = LatestValue(None)
        self.threads: LatestValue[list[Thread]] = LatestValue([])
        self.messages: LatestValue[dict[str, list[ThreadMessage]]] = LatestValue({})
        self.current_thread_id: LatestValue[Optional[str]] = LatestValue(None)

    # -- model -----------------------------------------------------------------

    def set_active_model(self, model: Optional[Model]) -> None:
        self.active_model.set(model)

    def set_model_load_status(self, status: ModelLoadStatus) -> None:
        self.model_load_status.set(status)

    def mark_model_loading(self, model_id: str) -> None:
        self.model_load_status.set(ModelLoadStatus(state=ModelState.LOADING, loading=True, model=model_id))
        self.load_model_error.set(None)

    def set_load_model_error(self, error: Optional[str]) -> None:
        self.load_model_error.set(error)

    # -- flags -----------------------------------------------------------------

    def update_thread_waiting(self, thread_id: str, waiting: bool) -> None:
        current = self.waiting_threads.get()
        if current.get(thread_id, False) == waiting:
            return
        self.waiting_threads.set({**current, thread_id: waiting})

    def is_thread_waiting(self, thread_id: str) -> bool:
        return self.waiting_threads.get().get(thread_id, False)

    def set_generating(self, generating: bool) -> None:
        self.is_generating.set(generating)

    def set_queued_message(self, queued: bool) -> None:
        self.queued_message.set(queued)

    # -- threads ---------------------------------------------------------------

    def add_thread(self, thread: Thread) -> None:
        threads = [item for item in self.threads.get() if item.id != thread.id]
        self.threads.set([thread, *threads])

    def update_thread(self, thread: Thread) -> None:
        threads = self.threads.get()
        if not any(item.id == thread.id for item in threads):
            logger.debug("Thread %s not in state; update ignored", thread.id)
            return
        updated = replace(thread, updated_at=utc_now())
        self.threads.set([updated if item.id == thread.id else item for item in threads])

    def remove_thread(self, thread_id: str) -> None:
        self.threads.set([item for item in self.threads.get() if item.id != thread_id])
        messages = dict(self.messages.get())
        if messages.pop(thread_id, None) is not None:
            self.messages.set(messages)
        if self.current_thread_id.get() == thread_id:
            self.current_thread_id.set(None)

    def get_thread(self, thread_id: str) -> Optional[Thread]:
        return next((item for item in self.threads.get() if item.id == thread_id), None)

    def set_current_thread(self, thread_id: Optional[str]) -> None:
        self.current_thread_id.set(thread_id)

    # -- messages --------------------------------------------------------------

    def get_thread_messages(self, thread_id: str) -> list[ThreadMessage]:
        return list(self.messages.get().get(thread_id, ()))

    def set_thread_messages(self, thread_id: str, messages: list[ThreadMessage]) -> None:
        self.messages.set({**self.messages.get(), thread_id: list(messages)})

    def current_messages(self) -> list[ThreadMessage]:
        thread_id = self.current_thread_id.get()
        return self.get_thread_messages(thread_id) if thread_id else []

    def add_new_message(self, message: ThreadMessage) -> None:
        existing = self.messages.get().get(message.thread_id, [])
        if any(item.id == message.id for item in existing):
            logger.debug("Message %s already present in thread %s", message.id, message.thread_id)
            return
        self.set_thread_messages(message.thread_id, [*existing, message])

    def update_message(
        self,
        message_id: str,
        thread_id: str,
        content: list[ContentPart],
        status: MessageStatus,
    ) -> bool:
        """Apply a streamed update; returns False when the message was left untouched."""
        existing = self.messages.get().get(thread_id)
        if not existing:
            logger.debug("No messages for thread %s; update of %s ignored", thread_id, message_id)
            return False

        target = next((item for item in existing if item.id == message_id), None)
        if target is None:
            logger.debug("Message %s not found in thread %s", message_id, thread_id)
            return False
        # Once Ready or Error, content and status are frozen.
        if target.status.is_terminal:
            logger.debug("Message %s already %s; ignoring %s update", message_id, target.status.value, status.value)
            return False

        updated = replace(target, content=list(content), status=status)
        self.set_thread_messages(thread_id, [updated if item.id == message_id else item for item in existing])
        return True
