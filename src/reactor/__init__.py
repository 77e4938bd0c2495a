"""Event-driven coordination between the inference engine and conversation state."""

from .events import EventBus, EventKind, ReentrantPublishError
from .models import (
    DEFAULT_THREAD_TITLE,
    ChatRole,
    ContentPart,
    MessageRequest,
    MessageRequestType,
    MessageStatus,
    Model,
    ModelLoadFailure,
    ModelLoadStatus,
    ModelState,
    Thread,
    ThreadMessage,
)
from .reactor import Reactor, ThreadPersistence
from .sender import MessageSender
from .state import ConversationState, LatestValue

__all__ = [
    "DEFAULT_THREAD_TITLE",
    "ChatRole",
    "ContentPart",
    "ConversationState",
    "EventBus",
    "EventKind",
    "LatestValue",
    "MessageRequest",
    "MessageRequestType",
    "MessageSender",
    "MessageStatus",
    "Model",
    "ModelLoadFailure",
    "ModelLoadStatus",
    "ModelState",
    "Reactor",
    "ReentrantPublishError",
    "Thread",
    "ThreadMessage",
    "ThreadPersistence",
]
