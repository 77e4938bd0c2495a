from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from langchain_core.messages import BaseMessage

DEFAULT_THREAD_TITLE = "New Thread"


class MessageStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not MessageStatus.PENDING


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class MessageRequestType(str, Enum):
    THREAD = "Thread"
    SUMMARY = "Summary"


class ModelState(str, Enum):
    """Lifecycle of the engine's model as seen by the UI."""

    IDLE = "idle"
    LOADING = "loading"
    RUNNING = "running"


def new_id() -> str:
    return uuid4().hex


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass(slots=True)
class ContentPart:
    text: str
    type: str = "text"


@dataclass(slots=True)
class Thread:
    id: str
    title: str = DEFAULT_THREAD_TITLE
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def last_message(self) -> Optional[str]:
        return self.metadata.get("lastMessage")


@dataclass(slots=True)
class ThreadMessage:
    id: str
    thread_id: str
    role: ChatRole
    status: MessageStatus = MessageStatus.PENDING
    content: list[ContentPart] = field(default_factory=list)
    type: MessageRequestType = MessageRequestType.THREAD
    created_at: datetime = field(default_factory=utc_now)

    @property
    def text(self) -> Optional[str]:
        """Text of the first content part, the canonical display string."""
        if not self.content:
            return None
        return self.content[0].text


@dataclass(slots=True)
class Model:
    id: str
    name: str = ""
    engine: str = ""
    parameters: dict[str, Any] = field(default_factory=dict)

    @property
    def stream(self) -> bool:
        return bool(self.parameters.get("stream", True))


@dataclass(slots=True)
class MessageRequest:
    id: str
    thread_id: str
    type: MessageRequestType
    messages: list[BaseMessage]
    model: Model


@dataclass(frozen=True, slots=True)
class ModelLoadStatus:
    state: ModelState = ModelState.IDLE
    loading: bool = False
    model: str = ""


@dataclass(frozen=True, slots=True)
class ModelLoadFailure:
    error: str
    model_id: str
