from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from src.reactor.models import (
    ChatRole,
    ContentPart,
    MessageRequestType,
    MessageStatus,
    Thread,
    ThreadMessage,
)


class ContentPartPayload(BaseModel):
    type: str = "text"
    text: str = ""


class ThreadMessagePayload(BaseModel):
    id: str
    thread_id: str
    role: ChatRole = ChatRole.ASSISTANT
    status: MessageStatus = MessageStatus.PENDING
    content: list[ContentPartPayload] = Field(default_factory=list)
    type: MessageRequestType = MessageRequestType.THREAD
    created_at: Optional[datetime] = None

    def to_domain(self) -> ThreadMessage:
        message = ThreadMessage(
            id=self.id,
            thread_id=self.thread_id,
            role=self.role,
            status=self.status,
            content=[ContentPart(text=part.text, type=part.type) for part in self.content],
            type=self.type,
        )
        if self.created_at is not None:
            message.created_at = self.created_at
        return message

    @classmethod
    def from_domain(cls, message: ThreadMessage) -> "ThreadMessagePayload":
        return cls(
            id=message.id,
            thread_id=message.thread_id,
            role=message.role,
            status=message.status,
            content=[ContentPartPayload(type=part.type, text=part.text) for part in message.content],
            type=message.type,
            created_at=message.created_at,
        )


class ThreadSummary(BaseModel):
    id: str
    title: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    last_message: Optional[str] = None
    waiting_for_response: bool = False
    created_at: datetime
    updated_at: datetime


class ThreadDetail(ThreadSummary):
    messages: list[ThreadMessagePayload] = Field(default_factory=list)


class ThreadCreateResponse(BaseModel):
    thread: ThreadDetail


class ThreadListResponse(BaseModel):
    threads: list[ThreadSummary]


class ThreadUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, description="Manual thread title override.")

    @field_validator("title")
    @classmethod
    def validate_title_length(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            return None
        if len(value) > 40:
            raise ValueError("Title must be 40 characters or fewer")
        return value


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1, description="User prompt to send to the active model.")


class SendMessageResponse(BaseModel):
    message: ThreadMessagePayload
    queued: bool = False


class DeleteResponse(BaseModel):
    success: bool


def to_summary(thread: Thread, waiting: bool = False) -> ThreadSummary:
    return ThreadSummary(
        id=thread.id,
        title=thread.title,
        metadata=thread.metadata,
        last_message=thread.last_message,
        waiting_for_response=waiting,
        created_at=thread.created_at,
        updated_at=thread.updated_at,
    )


def to_detail(thread: Thread, messages: list[ThreadMessage], waiting: bool = False) -> ThreadDetail:
    return ThreadDetail(
        **to_summary(thread, waiting).model_dump(),
        messages=[ThreadMessagePayload.from_domain(message) for message in messages],
    )
