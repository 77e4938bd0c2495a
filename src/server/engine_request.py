from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from langchain_core.messages import convert_to_openai_messages
from pydantic import BaseModel, ConfigDict, Field

from src.reactor.models import (
    MessageRequest,
    Model,
    ModelLoadFailure,
    ModelLoadStatus,
    ModelState,
)
from src.reactor.notifications import Notification, NotificationKind


class ModelPayload(BaseModel):
    id: str = Field(..., min_length=1)
    name: str = ""
    engine: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    def to_domain(self) -> Model:
        return Model(id=self.id, name=self.name, engine=self.engine, parameters=dict(self.parameters))

    @classmethod
    def from_domain(cls, model: Model) -> "ModelPayload":
        return cls(id=model.id, name=model.name, engine=model.engine, parameters=dict(model.parameters))


class ModelFailureRequest(BaseModel):
    error: str = Field(..., description="Human-readable error reported by the engine.")
    model_id: str = Field(..., alias="modelId")

    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    def to_domain(self) -> ModelLoadFailure:
        return ModelLoadFailure(error=self.error, model_id=self.model_id)


class ModelStatusPayload(BaseModel):
    state: ModelState
    loading: bool
    model: str

    @classmethod
    def from_domain(cls, status: ModelLoadStatus) -> "ModelStatusPayload":
        return cls(state=status.state, loading=status.loading, model=status.model)


class ReactorStateResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    active_model: Optional[ModelPayload] = None
    model_status: ModelStatusPayload
    is_generating: bool
    queued_message: bool
    load_model_error: Optional[str] = None
    waiting_threads: list[str] = Field(default_factory=list)
    current_thread_id: Optional[str] = None


class NotificationPayload(BaseModel):
    title: str
    description: str
    kind: NotificationKind
    created_at: datetime

    @classmethod
    def from_domain(cls, notification: Notification) -> "NotificationPayload":
        return cls(
            title=notification.title,
            description=notification.description,
            kind=notification.kind,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    notifications: list[NotificationPayload]


class EventAcceptedResponse(BaseModel):
    event: str
    accepted: bool = True


def serialize_message_request(request: MessageRequest) -> dict[str, Any]:
    return {
        "id": request.id,
        "thread_id": request.thread_id,
        "type": request.type.value,
        "messages": convert_to_openai_messages(request.messages),
        "model": ModelPayload.from_domain(request.model).model_dump(),
    }
