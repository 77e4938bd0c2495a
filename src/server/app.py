# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from src.config.configuration import ReactorConfiguration
from src.reactor.events import EventBus, EventKind
from src.reactor.models import MessageRequest
from src.server.dependencies import ReactorRuntime, get_runtime, initialise_runtime, set_runtime
from src.server.engine_request import (
    EventAcceptedResponse,
    ModelFailureRequest,
    ModelPayload,
    ModelStatusPayload,
    NotificationListResponse,
    NotificationPayload,
    ReactorStateResponse,
    serialize_message_request,
)
from src.server.thread.router import router as thread_router
from src.server.thread.schemas import ThreadMessagePayload

logger = logging.getLogger(__name__)

# Idle streams send a comment line this often so proxies keep the connection open.
KEEPALIVE_INTERVAL = 15.0


@asynccontextmanager
async def lifespan(_: FastAPI):
    runtime = initialise_runtime()
    await runtime.start()
    set_runtime(runtime)
    try:
        yield
    finally:
        await runtime.stop()


app = FastAPI(
    title="Thread Reactor API",
    description="Bridges inference engine lifecycle events and conversation threads",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_origins = ReactorConfiguration.from_env().allowed_origins

logger.info(f"Allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(thread_router)


class OutboundRequestFeed:
    """Buffers ``message-send-requested`` events for one engine connection."""

    def __init__(self, bus: EventBus, maxsize: int = 100) -> None:
        self._bus = bus
        self._queue: asyncio.Queue[MessageRequest] = asyncio.Queue(maxsize=maxsize)

    def __enter__(self) -> "OutboundRequestFeed":
        self._bus.subscribe(EventKind.MESSAGE_SEND_REQUESTED, self.on_message_send_requested)
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self._bus.unsubscribe(EventKind.MESSAGE_SEND_REQUESTED, self.on_message_send_requested)

    def on_message_send_requested(self, request: MessageRequest) -> None:
        try:
            self._queue.put_nowait(request)
        except asyncio.QueueFull:
            logger.warning("Outbound feed full; dropping request %s for thread %s", request.id, request.thread_id)

    async def next_request(self, timeout: Optional[float] = None) -> Optional[MessageRequest]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None


async def _stream_requests(request: Request, feed: OutboundRequestFeed) -> AsyncIterator[str]:
    with feed:
        while not await request.is_disconnected():
            outbound = await feed.next_request(timeout=KEEPALIVE_INTERVAL)
            if outbound is None:
                yield ": keepalive\n\n"
                continue
            yield _make_event("message_request", serialize_message_request(outbound))


def _make_event(event_type: str, data: dict[str, Any]) -> str:
    try:
        json_data = json.dumps(data, ensure_ascii=False, default=str)
        return f"event: {event_type}\ndata: {json_data}\n\n"
    except (TypeError, ValueError) as e:
        logger.error(f"Error serializing event data: {e}")
        error_data = json.dumps({"error": "Serialization failed"}, ensure_ascii=False)
        return f"event: error\ndata: {error_data}\n\n"


@app.post("/api/engine/messages/arrived", response_model=EventAcceptedResponse)
async def message_arrived(
    payload: ThreadMessagePayload,
    runtime: ReactorRuntime = Depends(get_runtime),
) -> EventAcceptedResponse:
    await runtime.bus.publish(EventKind.MESSAGE_RESPONSE_ARRIVED, payload.to_domain())
    return EventAcceptedResponse(event=EventKind.MESSAGE_RESPONSE_ARRIVED.value)


@app.post("/api/engine/messages/updated", response_model=EventAcceptedResponse)
async def message_updated(
    payload: ThreadMessagePayload,
    runtime: ReactorRuntime = Depends(get_runtime),
) -> EventAcceptedResponse:
    await runtime.bus.publish(EventKind.MESSAGE_RESPONSE_UPDATED, payload.to_domain())
    return EventAcceptedResponse(event=EventKind.MESSAGE_RESPONSE_UPDATED.value)


@app.post("/api/engine/models/{model_id}/load", response_model=ModelStatusPayload)
async def model_loading(model_id: str, runtime: ReactorRuntime = Depends(get_runtime)) -> ModelStatusPayload:
    runtime.state.mark_model_loading(model_id)
    return ModelStatusPayload.from_domain(runtime.state.model_load_status.get())


@app.post("/api/engine/models/ready", response_model=EventAcceptedResponse)
async def model_ready(
    payload: ModelPayload,
    runtime: ReactorRuntime = Depends(get_runtime),
) -> EventAcceptedResponse:
    await runtime.bus.publish(EventKind.MODEL_READY, payload.to_domain())
    return EventAcceptedResponse(event=EventKind.MODEL_READY.value)


@app.post("/api/engine/models/failed", response_model=EventAcceptedResponse)
async def model_failed(
    payload: ModelFailureRequest,
    runtime: ReactorRuntime = Depends(get_runtime),
) -> EventAcceptedResponse:
    await runtime.bus.publish(EventKind.MODEL_LOAD_FAILED, payload.to_domain())
    return EventAcceptedResponse(event=EventKind.MODEL_LOAD_FAILED.value)


@app.post("/api/engine/models/stopped", response_model=EventAcceptedResponse)
async def model_stopped(runtime: ReactorRuntime = Depends(get_runtime)) -> EventAcceptedResponse:
    await runtime.bus.publish(EventKind.MODEL_STOPPED)
    return EventAcceptedResponse(event=EventKind.MODEL_STOPPED.value)


@app.get("/api/engine/requests")
async def engine_requests(request: Request, runtime: ReactorRuntime = Depends(get_runtime)):
    feed = OutboundRequestFeed(runtime.bus)
    return StreamingResponse(_stream_requests(request, feed), media_type="text/event-stream")


@app.get("/api/state", response_model=ReactorStateResponse)
async def reactor_state(runtime: ReactorRuntime = Depends(get_runtime)) -> ReactorStateResponse:
    state = runtime.state
    active_model = state.active_model.get()
    return ReactorStateResponse(
        active_model=ModelPayload.from_domain(active_model) if active_model else None,
        model_status=ModelStatusPayload.from_domain(state.model_load_status.get()),
        is_generating=state.is_generating.get(),
        queued_message=state.queued_message.get(),
        load_model_error=state.load_model_error.get(),
        waiting_threads=sorted(thread_id for thread_id, waiting in state.waiting_threads.get().items() if waiting),
        current_thread_id=state.current_thread_id.get(),
    )


@app.get("/api/notifications", response_model=NotificationListResponse)
async def notifications(runtime: ReactorRuntime = Depends(get_runtime)) -> NotificationListResponse:
    return NotificationListResponse(
        notifications=[NotificationPayload.from_domain(item) for item in runtime.notifier.recent()]
    )
