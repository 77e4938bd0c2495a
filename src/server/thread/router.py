from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException, status

from src.reactor.models import Thread

from ..dependencies import ReactorRuntime, get_runtime
from .schemas import (
    DeleteResponse,
    SendMessageRequest,
    SendMessageResponse,
    ThreadCreateResponse,
    ThreadDetail,
    ThreadListResponse,
    ThreadMessagePayload,
    ThreadUpdateRequest,
    to_detail,
    to_summary,
)

router = APIRouter(prefix="/api/threads", tags=["threads"])


@router.get("", response_model=ThreadListResponse)
async def list_threads(runtime: ReactorRuntime = Depends(get_runtime)) -> ThreadListResponse:
    state = runtime.state
    return ThreadListResponse(
        threads=[to_summary(thread, state.is_thread_waiting(thread.id)) for thread in state.threads.get()]
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=ThreadCreateResponse)
async def create_thread(runtime: ReactorRuntime = Depends(get_runtime)) -> ThreadCreateResponse:
    thread = await runtime.store.create_thread()
    runtime.state.add_thread(thread)
    runtime.state.set_thread_messages(thread.id, [])
    runtime.state.set_current_thread(thread.id)
    return ThreadCreateResponse(thread=to_detail(thread, []))


@router.get("/{thread_id}", response_model=ThreadDetail)
async def get_thread(thread_id: str, runtime: ReactorRuntime = Depends(get_runtime)) -> ThreadDetail:
    thread = _require_thread(runtime, thread_id)
    runtime.state.set_current_thread(thread_id)
    return to_detail(thread, runtime.state.get_thread_messages(thread_id), runtime.state.is_thread_waiting(thread_id))


@router.patch("/{thread_id}", response_model=ThreadDetail)
async def update_thread(
    thread_id: str,
    payload: ThreadUpdateRequest,
    runtime: ReactorRuntime = Depends(get_runtime),
) -> ThreadDetail:
    thread = _require_thread(runtime, thread_id)
    if payload.title is not None:
        thread = replace(thread, title=payload.title)
        runtime.state.update_thread(thread)
        await runtime.store.save_thread(thread)
        thread = runtime.state.get_thread(thread_id) or thread
    return to_detail(thread, runtime.state.get_thread_messages(thread_id), runtime.state.is_thread_waiting(thread_id))


@router.delete("/{thread_id}", response_model=DeleteResponse)
async def delete_thread(thread_id: str, runtime: ReactorRuntime = Depends(get_runtime)) -> DeleteResponse:
    _require_thread(runtime, thread_id)
    await runtime.store.delete_thread(thread_id)
    runtime.state.remove_thread(thread_id)
    return DeleteResponse(success=True)


@router.post(
    "/{thread_id}/messages",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SendMessageResponse,
)
async def send_message(
    thread_id: str,
    payload: SendMessageRequest,
    runtime: ReactorRuntime = Depends(get_runtime),
) -> SendMessageResponse:
    _require_thread(runtime, thread_id)
    try:
        message = await runtime.sender.send(thread_id, payload.content)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SendMessageResponse(
        message=ThreadMessagePayload.from_domain(message),
        queued=runtime.state.queued_message.get(),
    )


def _require_thread(runtime: ReactorRuntime, thread_id: str) -> Thread:
    thread = runtime.state.get_thread(thread_id)
    if thread is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Thread not found")
    return thread
