from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from .models import (
    DEFAULT_THREAD_TITLE,
    ChatRole,
    MessageRequest,
    MessageRequestType,
    Model,
    Thread,
    ThreadMessage,
    new_id,
)

logger = logging.getLogger(__name__)

SUMMARIZE_PROMPT = "Summarize the conversation above in 5 words as a title"


def needs_title(thread: Optional[Thread]) -> bool:
    """A thread is titled automatically only while it still carries the placeholder."""
    if thread is None or thread.title is None:
        return False
    return thread.title.strip() == DEFAULT_THREAD_TITLE


def extract_title(message: ThreadMessage) -> Optional[str]:
    text = message.text
    if not text:
        return None
    cleaned = text.strip()
    return cleaned or None


def to_chat_message(role: ChatRole, content: str) -> BaseMessage:
    if role is ChatRole.ASSISTANT:
        return AIMessage(content=content)
    if role is ChatRole.SYSTEM:
        return SystemMessage(content=content)
    return HumanMessage(content=content)


def build_prompt(messages: Iterable[ThreadMessage], instruction: Optional[str] = None) -> list[BaseMessage]:
    prompt = [to_chat_message(message.role, message.text or "") for message in messages]
    if instruction:
        prompt.append(HumanMessage(content=instruction))
    return prompt


def build_title_request(thread_id: str, messages: Iterable[ThreadMessage], model: Model) -> MessageRequest:
    """Summarization request whose completed response becomes the thread title.

    The title is written once, on completion, so the response is requested as a
    single non-streamed text.
    """
    prompt = build_prompt(messages, SUMMARIZE_PROMPT)
    summary_model = replace(model, parameters={**model.parameters, "stream": False})
    request = MessageRequest(
        id=new_id(),
        thread_id=thread_id,
        type=MessageRequestType.SUMMARY,
        messages=prompt,
        model=summary_model,
    )
    logger.debug("Built title request %s for thread %s with %d prompt messages", request.id, thread_id, len(prompt))
    return request
