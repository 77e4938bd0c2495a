import pytest
from langchain_core.messages import HumanMessage

from src.reactor.events import EventBus, EventKind
from src.reactor.models import ChatRole, MessageRequestType, MessageStatus, Model, ModelLoadFailure, Thread
from src.reactor.sender import MessageSender
from src.reactor.state import ConversationState


class RecordingPersistence:
    def __init__(self) -> None:
        self.appended = []

    async def save_thread(self, thread):
        return None

    async def append_message(self, message):
        self.appended.append(message)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def state():
    state = ConversationState()
    state.add_thread(Thread(id="t1"))
    return state


@pytest.fixture
def persistence():
    return RecordingPersistence()


@pytest.fixture
def sender(bus, state, persistence):
    sender = MessageSender(bus, state, persistence)
    sender.activate()
    yield sender
    sender.deactivate()


@pytest.fixture
def sent_requests(bus):
    requests = []
    bus.subscribe(EventKind.MESSAGE_SEND_REQUESTED, requests.append)
    return requests


@pytest.mark.asyncio
async def test_send_with_active_model_dispatches_request(sender, state, persistence, sent_requests):
    state.set_active_model(Model(id="llama", parameters={"stream": True}))

    message = await sender.send("t1", "  What is the capital of Portugal?  ")
    await sender.wait_idle()

    assert message.role is ChatRole.USER
    assert message.status is MessageStatus.READY
    assert message.text == "What is the capital of Portugal?"
    assert persistence.appended == [message]
    assert state.is_thread_waiting("t1") is True
    assert state.is_generating.get() is True
    assert state.queued_message.get() is False

    (request,) = sent_requests
    assert request.type is MessageRequestType.THREAD
    assert request.model.parameters["stream"] is True
    assert isinstance(request.messages[-1], HumanMessage)
    assert request.messages[-1].content == "What is the capital of Portugal?"


@pytest.mark.asyncio
async def test_send_without_model_queues_until_ready(bus, sender, state, sent_requests):
    await sender.send("t1", "hello")
    await sender.wait_idle()

    assert sent_requests == []
    assert state.queued_message.get() is True
    assert sender.queued_request is not None

    await bus.publish(EventKind.MODEL_READY, Model(id="llama"))
    await sender.wait_idle()

    (request,) = sent_requests
    assert request.model.id == "llama"
    assert state.queued_message.get() is False
    assert sender.queued_request is None


@pytest.mark.asyncio
async def test_failed_load_drops_queued_request(bus, sender, state, sent_requests):
    await sender.send("t1", "hello")

    await bus.publish(EventKind.MODEL_LOAD_FAILED, ModelLoadFailure(error="boom", model_id="llama"))
    await bus.publish(EventKind.MODEL_READY, Model(id="llama"))
    await sender.wait_idle()

    assert sender.queued_request is None
    assert sent_requests == []


@pytest.mark.asyncio
async def test_send_rejects_unknown_thread_and_blank_text(sender):
    with pytest.raises(ValueError):
        await sender.send("missing", "hello")
    with pytest.raises(ValueError):
        await sender.send("t1", "   ")
