from fastapi.testclient import TestClient

from src.reactor.events import EventKind
from src.reactor.models import MessageRequest, MessageRequestType, Model
from src.reactor.title import build_prompt
from src.server.app import OutboundRequestFeed, _make_event
from src.server.engine_request import serialize_message_request


def _message(thread_id, status="pending", text=None, message_id="m1", type="Thread"):
    content = [{"type": "text", "text": text}] if text is not None else []
    return {
        "id": message_id,
        "thread_id": thread_id,
        "role": "assistant",
        "status": status,
        "content": content,
        "type": type,
    }


def test_model_lifecycle_updates_state(client: TestClient):
    response = client.post("/api/engine/models/llama/load")
    assert response.status_code == 200
    assert response.json() == {"state": "loading", "loading": True, "model": "llama"}

    response = client.post("/api/engine/models/failed", json={"error": "out of memory", "modelId": "llama"})
    assert response.status_code == 200
    state = client.get("/api/state").json()
    assert state["model_status"] == {"state": "idle", "loading": False, "model": "llama"}
    assert state["load_model_error"] == "out of memory"

    response = client.post("/api/engine/models/ready", json={"id": "llama", "parameters": {"stream": True}})
    assert response.json() == {"event": "model-ready", "accepted": True}
    state = client.get("/api/state").json()
    assert state["active_model"]["id"] == "llama"
    assert state["model_status"] == {"state": "running", "loading": False, "model": "llama"}
    assert state["load_model_error"] is None

    notifications = client.get("/api/notifications").json()["notifications"]
    assert notifications[-1]["description"] == "Model llama has been started."
    assert notifications[-1]["kind"] == "success"


def test_streamed_response_updates_thread(client: TestClient):
    thread_id = client.post("/api/threads").json()["thread"]["id"]
    client.post(f"/api/threads/{thread_id}/messages", json={"content": "Hi"})

    client.post("/api/engine/messages/arrived", json=_message(thread_id))
    state = client.get("/api/state").json()
    assert state["waiting_threads"] == [thread_id]

    client.post("/api/engine/messages/updated", json=_message(thread_id, text="Hel"))
    state = client.get("/api/state").json()
    assert state["waiting_threads"] == []
    assert state["is_generating"] is False

    client.post("/api/engine/messages/updated", json=_message(thread_id, status="ready", text="Hello!"))
    detail = client.get(f"/api/threads/{thread_id}").json()
    assert detail["last_message"] == "Hello!"
    assert detail["messages"][-1]["status"] == "ready"
    assert detail["messages"][-1]["content"][0]["text"] == "Hello!"


def test_summary_response_sets_title(client: TestClient):
    thread_id = client.post("/api/threads").json()["thread"]["id"]

    client.post(
        "/api/engine/messages/updated",
        json=_message(thread_id, status="ready", text="Greeting a new friend", message_id="s1", type="Summary"),
    )

    assert client.get(f"/api/threads/{thread_id}").json()["title"] == "Greeting a new friend"


def test_invalid_event_payload_is_rejected(client: TestClient):
    response = client.post("/api/engine/messages/updated", json={"id": "m1"})
    assert response.status_code == 422


def test_outbound_feed_serializes_requests(runtime):
    feed = OutboundRequestFeed(runtime.bus)
    request = MessageRequest(
        id="r1",
        thread_id="t1",
        type=MessageRequestType.SUMMARY,
        messages=build_prompt([], "Summarize"),
        model=Model(id="llama", parameters={"stream": False}),
    )

    with feed:
        assert runtime.bus.subscriber_count(EventKind.MESSAGE_SEND_REQUESTED) == 1
        feed.on_message_send_requested(request)
    assert runtime.bus.subscriber_count(EventKind.MESSAGE_SEND_REQUESTED) == 0

    payload = serialize_message_request(request)
    assert payload["type"] == "Summary"
    assert payload["messages"] == [{"role": "user", "content": "Summarize"}]
    assert payload["model"]["parameters"] == {"stream": False}

    event = _make_event("message_request", payload)
    assert event.startswith("event: message_request\ndata: ")
    assert event.endswith("\n\n")
