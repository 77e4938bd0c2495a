from fastapi.testclient import TestClient


def test_thread_crud_flow(client: TestClient):
    response = client.post("/api/threads")
    assert response.status_code == 201
    thread = response.json()["thread"]
    thread_id = thread["id"]
    assert thread["title"] == "New Thread"

    response = client.get("/api/threads")
    assert response.status_code == 200
    threads = response.json()["threads"]
    assert len(threads) == 1
    assert threads[0]["id"] == thread_id

    response = client.patch(f"/api/threads/{thread_id}", json={"title": "测试会话"})
    assert response.status_code == 200
    assert response.json()["title"] == "测试会话"

    response = client.delete(f"/api/threads/{thread_id}")
    assert response.status_code == 200
    assert response.json()["success"] is True

    response = client.get("/api/threads")
    assert response.status_code == 200
    assert response.json()["threads"] == []


def test_missing_thread_returns_404(client: TestClient):
    assert client.get("/api/threads/nope").status_code == 404
    assert client.patch("/api/threads/nope", json={"title": "x"}).status_code == 404
    assert client.delete("/api/threads/nope").status_code == 404


def test_title_longer_than_limit_is_rejected(client: TestClient):
    thread_id = client.post("/api/threads").json()["thread"]["id"]

    response = client.patch(f"/api/threads/{thread_id}", json={"title": "x" * 41})

    assert response.status_code == 422


def test_send_message_without_model_is_queued(client: TestClient):
    thread_id = client.post("/api/threads").json()["thread"]["id"]

    response = client.post(f"/api/threads/{thread_id}/messages", json={"content": "Hello there"})
    assert response.status_code == 202
    body = response.json()
    assert body["queued"] is True
    assert body["message"]["role"] == "user"
    assert body["message"]["content"][0]["text"] == "Hello there"

    state = client.get("/api/state").json()
    assert state["queued_message"] is True
    assert state["is_generating"] is True
    assert state["waiting_threads"] == [thread_id]

    detail = client.get(f"/api/threads/{thread_id}").json()
    assert [message["id"] for message in detail["messages"]] == [body["message"]["id"]]
    assert detail["waiting_for_response"] is True


def test_threads_survive_restart(runtime):
    from src.server.app import app

    with TestClient(app) as first:
        thread_id = first.post("/api/threads").json()["thread"]["id"]
        first.post(f"/api/threads/{thread_id}/messages", json={"content": "remember me"})

    runtime.state.threads.set([])
    runtime.state.messages.set({})
    with TestClient(app) as restarted:
        detail = restarted.get(f"/api/threads/{thread_id}").json()

    assert detail["messages"][0]["content"][0]["text"] == "remember me"
