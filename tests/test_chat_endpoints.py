from fastapi.testclient import TestClient

from intelimed.main import app
from intelimed.services.response_generator import DEGRADED_REPLY_MESSAGE
from intelimed.vertex import VertexAIError

client = TestClient(app)


def test_chat_turn_persists_both_messages(gateway):
    gateway.reply = "A bowl of oats with fruit is a gentle start."
    r = client.post("/chat", json={"userId": "u1", "message": "What should I eat for breakfast?", "persona": "senior"})
    assert r.status_code == 200
    data = r.json()
    assert data["confidence"] == 0.8
    assert data["userMessage"]["isUser"] is True
    assert data["userMessage"]["message"] == "What should I eat for breakfast?"
    assert data["userMessage"]["persona"] == "senior"
    assert data["aiMessage"]["isUser"] is False
    assert data["aiMessage"]["message"] == "A bowl of oats with fruit is a gentle start."
    assert data["aiMessage"]["persona"] == "senior"

    prompt = gateway.calls[0]["prompt"]
    assert "senior citizen" in prompt
    assert "user: What should I eat for breakfast?" in prompt

    listed = client.get("/chat-messages/u1").json()
    assert [m["id"] for m in listed] == [data["userMessage"]["id"], data["aiMessage"]["id"]]


def test_upstream_failure_still_answers(gateway):
    gateway.reply = VertexAIError("upstream boom", status_code=503)
    r = client.post("/chat", json={"userId": "u2", "message": "I feel dizzy", "persona": "anxious"})
    assert r.status_code == 200
    data = r.json()
    assert data["aiMessage"]["message"] == DEGRADED_REPLY_MESSAGE
    assert data["confidence"] == 0.1
    assert len(client.get("/chat-messages/u2").json()) == 2


def test_timeout_counts_as_upstream_failure(gateway, monkeypatch):
    import time

    import intelimed.main as m

    monkeypatch.setattr(m, "UPSTREAM_TIMEOUT_SECONDS", 0.05)

    def slow(_kwargs):
        time.sleep(0.5)
        return "late"

    gateway.reply = slow
    r = client.post("/chat", json={"userId": "u3", "message": "hello"})
    assert r.status_code == 200
    assert r.json()["confidence"] == 0.1


def test_unknown_or_missing_persona_is_general(gateway):
    r = client.post("/chat", json={"userId": "u4", "message": "hi", "persona": "pirate"})
    assert r.json()["userMessage"]["persona"] == "general"
    r = client.post("/chat", json={"userId": "u4", "message": "hi again"})
    assert r.json()["aiMessage"]["persona"] == "general"
    assert "for the general persona" in gateway.calls[-1]["prompt"]


def test_whitespace_message_is_accepted(gateway):
    r = client.post("/chat", json={"userId": "u5", "message": "   "})
    assert r.status_code == 200
    assert r.json()["userMessage"]["message"] == "   "


def test_history_window_reaches_prompt_in_order(gateway):
    for i in range(7):
        client.post("/chat", json={"userId": "u6", "message": f"question {i}"})
    prompt = gateway.calls[-1]["prompt"]
    history_block = prompt.split("Previous conversation:")[1].split("Current user message:")[0]
    lines = [line for line in history_block.strip().splitlines() if line]
    assert len(lines) == 5
    assert lines[-1] == "user: question 6"
    assert lines[0] == "user: question 4"
    assert "question 3" not in history_block


def test_history_is_per_user(gateway):
    client.post("/chat", json={"userId": "alice", "message": "alice secret"})
    client.post("/chat", json={"userId": "bob", "message": "bob question"})
    assert "alice secret" not in gateway.calls[-1]["prompt"]
    assert [m["message"] for m in client.get("/chat-messages/bob").json()] == ["bob question", "ok"]


def test_listing_is_idempotent(gateway):
    client.post("/chat", json={"userId": "u7", "message": "one"})
    first = client.get("/chat-messages/u7").json()
    second = client.get("/chat-messages/u7").json()
    assert first == second
    assert client.get("/chat-messages/nobody").json() == []


def test_storage_failure_is_500(gateway, fresh_storage, monkeypatch):
    def broken(_message):
        raise RuntimeError("disk full")

    monkeypatch.setattr(fresh_storage, "append_chat_message", broken)
    r = client.post("/chat", json={"userId": "u8", "message": "hi"})
    assert r.status_code == 500
    err = r.json()["error"]
    assert err["message"] == "Failed to process chat message"
    assert err["code"] == 500
    assert gateway.calls == []


def test_listing_storage_failure_is_500(fresh_storage, monkeypatch):
    def broken(_user_id):
        raise RuntimeError("redis down")

    monkeypatch.setattr(fresh_storage, "list_chat_messages_for_user", broken)
    r = client.get("/chat-messages/u9")
    assert r.status_code == 500
    assert r.json()["error"]["message"] == "Failed to fetch chat messages"


def test_failing_model_is_called_once_per_turn(monkeypatch):
    import intelimed.main as m

    attempts = []

    class CountingClient:
        def __init__(self, project, region, model_id, timeout=None):
            self.model_id = model_id

        def generate_text(self, **kwargs):
            attempts.append(self.model_id)
            raise VertexAIError("Model not found: HTTP 404", status_code=404)

    monkeypatch.setattr(m, "VertexClient", CountingClient)
    r = client.post("/chat", json={"userId": "u10", "message": "hi"})
    assert r.status_code == 200
    assert r.json()["confidence"] == 0.1
    assert attempts == [m.CHAT_MODEL_ID]


def test_storage_runs_off_the_event_loop(gateway, fresh_storage, monkeypatch):
    import asyncio

    loop_seen = []
    real_append = fresh_storage.append_chat_message
    real_list = fresh_storage.list_chat_messages_for_user

    def _running_loop():
        try:
            asyncio.get_running_loop()
            return True
        except RuntimeError:
            return False

    def append(message):
        loop_seen.append(_running_loop())
        return real_append(message)

    def list_for_user(user_id):
        loop_seen.append(_running_loop())
        return real_list(user_id)

    monkeypatch.setattr(fresh_storage, "append_chat_message", append)
    monkeypatch.setattr(fresh_storage, "list_chat_messages_for_user", list_for_user)
    client.post("/chat", json={"userId": "u11", "message": "hi"})
    client.get("/chat-messages/u11")
    assert len(loop_seen) == 4
    assert not any(loop_seen)
