import os
import sys
import pytest

# Ensure project root is on sys.path for `import intelimed.*`
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


class RecordingGateway:
    """Stand-in for VertexGateway that records every call.

    `reply` is a string, an exception to raise, or a callable taking the call
    kwargs. Class-level state so the instance built inside a worker thread is
    visible to the test.
    """

    calls = []
    reply = "ok"

    def __init__(self, *args, model_id=None, **kwargs):
        self.model_id = model_id
        self.last_model_used = None

    def _respond(self, kwargs):
        RecordingGateway.calls.append(kwargs)
        reply = RecordingGateway.reply
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(kwargs)
        self.last_model_used = self.model_id
        return reply

    def generate_text(self, **kwargs):
        return self._respond(kwargs)

    def generate_text_json(self, **kwargs):
        return self._respond(kwargs)


@pytest.fixture(autouse=True)
def fresh_storage(monkeypatch):
    """Each test gets an empty in-memory store behind the API."""
    import intelimed.main as m
    from intelimed.storage import InMemoryStorage

    store = InMemoryStorage()
    monkeypatch.setattr(m, "_STORAGE", store)
    return store


@pytest.fixture
def gateway(monkeypatch):
    RecordingGateway.calls = []
    RecordingGateway.reply = "ok"
    monkeypatch.setattr("intelimed.services.vertex_gateway.VertexGateway", RecordingGateway)
    return RecordingGateway
