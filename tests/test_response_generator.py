import asyncio
import time

from intelimed.services.response_generator import (
    CONFIDENCE_DEGRADED,
    CONFIDENCE_OK,
    DEGRADED_REPLY_MESSAGE,
    EMPTY_REPLY_MESSAGE,
    ResponseGenerator,
)
from intelimed.services.vertex_helpers import VertexSettings
from intelimed.vertex import VertexAIError


def _generator(timeout=None):
    return ResponseGenerator(settings=VertexSettings(project="p", region="r", model_id="chat-model"), timeout=timeout)


def _history(n):
    return [{"role": "user" if i % 2 == 0 else "assistant", "content": f"turn {i}"} for i in range(n)]


def test_prompt_keeps_last_five_turns_in_order():
    prompt = _generator().build_prompt("How do I sleep better?", "senior", _history(8))
    for i in range(3):
        assert f"turn {i}" not in prompt
    positions = [prompt.index(f"turn {i}") for i in range(3, 8)]
    assert positions == sorted(positions)
    assert "assistant: turn 7" in prompt
    assert "Current user message: How do I sleep better?" in prompt
    assert "for the senior persona" in prompt
    assert "senior citizen" in prompt


def test_prompt_with_empty_history_and_unknown_persona():
    prompt = _generator().build_prompt("hello", "wizard", [])
    assert "Previous conversation:" in prompt
    assert "for the general persona" in prompt


def test_generate_returns_model_text(gateway):
    gateway.reply = "Eat oats and fruit."
    reply = asyncio.run(_generator().generate("breakfast?", "general", _history(2)))
    assert reply.message == "Eat oats and fruit."
    assert reply.confidence == CONFIDENCE_OK
    assert reply.model == "chat-model"
    assert not reply.degraded
    assert "user: turn 0" in gateway.calls[0]["prompt"]


def test_generate_empty_text_uses_apology(gateway):
    gateway.reply = "   "
    reply = asyncio.run(_generator().generate("hi", "general"))
    assert reply.message == EMPTY_REPLY_MESSAGE
    assert reply.confidence == CONFIDENCE_OK


def test_generate_upstream_error_is_degraded(gateway):
    gateway.reply = VertexAIError("upstream boom", status_code=503)
    reply = asyncio.run(_generator().generate("hi", "anxious"))
    assert reply.message == DEGRADED_REPLY_MESSAGE
    assert "108" in reply.message
    assert reply.confidence == CONFIDENCE_DEGRADED
    assert reply.degraded


def test_generate_timeout_is_degraded(gateway):
    def slow(_kwargs):
        time.sleep(0.5)
        return "too late"

    gateway.reply = slow
    reply = asyncio.run(_generator(timeout=0.05).generate("hi", "general"))
    assert reply.message == DEGRADED_REPLY_MESSAGE
    assert reply.confidence == CONFIDENCE_DEGRADED
