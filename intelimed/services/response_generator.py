"""
Persona-aware reply generation for the chat surface.

generate() never raises. Upstream failures of any kind (network, auth,
timeout, malformed output) turn into a fixed reply pointing the user at the
emergency number, with a low confidence so the UI can tell the difference.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from ..persona import Persona, instructions_for
from ..prompts.health import build_chat_prompt, format_history
from ..telemetry.events import elapsed_ms, log_event
from .vertex_helpers import VertexSettings, vertex_call_text

HISTORY_LIMIT = 5
# Fixed values; no model signal is available to derive a real score
CONFIDENCE_OK = 0.8
CONFIDENCE_DEGRADED = 0.1

EMPTY_REPLY_MESSAGE = (
    "I apologize, but I'm having trouble processing your request right now. "
    "Please try again or contact our support team."
)
DEGRADED_REPLY_MESSAGE = (
    "I'm experiencing some technical difficulties. Please try again in a moment, "
    "or if this is urgent, please call our emergency number 108."
)


@dataclass(frozen=True)
class GeneratedReply:
    message: str
    confidence: float
    model: Optional[str] = None
    degraded: bool = False


class ResponseGenerator:
    def __init__(self, *, settings: VertexSettings, logger: Any = None, timeout: Optional[float] = None) -> None:
        self.settings = settings
        self.logger = logger or logging.getLogger("intelimed.chat")
        self.timeout = timeout

    def build_prompt(
        self,
        user_message: str,
        persona: Optional[str],
        history: Sequence[Mapping[str, Any]] = (),
        limit: int = HISTORY_LIMIT,
    ) -> str:
        resolved = Persona.parse(persona)
        return build_chat_prompt(
            instructions=instructions_for(resolved),
            persona=resolved.value,
            history_text=format_history(history, limit),
            message=user_message,
        )

    async def generate(
        self,
        user_message: str,
        persona: Optional[str],
        history: Sequence[Mapping[str, Any]] = (),
        limit: int = HISTORY_LIMIT,
    ) -> GeneratedReply:
        started = time.time()
        try:
            prompt = self.build_prompt(user_message, persona, history, limit)
            text, model_used = await asyncio.wait_for(
                asyncio.to_thread(
                    vertex_call_text,
                    settings=self.settings,
                    prompt=prompt,
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            log_event(
                self.logger,
                "chat_reply",
                level=logging.WARNING,
                caps={"error": 512},
                status="degraded",
                errorType=type(e).__name__,
                error=str(e),
                latencyMs=elapsed_ms(started),
            )
            return GeneratedReply(message=DEGRADED_REPLY_MESSAGE, confidence=CONFIDENCE_DEGRADED, degraded=True)

        message = text if (text or "").strip() else EMPTY_REPLY_MESSAGE
        log_event(
            self.logger,
            "chat_reply",
            status="ok",
            modelId=model_used,
            replyLen=len(message),
            latencyMs=elapsed_ms(started),
        )
        return GeneratedReply(message=message, confidence=CONFIDENCE_OK, model=model_used)
