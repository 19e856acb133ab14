"""
Chat turn orchestration.

One request runs these stages in order:
1. persist the user's turn
2. fetch the user's ordered history and keep the trailing window
3. generate the assistant reply (never fails, see ResponseGenerator)
4. persist the assistant's turn
5. return both turns and the reply confidence

Context is rebuilt from storage on every request; nothing is cached here.
Only storage faults reach the error path, which answers with a generic 500.
"""
from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Dict, List

from fastapi import Request
from fastapi.responses import JSONResponse

from ..errors import error_response, get_request_id
from ..models import ChatRequest, ChatResponse, NewChatMessage
from ..persona import Persona
from ..storage import Storage
from ..telemetry.events import elapsed_ms, log_event
from .response_generator import ResponseGenerator

HISTORY_WINDOW = 10


class ChatStage(str, Enum):
    RECEIVED_REQUEST = "received_request"
    USER_TURN_PERSISTED = "user_turn_persisted"
    HISTORY_FETCHED = "history_fetched"
    REPLY_GENERATED = "reply_generated"
    ASSISTANT_TURN_PERSISTED = "assistant_turn_persisted"
    RESPONSE_SENT = "response_sent"


class ChatOrchestrator:
    """Runs a single chat turn. Build one per request."""

    def __init__(
        self,
        *,
        storage: Storage,
        generator: ResponseGenerator,
        logger: Any,
        history_window: int = HISTORY_WINDOW,
    ) -> None:
        self.storage = storage
        self.generator = generator
        self.logger = logger
        self.history_window = int(history_window)
        self.stage = ChatStage.RECEIVED_REQUEST

    async def handle_chat(self, req: Request, body: ChatRequest) -> JSONResponse:
        started = time.time()
        try:
            result = await self.run_turn(body)
        except Exception as e:
            self.logger.exception("Chat turn failed: %s", e)
            log_event(
                self.logger,
                "chat",
                level=logging.ERROR,
                status="error",
                stage=self.stage.value,
                requestId=get_request_id(req),
                userId=body.userId,
                error=str(e),
                latencyMs=elapsed_ms(started),
            )
            return error_response(req, 500, "Failed to process chat message")

        self.stage = ChatStage.RESPONSE_SENT
        log_event(
            self.logger,
            "chat",
            status="ok",
            requestId=get_request_id(req),
            userId=body.userId,
            persona=result.userMessage.persona,
            confidence=result.confidence,
            latencyMs=elapsed_ms(started),
        )
        return JSONResponse(status_code=200, content=result.model_dump(mode="json"))

    async def run_turn(self, body: ChatRequest) -> ChatResponse:
        persona = Persona.parse(body.persona).value

        user_message = await asyncio.to_thread(
            self.storage.append_chat_message,
            NewChatMessage(userId=body.userId, message=body.message, isUser=True, persona=persona)
        )
        self.stage = ChatStage.USER_TURN_PERSISTED

        history = await asyncio.to_thread(self.recent_history, body.userId)
        self.stage = ChatStage.HISTORY_FETCHED

        reply = await self.generator.generate(body.message, persona, history)
        self.stage = ChatStage.REPLY_GENERATED

        ai_message = await asyncio.to_thread(
            self.storage.append_chat_message,
            NewChatMessage(userId=body.userId, message=reply.message, isUser=False, persona=persona)
        )
        self.stage = ChatStage.ASSISTANT_TURN_PERSISTED

        return ChatResponse(userMessage=user_message, aiMessage=ai_message, confidence=reply.confidence)

    def recent_history(self, user_id: str) -> List[Dict[str, str]]:
        """Trailing window of the user's turns as role/content pairs."""
        turns = self.storage.list_chat_messages_for_user(user_id)[-self.history_window:]
        return [
            {"role": "user" if t.isUser else "assistant", "content": t.message}
            for t in turns
        ]
