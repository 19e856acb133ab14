"""
Error envelope shared by exception handlers and request handlers.

All error responses look like {"error": {"message", "code", "requestId", ...}}.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi.responses import JSONResponse


def get_request_id(request: Any) -> str:
    """Inbound x-request-id / x-cloud-trace-context, else the middleware id, else a new uuid."""
    headers = getattr(request, "headers", None) or {}
    h = headers.get("x-cloud-trace-context") or headers.get("x-request-id")
    if h:
        return h
    state = getattr(request, "state", None)
    return getattr(state, "request_id", None) or str(uuid.uuid4())


def error_payload(request: Any, status_code: int, message: str, **extra: Any) -> dict:
    body = {"message": message, "code": status_code, "requestId": get_request_id(request)}
    body.update(extra)
    return {"error": body}


def error_response(request: Any, status_code: int, message: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=error_payload(request, status_code, message, **extra))


__all__ = ["get_request_id", "error_payload", "error_response"]
