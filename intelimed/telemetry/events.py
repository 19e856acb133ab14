"""
Structured JSON event logging.

Every event is one JSON object on one log line with an `event` key. Callers
pass a standard logging.Logger; nothing here depends on FastAPI.
"""
from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional


def truncate_for_log(s: Any, cap: int) -> str:
    """Return str(s) cut to at most `cap` characters. Never raises."""
    try:
        text = s if isinstance(s, str) else str(s)
    except Exception:
        return ""
    return text if len(text) <= cap else text[:cap]


def elapsed_ms(started: float) -> int:
    """Milliseconds since `started` (a time.time() value)."""
    return int((time.time() - started) * 1000)


def log_event(
    logger,
    event_name: str,
    *,
    level: int = logging.INFO,
    caps: Optional[Dict[str, int]] = None,
    **fields: Any,
) -> None:
    """Emit `{"event": event_name, **fields}` as a single JSON line.

    caps maps field names to a maximum string length. Values json cannot
    encode are logged via str().
    """
    payload: Dict[str, Any] = {"event": event_name}
    payload.update(fields)

    for key, limit in (caps or {}).items():
        if payload.get(key) is not None:
            payload[key] = truncate_for_log(payload[key], int(limit))

    try:
        line = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        line = str(payload)
    logger.log(level, line)


__all__ = ["truncate_for_log", "elapsed_ms", "log_event"]
