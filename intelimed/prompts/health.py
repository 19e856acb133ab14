from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Sequence

from .loader import render


def format_history(history: Sequence[Mapping[str, Any]], limit: int) -> str:
    """Render the last `limit` turns as `role: content` lines, oldest first."""
    tail = list(history)[-limit:] if limit > 0 else []
    return "\n".join(f"{turn.get('role')}: {turn.get('content')}" for turn in tail)


def build_chat_prompt(*, instructions: str, persona: str, history_text: str, message: str) -> str:
    return render(
        "chat_turn.txt",
        instructions=instructions,
        persona=persona,
        history=history_text,
        message=message,
    )


def build_risk_prompt(responses: Dict[str, Any]) -> str:
    return render("risk_analysis.txt", responses=json.dumps(responses, indent=2, ensure_ascii=False, default=str))
