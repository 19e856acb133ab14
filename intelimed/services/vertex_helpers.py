import json
import re
from dataclasses import dataclass
from typing import Optional

from ..vertex import VertexClient


@dataclass(frozen=True)
class VertexSettings:
    """Everything needed to build a VertexGateway for one call path."""

    project: Optional[str]
    region: str
    model_id: str
    temperature: float = 0.2
    max_tokens: int = 2048
    timeout: Optional[float] = None
    client_cls: type = VertexClient


_FENCE_RE = re.compile(r"```\s*(json5?)?\s*\n(.*?)\n```", re.IGNORECASE | re.DOTALL)


def extract_json_payload(text: Optional[str]) -> Optional[object]:
    """Decode a JSON value from a model response.

    Even in JSON mode some models wrap the object in a ```json fence. Tries
    labeled fences, then unlabeled fences, then the whole string with stray
    backticks removed. Returns None when nothing decodes.
    """
    if not text:
        return None
    s = text.strip()

    matches = _FENCE_RE.findall(s)
    labeled = [body for lang, body in matches if lang]
    unlabeled = [body for lang, body in matches if not lang]
    for body in labeled + unlabeled:
        try:
            return json.loads(body)
        except ValueError:
            continue

    try:
        return json.loads(s.replace("```", "").strip())
    except ValueError:
        return None


def _gateway(settings: VertexSettings):
    # Resolved at call time so tests can monkeypatch the gateway class
    from . import vertex_gateway

    return vertex_gateway.VertexGateway(
        project=settings.project,
        region=settings.region,
        model_id=settings.model_id,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
        timeout=settings.timeout,
        client_cls=settings.client_cls,
    )


def vertex_call_text(*, settings: VertexSettings, prompt: str) -> tuple[str, Optional[str]]:
    """Free-text generation, one upstream attempt. Returns (text, model_used)."""
    gateway = _gateway(settings)
    text = gateway.generate_text(prompt=prompt)
    return text, getattr(gateway, "last_model_used", None) or settings.model_id


def vertex_call_json(*, settings: VertexSettings, prompt: str, schema: dict) -> tuple[str, Optional[str]]:
    """Schema-constrained generation, one upstream attempt. Returns (raw text, model_used)."""
    from ..json_schemas import vertex_response_schema

    gateway = _gateway(settings)
    text = gateway.generate_text_json(prompt=prompt, response_schema=vertex_response_schema(schema))
    return text, getattr(gateway, "last_model_used", None) or settings.model_id
