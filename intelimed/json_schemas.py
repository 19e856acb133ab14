"""
JSON Schemas for structured model output and their validation helpers.

Schemas are written as standard draft-07 JSON Schema for local validation and
adapted with vertex_response_schema() before being sent as responseSchema.
"""
from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft7Validator

RISK_LEVELS = ["low", "medium", "high"]

RISK_ANALYSIS_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "riskLevel": {"type": "string", "enum": RISK_LEVELS},
        "recommendations": {"type": "array", "items": {"type": "string"}},
        "explanation": {"type": "string"},
    },
    "required": ["riskLevel", "recommendations", "explanation"],
}


class SchemaValidationError(ValueError):
    pass


def _sanitize_for_vertex(value: Any) -> Any:
    """Recursively adapt a JSON Schema to what Vertex accepts.

    - Drop "$schema".
    - Type arrays like ["string", "null"] become type="string" plus nullable=True.
    - None inside enum lists is removed and marks the node nullable.
    """
    if isinstance(value, list):
        return [_sanitize_for_vertex(v) for v in value]
    if not isinstance(value, dict):
        return value

    out: Dict[str, Any] = {k: _sanitize_for_vertex(v) for k, v in value.items() if k != "$schema"}
    t = out.get("type")
    if isinstance(t, list):
        non_null = [x for x in t if x != "null"]
        out["type"] = non_null[0] if non_null else "string"
        if "null" in t:
            out["nullable"] = True
    enum = out.get("enum")
    if isinstance(enum, list) and None in enum:
        out["enum"] = [e for e in enum if e is not None]
        out.setdefault("nullable", True)
    return out


def vertex_response_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    """Return a Vertex-compatible copy of a standard JSON Schema dict."""
    return _sanitize_for_vertex(schema)


def validate_json(instance: Any, schema: Dict[str, Any]) -> None:
    """Validate instance against schema; raise SchemaValidationError listing every problem."""
    errors = sorted(Draft7Validator(schema).iter_errors(instance), key=lambda e: [str(p) for p in e.path])
    if errors:
        raise SchemaValidationError("; ".join(f"{list(e.path)}: {e.message}" for e in errors))


__all__ = [
    "RISK_LEVELS",
    "RISK_ANALYSIS_SCHEMA",
    "SchemaValidationError",
    "vertex_response_schema",
    "validate_json",
]
