import asyncio
import json

import pytest

from intelimed.services.risk_analyzer import (
    DEFAULT_EXPLANATION,
    DEFAULT_RECOMMENDATIONS,
    FALLBACK_RECOMMENDATIONS,
    DecodedRisk,
    RiskAnalyzer,
    RiskDecodeFailure,
    decode_risk_response,
)
from intelimed.services.vertex_helpers import VertexSettings
from intelimed.vertex import VertexAIError


def _analyzer():
    return RiskAnalyzer(settings=VertexSettings(project="p", region="r", model_id="risk-model"))


def test_decode_full_answer():
    raw = json.dumps({"riskLevel": "Medium", "recommendations": ["Walk daily"], "explanation": "Sedentary"})
    result = decode_risk_response(raw)
    assert isinstance(result, DecodedRisk)
    assert result.analysis.riskLevel == "medium"
    assert result.analysis.recommendations == ["Walk daily"]
    assert result.analysis.status == "completed"


def test_decode_fenced_answer():
    raw = "```json\n{\"riskLevel\": \"high\", \"recommendations\": [], \"explanation\": \"x\"}\n```"
    result = decode_risk_response(raw)
    assert isinstance(result, DecodedRisk)
    assert result.analysis.riskLevel == "high"
    # empty list counts as absent
    assert result.analysis.recommendations == DEFAULT_RECOMMENDATIONS


@pytest.mark.parametrize("raw", ["{}", "", "   \n", None])
def test_decode_missing_fields_take_defaults(raw):
    result = decode_risk_response(raw)
    assert isinstance(result, DecodedRisk)
    assert result.analysis.riskLevel == "low"
    assert result.analysis.recommendations == DEFAULT_RECOMMENDATIONS
    assert result.analysis.explanation == DEFAULT_EXPLANATION


@pytest.mark.parametrize("raw", [
    "not json at all",
    "[1, 2, 3]",
    json.dumps({"riskLevel": "critical"}),
    json.dumps({"recommendations": "walk more"}),
    json.dumps({"recommendations": [1, 2]}),
    json.dumps({"explanation": 42}),
])
def test_decode_failures(raw):
    assert isinstance(decode_risk_response(raw), RiskDecodeFailure)


def test_analyze_success_uses_json_mode(gateway):
    gateway.reply = json.dumps({"riskLevel": "high", "recommendations": ["Stop smoking"], "explanation": "Smoker"})
    analysis = asyncio.run(_analyzer().analyze({"smoking": "daily", "age": "56-65"}))
    assert analysis.riskLevel == "high"
    assert analysis.status == "completed"
    call = gateway.calls[0]
    assert "response_schema" in call
    assert "$schema" not in call["response_schema"]
    assert '"smoking": "daily"' in call["prompt"]


def test_analyze_upstream_error_is_indeterminate(gateway):
    gateway.reply = VertexAIError("quota", status_code=429)
    analysis = asyncio.run(_analyzer().analyze({"age": "18-25"}))
    assert analysis.riskLevel == "low"
    assert analysis.recommendations == FALLBACK_RECOMMENDATIONS
    assert analysis.status == "indeterminate"


def test_analyze_undecodable_answer_is_indeterminate(gateway):
    gateway.reply = "I think you are fine."
    analysis = asyncio.run(_analyzer().analyze({"age": "18-25"}))
    assert analysis.riskLevel == "low"
    assert analysis.status == "indeterminate"


def test_analyze_empty_answer_takes_field_defaults(gateway):
    gateway.reply = ""
    analysis = asyncio.run(_analyzer().analyze({"age": "30"}))
    assert analysis.riskLevel == "low"
    assert analysis.recommendations == DEFAULT_RECOMMENDATIONS
    assert analysis.explanation == DEFAULT_EXPLANATION
    assert analysis.status == "completed"


def test_analyze_makes_one_upstream_attempt(gateway):
    gateway.reply = VertexAIError("unavailable", status_code=503)
    asyncio.run(_analyzer().analyze({"age": "30"}))
    assert len(gateway.calls) == 1
