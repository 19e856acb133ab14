"""
Health-risk analysis of a completed questionnaire.

The model is asked for schema-constrained JSON. Its answer goes through a
strict decode step that yields either DecodedRisk or RiskDecodeFailure.

analyze() never raises. When the upstream call or the decode fails, the
result still carries riskLevel "low" with generic recommendations, but its
status is "indeterminate" so a failed analysis is distinguishable from a
concluded low risk.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from ..json_schemas import RISK_ANALYSIS_SCHEMA, SchemaValidationError, validate_json
from ..models import RiskAnalysis
from ..prompts.health import build_risk_prompt
from ..telemetry.events import elapsed_ms, log_event
from .vertex_helpers import VertexSettings, extract_json_payload, vertex_call_json

DEFAULT_RISK_LEVEL = "low"
DEFAULT_RECOMMENDATIONS = ["Maintain a healthy lifestyle", "Regular check-ups with your doctor"]
DEFAULT_EXPLANATION = "Assessment completed successfully"

FALLBACK_RECOMMENDATIONS = ["Consult with a healthcare professional", "Maintain regular health check-ups"]
FALLBACK_EXPLANATION = "Unable to complete detailed analysis. Please consult with a healthcare provider."


@dataclass(frozen=True)
class DecodedRisk:
    analysis: RiskAnalysis


@dataclass(frozen=True)
class RiskDecodeFailure:
    reason: str


RiskDecodeResult = Union[DecodedRisk, RiskDecodeFailure]


def _missing(value: Any) -> bool:
    return value is None or value == "" or value == []


def decode_risk_response(raw: Optional[str]) -> RiskDecodeResult:
    """Parse and validate the model's JSON answer.

    Absent fields (missing, null, empty) take the documented defaults; fields
    that are present but malformed make the whole answer a failure. An empty
    answer is an object with every field absent.
    """
    obj = extract_json_payload(raw) if (raw or "").strip() else {}
    if not isinstance(obj, dict):
        return RiskDecodeFailure(reason="response is not a JSON object")

    level = obj.get("riskLevel")
    if isinstance(level, str):
        level = level.strip().lower()
    candidate: Dict[str, Any] = {
        "riskLevel": DEFAULT_RISK_LEVEL if _missing(level) else level,
        "recommendations": list(DEFAULT_RECOMMENDATIONS) if _missing(obj.get("recommendations")) else obj["recommendations"],
        "explanation": DEFAULT_EXPLANATION if _missing(obj.get("explanation")) else obj["explanation"],
    }
    try:
        validate_json(candidate, RISK_ANALYSIS_SCHEMA)
    except SchemaValidationError as e:
        return RiskDecodeFailure(reason=str(e))
    return DecodedRisk(analysis=RiskAnalysis(status="completed", **candidate))


def fallback_analysis() -> RiskAnalysis:
    return RiskAnalysis(
        riskLevel=DEFAULT_RISK_LEVEL,
        recommendations=list(FALLBACK_RECOMMENDATIONS),
        explanation=FALLBACK_EXPLANATION,
        status="indeterminate",
    )


class RiskAnalyzer:
    def __init__(self, *, settings: VertexSettings, logger: Any = None, timeout: Optional[float] = None) -> None:
        self.settings = settings
        self.logger = logger or logging.getLogger("intelimed.assessment")
        self.timeout = timeout

    async def analyze(self, responses: Dict[str, Any]) -> RiskAnalysis:
        started = time.time()
        try:
            raw, model_used = await asyncio.wait_for(
                asyncio.to_thread(
                    vertex_call_json,
                    settings=self.settings,
                    prompt=build_risk_prompt(responses),
                    schema=RISK_ANALYSIS_SCHEMA,
                ),
                timeout=self.timeout,
            )
        except Exception as e:
            log_event(
                self.logger,
                "risk_analysis",
                level=logging.WARNING,
                caps={"error": 512},
                status="upstream_error",
                errorType=type(e).__name__,
                error=str(e),
                latencyMs=elapsed_ms(started),
            )
            return fallback_analysis()

        result = decode_risk_response(raw)
        if isinstance(result, RiskDecodeFailure):
            log_event(
                self.logger,
                "risk_analysis",
                level=logging.WARNING,
                caps={"reason": 512, "raw": 1024},
                status="decode_failure",
                reason=result.reason,
                raw=raw,
                modelId=model_used,
                latencyMs=elapsed_ms(started),
            )
            return fallback_analysis()

        log_event(
            self.logger,
            "risk_analysis",
            status="ok",
            riskLevel=result.analysis.riskLevel,
            recommendations=len(result.analysis.recommendations),
            modelId=model_used,
            latencyMs=elapsed_ms(started),
        )
        return result.analysis
