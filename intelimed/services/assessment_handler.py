from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from ..errors import error_response, get_request_id
from ..models import HealthAssessmentRequest, HealthAssessmentResponse, NewHealthAssessment
from ..storage import Storage
from ..telemetry.events import elapsed_ms, log_event
from .risk_analyzer import RiskAnalyzer


class AssessmentHandler:
    """Analyze a submitted questionnaire, then store it with the result.

    The analysis cannot fail (see RiskAnalyzer); storage faults map to a 500.
    """

    def __init__(self, *, storage: Storage, analyzer: RiskAnalyzer, logger: Any) -> None:
        self.storage = storage
        self.analyzer = analyzer
        self.logger = logger

    async def handle(self, req: Request, body: HealthAssessmentRequest) -> JSONResponse:
        started = time.time()
        analysis = await self.analyzer.analyze(body.responses)
        try:
            stored = await asyncio.to_thread(
                self.storage.append_assessment,
                NewHealthAssessment(
                    userId=body.userId,
                    responses=body.responses,
                    riskLevel=analysis.riskLevel,
                    recommendations=analysis.recommendations,
                    analysisStatus=analysis.status,
                )
            )
        except Exception as e:
            self.logger.exception("Storing health assessment failed: %s", e)
            log_event(
                self.logger,
                "health_assessment",
                level=logging.ERROR,
                status="error",
                requestId=get_request_id(req),
                userId=body.userId,
                error=str(e),
            )
            return error_response(req, 500, "Failed to create health assessment")

        log_event(
            self.logger,
            "health_assessment",
            status="ok",
            requestId=get_request_id(req),
            userId=body.userId,
            questions=len(body.responses),
            riskLevel=analysis.riskLevel,
            analysisStatus=analysis.status,
            latencyMs=elapsed_ms(started),
        )
        payload = HealthAssessmentResponse(**stored.model_dump(), analysis=analysis)
        return JSONResponse(status_code=200, content=payload.model_dump(mode="json"))
