import json
import logging
import os
import time
import uuid
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from .errors import error_response, get_request_id
from .models import (
    ChatMessage,
    ChatRequest,
    EmergencyContact,
    EmergencyContactCreate,
    EmergencyContactUpdate,
    HealthAssessment,
    HealthAssessmentRequest,
    HealthGoal,
    HealthGoalCreate,
    HealthGoalUpdate,
    Medication,
    MedicationCreate,
    MedicationReminder,
    MedicationUpdate,
)
from .persona import Persona
from .services import facilities
from .services.reminders import minutes_of_day, parse_hhmm, upcoming_reminders
from .services.vertex_helpers import VertexSettings
from .storage import InMemoryStorage, RedisStorage
from .telemetry.events import log_event
from .vertex import VertexClient

# Environment configuration with sensible defaults
PROJECT_ID = os.getenv("PROJECT_ID")
REGION = os.getenv("REGION", "us-central1")
# Vertex AI location can be "global" or differ from the serving region
VERTEX_LOCATION = os.getenv("VERTEX_LOCATION", REGION)
CHAT_MODEL_ID = os.getenv("CHAT_MODEL_ID", "gemini-2.5-flash")
RISK_MODEL_ID = os.getenv("RISK_MODEL_ID", "gemini-2.5-pro")
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.4"))
MAX_TOKENS = int(os.getenv("MAX_TOKENS", "2048"))
# Upper bound for a single upstream generation; expiry counts as an upstream failure
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "30"))
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "info").upper()
LOG_REQUEST_BODY_MAX = int(os.getenv("LOG_REQUEST_BODY_MAX", "1024"))
LOG_HEADERS = os.getenv("LOG_HEADERS", "false").lower() == "true"
# Debug mode logs chat text and questionnaire answers instead of redacting them
DEBUG_MODE = os.getenv("DEBUG_MODE", "false").lower() == "true"
# Storage backend: "memory" (default) or "redis"
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "memory").lower()
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD")
REDIS_PREFIX = os.getenv("REDIS_PREFIX", "intelimed:")

REDACTED_BODY_FIELDS = ("message", "responses")

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("intelimed")

app = FastAPI(title="InteliMed API", version="0.1.0")

try:
    if STORAGE_BACKEND == "redis":
        _STORAGE = RedisStorage(
            url=REDIS_URL,
            host=REDIS_HOST,
            port=REDIS_PORT,
            db=REDIS_DB,
            password=REDIS_PASSWORD,
            prefix=REDIS_PREFIX,
        )
    else:
        _STORAGE = InMemoryStorage()
except RuntimeError as e:
    log_event(logger, "storage_fallback", level=logging.WARNING, requested=STORAGE_BACKEND, using="memory", error=str(e))
    _STORAGE = InMemoryStorage()
    STORAGE_BACKEND = "memory"

if ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=3600,
    )


def _vertex_settings(model_id: str) -> VertexSettings:
    # Read module globals per call so tests can monkeypatch them
    return VertexSettings(
        project=PROJECT_ID,
        region=VERTEX_LOCATION,
        model_id=model_id,
        temperature=TEMPERATURE,
        max_tokens=MAX_TOKENS,
        timeout=UPSTREAM_TIMEOUT_SECONDS,
        client_cls=VertexClient,
    )


# -------- Exception handlers: every error uses the same envelope --------
@app.exception_handler(HTTPException)
async def on_http_exception(request: Request, exc: HTTPException):
    log_event(
        logger,
        "http_exception",
        level=logging.WARNING,
        status=exc.status_code,
        detail=exc.detail,
        requestId=get_request_id(request),
        path=request.url.path,
        method=request.method,
    )
    if isinstance(exc.detail, dict):
        return error_response(request, exc.status_code, str(exc.detail.get("message", "")), **{
            k: v for k, v in exc.detail.items() if k != "message"
        })
    return error_response(request, exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def on_validation_error(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]
    log_event(
        logger,
        "request_validation_error",
        level=logging.WARNING,
        errors=errors,
        requestId=get_request_id(request),
        path=request.url.path,
        method=request.method,
    )
    return error_response(request, 400, "Invalid request data", errors=errors)


@app.exception_handler(Exception)
async def on_unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled application exception: %s", exc)
    log_event(
        logger,
        "unhandled_exception",
        level=logging.ERROR,
        error=str(exc),
        requestId=get_request_id(request),
        path=request.url.path,
        method=request.method,
    )
    return error_response(request, 500, "Internal server error")


def _body_for_log(body_bytes: bytes):
    preview = body_bytes[:LOG_REQUEST_BODY_MAX]
    if not preview:
        return None
    try:
        body = json.loads(preview.decode("utf-8"))
    except ValueError:
        return preview.decode("utf-8", errors="replace")
    if not DEBUG_MODE and isinstance(body, dict):
        for key in REDACTED_BODY_FIELDS:
            if key in body:
                body[key] = "<hidden>"
    return body


@app.middleware("http")
async def log_requests(request: Request, call_next):
    req_id = request.headers.get("x-cloud-trace-context") or request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = req_id
    started = time.time()

    body_bytes = await request.body()
    headers_logged = None
    if LOG_HEADERS:
        redact = {"authorization", "cookie", "set-cookie"}
        headers_logged = {k: ("<redacted>" if k.lower() in redact else v) for k, v in request.headers.items()}

    log_event(
        logger,
        "request_start",
        method=request.method,
        path=request.url.path,
        client=request.client.host if request.client else None,
        requestId=req_id,
        bodySize=len(body_bytes),
        body=_body_for_log(body_bytes),
        headers=headers_logged,
    )

    response = await call_next(request)
    response.headers["x-request-id"] = req_id

    status_code = response.status_code
    level = logging.ERROR if status_code >= 500 else logging.WARNING if status_code >= 400 else logging.INFO
    log_event(
        logger,
        "request_end",
        level=level,
        method=request.method,
        path=request.url.path,
        status=status_code,
        latencyMs=int((time.time() - started) * 1000),
        requestId=req_id,
    )
    return response


# -------- Diagnostics --------
@app.get("/healthz")
async def healthz():
    return {"status": "ok"}


@app.get("/config")
async def config():
    return {
        "projectId": PROJECT_ID,
        "region": REGION,
        "vertexLocation": VERTEX_LOCATION,
        "chatModelId": CHAT_MODEL_ID,
        "riskModelId": RISK_MODEL_ID,
        "temperature": TEMPERATURE,
        "maxTokens": MAX_TOKENS,
        "upstreamTimeoutSeconds": UPSTREAM_TIMEOUT_SECONDS,
        "logLevel": LOG_LEVEL,
        "logHeaders": LOG_HEADERS,
        "logRequestBodyMax": LOG_REQUEST_BODY_MAX,
        "allowedOrigins": ALLOWED_ORIGINS,
        "debugMode": DEBUG_MODE,
        "storageBackend": STORAGE_BACKEND,
        "personas": [p.value for p in Persona],
    }


@app.get("/diagnostics")
async def diagnostics():
    """Effective generation and storage settings."""
    return {
        "transport": "rest" if os.getenv("USE_VERTEX_REST", "true").lower() == "true" else "sdk",
        "generationConfig": {
            "temperature": TEMPERATURE,
            "maxOutputTokens": MAX_TOKENS,
            "timeoutSeconds": UPSTREAM_TIMEOUT_SECONDS,
        },
        "models": {"chat": CHAT_MODEL_ID, "risk": RISK_MODEL_ID},
        "storage": {"backend": getattr(_STORAGE, "backend_name", STORAGE_BACKEND)},
    }


# -------- Chat --------
@app.post("/chat")
async def chat(req: Request, body: ChatRequest):
    from .services.chat_orchestrator import ChatOrchestrator
    from .services.response_generator import ResponseGenerator

    generator = ResponseGenerator(
        settings=_vertex_settings(CHAT_MODEL_ID),
        logger=logger,
        timeout=UPSTREAM_TIMEOUT_SECONDS,
    )
    orchestrator = ChatOrchestrator(storage=_STORAGE, generator=generator, logger=logger)
    return await orchestrator.handle_chat(req, body)


@app.get("/chat-messages/{user_id}", response_model=list[ChatMessage])
def chat_messages(req: Request, user_id: str):
    try:
        return _STORAGE.list_chat_messages_for_user(user_id)
    except Exception as e:
        logger.exception("Fetching chat messages failed: %s", e)
        return error_response(req, 500, "Failed to fetch chat messages")


# -------- Health assessments --------
@app.post("/health-assessments")
async def create_health_assessment(req: Request, body: HealthAssessmentRequest):
    from .services.assessment_handler import AssessmentHandler
    from .services.risk_analyzer import RiskAnalyzer

    analyzer = RiskAnalyzer(
        settings=_vertex_settings(RISK_MODEL_ID),
        logger=logger,
        timeout=UPSTREAM_TIMEOUT_SECONDS,
    )
    handler = AssessmentHandler(storage=_STORAGE, analyzer=analyzer, logger=logger)
    return await handler.handle(req, body)


@app.get("/health-assessments/{user_id}", response_model=list[HealthAssessment])
def list_health_assessments(user_id: str):
    return _STORAGE.list_assessments_for_user(user_id)


# -------- Health goals --------
def _not_found(what: str) -> HTTPException:
    return HTTPException(status_code=404, detail=f"{what} not found")


def _apply_update(update, record_id: str, changes, what: str):
    try:
        updated = update(record_id, changes)
    except ValidationError:
        raise HTTPException(status_code=400, detail=f"Invalid {what.lower()} data")
    if updated is None:
        raise _not_found(what)
    return updated


@app.get("/health-goals/{user_id}", response_model=list[HealthGoal])
def list_health_goals(user_id: str):
    return _STORAGE.list_health_goals(user_id)


@app.post("/health-goals", response_model=HealthGoal)
def create_health_goal(body: HealthGoalCreate):
    return _STORAGE.create_health_goal(body)


@app.patch("/health-goals/{goal_id}", response_model=HealthGoal)
def update_health_goal(goal_id: str, body: HealthGoalUpdate):
    return _apply_update(_STORAGE.update_health_goal, goal_id, body, "Health goal")


@app.delete("/health-goals/{goal_id}")
def delete_health_goal(goal_id: str):
    if not _STORAGE.delete_health_goal(goal_id):
        raise _not_found("Health goal")
    return {"deleted": True, "id": goal_id}


# -------- Medications --------
@app.get("/medications/{user_id}", response_model=list[Medication])
def list_medications(user_id: str):
    return _STORAGE.list_medications(user_id)


@app.get("/medications/{user_id}/reminders", response_model=list[MedicationReminder])
def medication_reminders(user_id: str, at: Optional[str] = None):
    """Doses due within the next two hours. `at` (HH:MM) overrides the server clock."""
    if at is None:
        now_minutes = minutes_of_day(datetime.now())
    else:
        now_minutes = parse_hhmm(at)
        if now_minutes is None:
            raise HTTPException(status_code=400, detail="Invalid time; expected HH:MM")
    return upcoming_reminders(_STORAGE.list_medications(user_id), now_minutes)


@app.post("/medications", response_model=Medication)
def create_medication(body: MedicationCreate):
    return _STORAGE.create_medication(body)


@app.patch("/medications/{medication_id}", response_model=Medication)
def update_medication(medication_id: str, body: MedicationUpdate):
    return _apply_update(_STORAGE.update_medication, medication_id, body, "Medication")


@app.delete("/medications/{medication_id}")
def delete_medication(medication_id: str):
    if not _STORAGE.delete_medication(medication_id):
        raise _not_found("Medication")
    return {"deleted": True, "id": medication_id}


# -------- Emergency contacts --------
@app.get("/emergency-contacts/{user_id}", response_model=list[EmergencyContact])
def list_emergency_contacts(user_id: str):
    return _STORAGE.list_emergency_contacts(user_id)


@app.post("/emergency-contacts", response_model=EmergencyContact)
def create_emergency_contact(body: EmergencyContactCreate):
    return _STORAGE.create_emergency_contact(body)


@app.patch("/emergency-contacts/{contact_id}", response_model=EmergencyContact)
def update_emergency_contact(contact_id: str, body: EmergencyContactUpdate):
    return _apply_update(_STORAGE.update_emergency_contact, contact_id, body, "Emergency contact")


@app.delete("/emergency-contacts/{contact_id}")
def delete_emergency_contact(contact_id: str):
    if not _STORAGE.delete_emergency_contact(contact_id):
        raise _not_found("Emergency contact")
    return {"deleted": True, "id": contact_id}


# -------- Facilities (mock data) --------
@app.get("/facilities")
async def list_facilities(type: Optional[str] = None):
    return facilities.list_facilities(type)


@app.get("/nearby-facilities")
async def nearby_facilities(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius: float = 5,
    type: str = "all",
):
    if lat is None or lng is None:
        raise HTTPException(status_code=400, detail="Latitude and longitude are required")
    found = facilities.generate_nearby_facilities(lat, lng, radius, type)
    return {
        "facilities": found,
        "count": len(found),
        "radius": radius,
        "center": {"lat": lat, "lng": lng},
    }


@app.get("/facility-details/{place_id}")
async def facility_details(place_id: str):
    return {"facility": facilities.facility_details(place_id)}
