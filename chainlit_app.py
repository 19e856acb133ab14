import os
import uuid
from pathlib import Path
import httpx
import chainlit as cl
from intelimed.persona import Persona

# Base URL of the FastAPI backend. Override with BACKEND_URL; for local
# development scripts/dev_run.py points this at the uvicorn port.
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("CHAINLIT_HTTP_TIMEOUT", "60"))

PERSONA_PROFILES = {
    Persona.GENERAL: "General health questions with a professional, friendly tone.",
    Persona.SENIOR: "Clear, patient answers with attention to medication routines and check-ups.",
    Persona.CHILD: "Simple, encouraging answers for children and their parents.",
    Persona.ANXIOUS: "Calm, reassuring answers for health-related worries.",
    Persona.CAREGIVER: "Practical guidance for people caring for someone else.",
}


def _author_from_role(is_user: bool) -> str:
    return "User" if is_user else "InteliMed"


def _get_persistent_user_id() -> str:
    """
    Return a stable user id for the backend's per-user history.
    Precedence:
    1) FIXED_USER_ID env var
    2) Value stored in .chainlit/user_id (created if missing)
    3) Fresh UUID4 (as last resort)

    Stored on the server filesystem, so in multi-user deployments everyone
    shares this id unless auth is enabled.
    """
    uid = os.getenv("FIXED_USER_ID")
    if uid:
        return uid
    try:
        store_dir = Path(os.getcwd()) / ".chainlit"
        store_dir.mkdir(parents=True, exist_ok=True)
        f = store_dir / "user_id"
        if f.exists():
            uid = f.read_text(encoding="utf-8").strip()
            if uid:
                return uid
        uid = str(uuid.uuid4())
        f.write_text(uid, encoding="utf-8")
        return uid
    except OSError:
        return str(uuid.uuid4())


def _selected_persona() -> str:
    return Persona.parse(cl.user_session.get("chat_profile")).value


@cl.set_chat_profiles
async def chat_profiles():
    return [
        cl.ChatProfile(name=persona.value, markdown_description=description)
        for persona, description in PERSONA_PROFILES.items()
    ]


@cl.on_chat_start
async def start_chat():
    """Assign the user id and check that the backend is reachable."""
    cl.user_session.set("user_id", _get_persistent_user_id())

    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            r = await client.get(f"{BACKEND_URL}/healthz")
            ok = r.status_code == 200
    except httpx.HTTPError:
        ok = False
    if not ok:
        await cl.Message(
            f"Backend at {BACKEND_URL} is not reachable. Start it first: `python scripts/dev_run.py`.",
            author="System",
        ).send()
        return

    await cl.Message(
        "Hello, I'm InteliMed. Ask me about symptoms, medications or healthy habits. "
        "I can't diagnose or prescribe, and in an emergency please call 108."
    ).send()


@cl.on_message
async def handle_message(message: cl.Message):
    """Forward the user's message to POST /chat and show the assistant turn."""
    content = message.content.strip()
    if not content:
        await cl.Message("Please enter a message.").send()
        return

    payload = {
        "userId": cl.user_session.get("user_id") or _get_persistent_user_id(),
        "message": content,
        "persona": _selected_persona(),
    }
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            response = await client.post(f"{BACKEND_URL}/chat", json=payload)
    except httpx.HTTPError as e:
        await cl.Message(f"Network error: {e}", author="System").send()
        return

    reply = None
    if response.status_code == 200:
        try:
            reply = (response.json().get("aiMessage") or {}).get("message")
        except ValueError:
            reply = None

    if not reply:
        try:
            error_msg = response.json().get("error", {}).get("message")
        except ValueError:
            error_msg = None
        suffix = f": {error_msg}" if error_msg else ""
        await cl.Message(f"Backend error: HTTP {response.status_code}{suffix}", author="System").send()
        return

    await cl.Message(reply, author=_author_from_role(False)).send()


@cl.on_chat_resume
async def resume_chat(thread):
    """Replay the stored conversation for this user from the backend."""
    user_id = cl.user_session.get("user_id") or _get_persistent_user_id()
    cl.user_session.set("user_id", user_id)
    try:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            r = await client.get(f"{BACKEND_URL}/chat-messages/{user_id}")
        turns = r.json() if r.status_code == 200 else []
    except (httpx.HTTPError, ValueError):
        turns = []
    for turn in turns:
        await cl.Message(content=turn.get("message", ""), author=_author_from_role(bool(turn.get("isUser")))).send()
