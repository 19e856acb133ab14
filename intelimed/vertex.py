from typing import Optional, Dict, Any, Tuple
import logging
import os
import warnings
import json

from google.api_core import exceptions as gax_exceptions
import google.auth
from google.auth.transport.requests import AuthorizedSession
from vertexai import init as vertex_init
from vertexai.generative_models import GenerativeModel, GenerationConfig

SUPPRESS_VERTEXAI_DEPRECATION = os.getenv("SUPPRESS_VERTEXAI_DEPRECATION", "true").lower() == "true"
# REST is the default transport; the SDK path stays available for environments that need it
USE_VERTEX_REST = os.getenv("USE_VERTEX_REST", "true").lower() == "true"

if SUPPRESS_VERTEXAI_DEPRECATION:
    warnings.filterwarnings(
        "ignore",
        message="This feature is deprecated as of",
        category=UserWarning,
        module="vertexai.generative_models._generative_models",
    )


class VertexAIError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


def vertex_host(location: str) -> str:
    return "aiplatform.googleapis.com" if str(location).lower() == "global" else f"{location}-aiplatform.googleapis.com"


class VertexClient:
    """Single-model Gemini client on Vertex AI.

    generate_text() returns (text, meta). Every failure surfaces as VertexAIError
    so callers only need one except clause.
    """

    def __init__(self, project: str, region: str, model_id: str, timeout: Optional[float] = None):
        self.logger = logging.getLogger("intelimed.vertex")
        self.project = project
        self.region = region
        self.model_id = model_id
        self.timeout = timeout

    @staticmethod
    def _sanitize_response_schema(schema: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Drop $-prefixed keys ("$schema", "$id"); Vertex rejects them in responseSchema."""
        if not schema:
            return None

        def _clean(obj):
            if isinstance(obj, dict):
                return {k: _clean(v) for k, v in obj.items() if not (isinstance(k, str) and k.startswith("$"))}
            if isinstance(obj, list):
                return [_clean(x) for x in obj]
            return obj

        cleaned = _clean(schema)
        return cleaned or None

    def base_url(self) -> str:
        # Gemini 2.x models are exposed under v1beta; older ones under v1
        api_version = "v1beta" if str(self.model_id).startswith("gemini-2") else "v1"
        return (
            f"https://{vertex_host(self.region)}/{api_version}/projects/{self.project}"
            f"/locations/{self.region}/publishers/google/models/{self.model_id}:generateContent"
        )

    def generate_text(
        self,
        prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1024,
        response_mime_type: Optional[str] = None,
        response_schema: Optional[Dict[str, Any]] = None,
    ) -> Tuple[str, dict]:
        if USE_VERTEX_REST:
            return self._generate_text_rest(prompt, temperature, max_tokens, response_mime_type, response_schema)
        return self._generate_text_sdk(prompt, temperature, max_tokens, response_mime_type, response_schema)

    def _generate_text_sdk(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
        response_mime_type: Optional[str],
        response_schema: Optional[Dict[str, Any]],
    ) -> Tuple[str, dict]:
        try:
            self.logger.debug("vertex_init(project=%s, region=%s)", self.project, self.region)
            vertex_init(project=self.project, location=self.region)
            model = GenerativeModel(self.model_id)
            mime = response_mime_type or "text/plain"
            config = GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_tokens,
                response_mime_type=mime,
                response_schema=self._sanitize_response_schema(response_schema) if mime == "application/json" else None,
            )
            response = model.generate_content(prompt, generation_config=config)

            # resp.text raises when the candidate has no parts (e.g. safety block)
            try:
                text = response.text or ""
            except ValueError:
                text = ""
            cands = getattr(response, "candidates", None) or []
            fr = getattr(cands[0], "finish_reason", None) if cands else None
            usage = getattr(response, "usage_metadata", None)
            meta = {
                "model": self.model_id,
                "transport": "sdk",
                "finishReason": getattr(fr, "name", fr),
                "promptTokens": getattr(usage, "prompt_token_count", None) if usage else None,
                "candidatesTokens": getattr(usage, "candidates_token_count", None) if usage else None,
                "totalTokens": getattr(usage, "total_token_count", None) if usage else None,
                "textLen": len(text.strip()),
            }
            return text.strip(), meta
        except gax_exceptions.NotFound as e:
            self.logger.exception("Vertex AI API error (NotFound)")
            raise VertexAIError(f"Vertex AI API error: {e}", status_code=404) from e
        except (
            gax_exceptions.GoogleAPICallError,
            gax_exceptions.RetryError,
            gax_exceptions.DeadlineExceeded,
        ) as e:
            self.logger.exception("Vertex AI API error")
            code = getattr(e, "code", None)
            try:
                code = int(code.value[0]) if hasattr(code, "value") else int(code)
            except (TypeError, ValueError, IndexError):
                code = None
            raise VertexAIError(f"Vertex AI API error: {e}", status_code=code) from e
        except Exception as e:
            self.logger.exception("Vertex client unexpected error")
            raise VertexAIError(str(e)) from e

    @staticmethod
    def _extract_rest(data: Dict[str, Any]) -> Tuple[str, Dict[str, Any]]:
        cands = data.get("candidates") or []
        text = ""
        if cands:
            parts = (cands[0].get("content") or {}).get("parts") or []
            text = "".join(p.get("text") or "" for p in parts)
        usage = data.get("usageMetadata") or {}
        meta = {
            "finishReason": cands[0].get("finishReason") if cands else None,
            "promptTokens": usage.get("promptTokenCount"),
            "candidatesTokens": usage.get("candidatesTokenCount"),
            "totalTokens": usage.get("totalTokenCount"),
            "textLen": len(text.strip()),
        }
        return text.strip(), meta

    def _generate_text_rest(
        self,
        prompt: str,
        temperature: float,
        max_tokens: int,
        response_mime_type: Optional[str],
        response_schema: Optional[Dict[str, Any]],
    ) -> Tuple[str, dict]:
        """Generate using the REST generateContent endpoint."""
        try:
            creds, _ = google.auth.default(scopes=["https://www.googleapis.com/auth/cloud-platform"])
            session = AuthorizedSession(creds)
            url = self.base_url()
            self.logger.info(json.dumps({
                "event": "vertex_rest_generate",
                "url": url,
                "modelId": self.model_id,
                "location": self.region,
            }))

            mime = response_mime_type or "text/plain"
            body: Dict[str, Any] = {
                "contents": [{"role": "user", "parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": temperature,
                    "maxOutputTokens": max_tokens,
                    "responseMimeType": mime,
                },
            }
            if mime == "application/json":
                schema = self._sanitize_response_schema(response_schema)
                if schema:
                    body["generationConfig"]["responseSchema"] = schema

            r = session.post(url, json=body, timeout=self.timeout)
            # One request per call; a 404 means the model is not published at this location
            if r.status_code == 404:
                raise VertexAIError(f"Model not found: HTTP 404 at {url}", status_code=404)
            if r.status_code >= 400:
                raise VertexAIError(f"Vertex REST error HTTP {r.status_code}: {r.text}", status_code=r.status_code)

            text, meta = self._extract_rest(r.json())
            return text, {"model": self.model_id, "transport": "rest", **meta}
        except VertexAIError:
            raise
        except Exception as e:
            self.logger.exception("Vertex REST unexpected error")
            raise VertexAIError(str(e)) from e
