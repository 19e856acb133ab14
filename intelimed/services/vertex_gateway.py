from typing import Any, Dict, Optional

from ..vertex import VertexClient as DefaultVertexClient


class VertexGateway:
    """Single-attempt wrapper around VertexClient.

    Each generate call builds one client for the configured model and makes
    exactly one upstream request; errors propagate to the caller unchanged.
    Callers receive plain text; the model that produced it is kept in
    `last_model_used`.
    """

    def __init__(
        self,
        project: Optional[str],
        region: str,
        model_id: str,
        temperature: float = 0.2,
        max_tokens: int = 2048,
        timeout: Optional[float] = None,
        client_cls=None,
    ) -> None:
        self.project = project
        self.region = region
        self.model_id = model_id
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.client_cls = client_cls or DefaultVertexClient
        self.last_model_used: Optional[str] = None

    @staticmethod
    def _normalize_result(result) -> str:
        # VertexClient returns (text, meta); simple fakes may return a bare string
        if isinstance(result, tuple) and len(result) == 2:
            return str(result[0])
        return str(result)

    def _call(self, kwargs: Dict[str, Any]) -> str:
        client = self.client_cls(project=self.project, region=self.region, model_id=self.model_id, timeout=self.timeout)
        result = client.generate_text(temperature=self.temperature, max_tokens=self.max_tokens, **kwargs)
        self.last_model_used = self.model_id
        return self._normalize_result(result)

    def generate_text(self, prompt: str) -> str:
        return self._call({"prompt": prompt})

    def generate_text_json(self, prompt: str, response_schema: dict) -> str:
        return self._call(
            {
                "prompt": prompt,
                "response_mime_type": "application/json",
                "response_schema": response_schema,
            }
        )
