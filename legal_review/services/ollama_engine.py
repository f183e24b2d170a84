"""
Ollama analysis engine.

Talks to a local Ollama server over its /api/generate endpoint with httpx.
Streaming is disabled so each call returns one JSON body with the full reply.
"""

import logging
from typing import Optional

import httpx

from legal_review.config import get_settings
from legal_review.services.engine import AnalysisEngine, EngineUnavailableError

logger = logging.getLogger(__name__)


class OllamaEngine(AnalysisEngine):
    name = "ollama"
    default_model = "llama3"

    def __init__(
        self,
        base_url: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        super().__init__(model)
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            timeout=timeout or get_settings().engine_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _complete(self, system: str, prompt: str, json_mode: bool, max_tokens: int) -> str:
        body = {
            "model": self.model,
            "prompt": prompt,
            "system": system,
            "stream": False,
            "options": {
                "temperature": 0.1 if json_mode else 0.3,
                "num_predict": max_tokens,
            },
        }
        if json_mode:
            body["format"] = "json"

        url = f"{self.base_url}/api/generate"
        logger.info(f"Calling Ollama at {url} with model {self.model}")

        try:
            response = self._client.post(url, json=body)
        except httpx.TimeoutException as e:
            raise EngineUnavailableError(f"Ollama request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise EngineUnavailableError(f"Ollama connection failed: {e}") from e

        if response.status_code != 200:
            raise EngineUnavailableError(f"Ollama returned {response.status_code}: {response.text}")

        try:
            return response.json()["response"]
        except (ValueError, KeyError) as e:
            raise EngineUnavailableError(f"Failed to parse Ollama response: {e}") from e
