"""
Claude analysis engine.

Calls the Anthropic Messages API directly with httpx. Claude has no JSON mode,
so structured replies are recovered from markdown fences by the base class.
"""

import logging
from typing import Optional

import httpx

from legal_review.config import get_settings
from legal_review.services.engine import AnalysisEngine, EngineUnavailableError

logger = logging.getLogger(__name__)

MESSAGES_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class ClaudeEngine(AnalysisEngine):
    name = "claude"
    default_model = "claude-sonnet-4-5-20250929"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        super().__init__(model)
        self._client = httpx.Client(
            timeout=timeout or get_settings().engine_timeout_seconds,
            transport=transport,
            headers={
                "x-api-key": api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )

    def close(self) -> None:
        self._client.close()

    def _complete(self, system: str, prompt: str, json_mode: bool, max_tokens: int) -> str:
        body = {
            "model": self.model,
            "max_tokens": max_tokens,
            "system": system,
            "messages": [{"role": "user", "content": prompt}],
        }
        logger.info(f"Calling Claude API with model {self.model}")

        try:
            response = self._client.post(MESSAGES_URL, json=body)
        except httpx.TimeoutException as e:
            raise EngineUnavailableError(f"Claude API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise EngineUnavailableError(f"Claude API connection failed: {e}") from e

        if response.status_code != 200:
            raise EngineUnavailableError(f"Claude API returned {response.status_code}: {response.text}")

        try:
            content = response.json().get("content") or []
        except ValueError as e:
            raise EngineUnavailableError(f"Failed to parse Claude response: {e}") from e

        text = content[0].get("text") if content else None
        if not text:
            raise EngineUnavailableError("Empty response from Claude")
        return text
