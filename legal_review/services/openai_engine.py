"""
OpenAI analysis engine.

Uses the shared client from openai_client.py and the chat completions API in
JSON mode for structured calls.
"""

import logging
from typing import Optional

from openai import OpenAI

from legal_review.services.engine import AnalysisEngine, EngineUnavailableError
from legal_review.services.openai_client import get_openai_client

logger = logging.getLogger(__name__)


class OpenAIEngine(AnalysisEngine):
    name = "openai"
    default_model = "gpt-4o"

    def __init__(
        self,
        api_key: str,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[OpenAI] = None
    ):
        super().__init__(model)
        self._client = client or get_openai_client(api_key)
        self.timeout = timeout

    def _complete(self, system: str, prompt: str, json_mode: bool, max_tokens: int) -> str:
        logger.info(f"Calling OpenAI API with model {self.model}")

        request = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.1 if json_mode else 0.3,
            "max_tokens": max_tokens,
        }
        if json_mode:
            request["response_format"] = {"type": "json_object"}
        if self.timeout is not None:
            request["timeout"] = self.timeout

        completion = self._client.chat.completions.create(**request)

        if not completion.choices or not completion.choices[0].message.content:
            raise EngineUnavailableError("Empty response from OpenAI")
        return completion.choices[0].message.content
