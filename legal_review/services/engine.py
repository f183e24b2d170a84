"""
Analysis engine base class and provider factory.

An AnalysisEngine turns contract text into validated payloads. The adapters in
openai_engine.py, ollama_engine.py and claude_engine.py only implement the
transport (_complete); prompt construction, JSON recovery and schema validation
are shared here.

Operations:
- analyze_contract: Clause extraction followed by risk scoring of the extraction
- compare_documents: Structured diff of two contract texts
- generate_summary: Plain-text executive summary for reports

Error Handling:
    Like the other services, every operation returns a tuple (result, error_message):
    - On success: (result, None)
    - On failure: (None, error_message_string)
    Transport failures, timeouts and malformed payloads never raise. Payload
    failures carry the PAYLOAD_ERROR_PREFIX so callers can tell them apart
    (see engine_error()).

Usage Example:
    from legal_review.services.engine import create_engine_from_settings

    with create_engine_from_settings(provider_settings) as engine:
        payload, error = engine.analyze_contract(text, "nda")
    if error:
        print(f"Analysis failed: {error}")
"""

import json
import logging
from typing import Any, Optional, Tuple

from pydantic import ValidationError as SchemaValidationError

from legal_review.errors import EngineError, PayloadError, ValidationError
from legal_review.schemas import (
    AIProvider,
    AnalysisPayload,
    ComparisonPayload,
    ContractType,
    ExtractionData,
    ProviderSettings,
    RiskData,
)
from legal_review.services import prompts

# Module-level setup
logger = logging.getLogger(__name__)

# Token limits per call kind
JSON_MAX_TOKENS = 4096
TEXT_MAX_TOKENS = 2048

# Cap text sent to the engine to prevent token overflow
MAX_CONTRACT_TEXT_LENGTH = 80000

PAYLOAD_ERROR_PREFIX = "Malformed engine response"


class EngineUnavailableError(Exception):
    """Raised by adapters when the backend answers with a non-success status."""
    pass


def extract_json_text(text: str) -> str:
    """
    Recover the JSON document from a model reply.

    Models sometimes wrap JSON in markdown fences or add a sentence around it.

    Examples:
        >>> extract_json_text('```json\\n{"a": 1}\\n```')
        '{"a": 1}'
        >>> extract_json_text('Here you go: {"a": 1}')
        '{"a": 1}'
    """
    for fence in ("```json", "```"):
        start = text.find(fence)
        if start != -1:
            body_start = start + len(fence)
            end = text.find("```", body_start)
            if end != -1:
                return text[body_start:end].strip()

    stripped = text.strip()
    if stripped.startswith("{") or stripped.startswith("["):
        return stripped

    first, last = stripped.find("{"), stripped.rfind("}")
    if first != -1 and last > first:
        return stripped[first:last + 1]
    return stripped


def engine_error(message: str) -> EngineError:
    """Build the exception matching an engine error message."""
    if message.startswith(PAYLOAD_ERROR_PREFIX):
        return PayloadError(message)
    return EngineError(message)


def _truncate(text: str) -> str:
    if len(text) > MAX_CONTRACT_TEXT_LENGTH:
        logger.warning(
            f"Contract text truncated from {len(text)} to {MAX_CONTRACT_TEXT_LENGTH} chars"
        )
        return text[:MAX_CONTRACT_TEXT_LENGTH]
    return text


class AnalysisEngine:
    """
    Base class for analysis engine adapters.

    Subclasses set name/default_model and implement _complete(). Engines holding a
    connection pool override close(); use an engine as a context manager so
    the pool is released after the operation.
    """

    name: str = "engine"
    default_model: Optional[str] = None

    def __init__(self, model: Optional[str] = None):
        self.model = model or self.default_model

    def close(self) -> None:
        """Release the adapter's connections. Engines without their own client do nothing."""

    def __enter__(self) -> "AnalysisEngine":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _complete(self, system: str, prompt: str, json_mode: bool, max_tokens: int) -> str:
        """
        Send one prompt to the backend and return the raw reply text.

        Adapters raise on transport or HTTP failures; the public operations
        turn those into error messages.
        """
        raise NotImplementedError

    def _complete_json(self, system: str, prompt: str) -> Any:
        reply = self._complete(system, prompt, json_mode=True, max_tokens=JSON_MAX_TOKENS)
        return json.loads(extract_json_text(reply))

    def analyze_contract(
        self,
        text: str,
        contract_type: str
    ) -> Tuple[Optional[AnalysisPayload], Optional[str]]:
        """
        Extract clauses from a contract and score the extraction's risk.

        This makes two backend round trips: the extraction prompt, then the
        risk prompt over the validated extraction. Callers still get a single
        payload, or a single error if either call fails, so nothing is stored
        from a half-finished analysis.

        Args:
            text: Contract text
            contract_type: nda / service_agreement / lease

        Returns:
            Tuple of (AnalysisPayload, None) on success or (None, error_message)
        """
        try:
            kind = ContractType(contract_type)
            logger.info(f"[{self.name}] Extracting clauses ({len(text)} chars, {kind.value})")

            raw_extraction = self._complete_json(
                prompts.extraction_system_prompt(kind),
                prompts.extraction_user_prompt(_truncate(text), kind),
            )
            extraction = ExtractionData.model_validate(raw_extraction)

            logger.info(f"[{self.name}] Scoring risk for {len(extraction.clauses)} clauses")
            raw_risk = self._complete_json(
                prompts.risk_system_prompt(),
                prompts.risk_user_prompt(extraction.model_dump_json(indent=2), kind),
            )
            risk = RiskData.model_validate(raw_risk)

            return AnalysisPayload(extraction=extraction, risk=risk), None

        except (json.JSONDecodeError, SchemaValidationError) as e:
            error_msg = f"{PAYLOAD_ERROR_PREFIX} from {self.name}: {e}"
            logger.error(error_msg)
            return None, error_msg
        except Exception as e:
            error_msg = f"{self.name} analysis failed: {e}"
            logger.error(error_msg, exc_info=True)
            return None, error_msg

    def compare_documents(
        self,
        text_a: str,
        text_b: str,
        contract_type: str
    ) -> Tuple[Optional[ComparisonPayload], Optional[str]]:
        """
        Diff two contract texts.

        Returns:
            Tuple of (ComparisonPayload, None) on success or (None, error_message).
            A reply without a differences list is a payload error, not an empty diff.
        """
        try:
            kind = ContractType(contract_type)
            logger.info(f"[{self.name}] Comparing documents ({len(text_a)} / {len(text_b)} chars)")
            raw = self._complete_json(
                prompts.comparison_system_prompt(),
                prompts.comparison_user_prompt(_truncate(text_a), _truncate(text_b), kind),
            )
            return ComparisonPayload.model_validate(raw), None

        except (json.JSONDecodeError, SchemaValidationError) as e:
            error_msg = f"{PAYLOAD_ERROR_PREFIX} from {self.name}: {e}"
            logger.error(error_msg)
            return None, error_msg
        except Exception as e:
            error_msg = f"{self.name} comparison failed: {e}"
            logger.error(error_msg, exc_info=True)
            return None, error_msg

    def generate_summary(
        self,
        extraction: ExtractionData,
        risk: RiskData
    ) -> Tuple[Optional[str], Optional[str]]:
        """Write a plain-text executive summary of an extraction and its risk assessment."""
        try:
            reply = self._complete(
                prompts.summary_system_prompt(),
                prompts.summary_user_prompt(
                    extraction.model_dump_json(indent=2),
                    risk.model_dump_json(indent=2),
                ),
                json_mode=False,
                max_tokens=TEXT_MAX_TOKENS,
            )
            summary = reply.strip()
            if not summary:
                return None, f"{PAYLOAD_ERROR_PREFIX} from {self.name}: empty summary"
            return summary, None

        except Exception as e:
            error_msg = f"{self.name} summary failed: {e}"
            logger.error(error_msg, exc_info=True)
            return None, error_msg


def create_engine_from_settings(settings: ProviderSettings, timeout: Optional[float] = None) -> AnalysisEngine:
    """
    Build the adapter selected by the ai_provider setting.

    Args:
        settings: Typed provider settings (see services/provider_settings.py)
        timeout: Per-call timeout in seconds (defaults to Settings.engine_timeout_seconds)

    Returns:
        AnalysisEngine: Configured adapter

    Raises:
        ValidationError: If the selected provider lacks its API key or is unknown
    """
    # Adapters import this module for the base class
    from legal_review.services.claude_engine import ClaudeEngine
    from legal_review.services.ollama_engine import OllamaEngine
    from legal_review.services.openai_engine import OpenAIEngine

    provider = settings.ai_provider
    if provider == AIProvider.OLLAMA:
        return OllamaEngine(settings.ollama_url, settings.ollama_model, timeout=timeout)
    if provider == AIProvider.CLAUDE:
        if not settings.claude_api_key:
            raise ValidationError("Claude API key not configured")
        return ClaudeEngine(settings.claude_api_key, settings.claude_model, timeout=timeout)
    if provider == AIProvider.OPENAI:
        if not settings.openai_api_key:
            raise ValidationError("OpenAI API key not configured")
        return OpenAIEngine(settings.openai_api_key, settings.openai_model, timeout=timeout)
    raise ValidationError(f"Unknown AI provider: {provider}")
