"""
Pydantic schemas for engine payloads and API request/response models.

This module defines the data contract and is separate from SQLAlchemy ORM models
in legal_review/models.py. It has three groups:

- Engine payloads (ExtractionData, RiskData, AnalysisPayload, ComparisonPayload):
  everything the analysis engine returns is validated against these before it
  is persisted. A mismatch is a payload error, never a silent default.
- Document responses: one variant per processing status, discriminated on
  processing_status, so e.g. an analyzed document always carries its risk score
  and a pending one can never carry raw_text.
- Request/response models for the HTTP API and the command clients.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from legal_review.status import RiskLevel, risk_level_for_score


class ContractType(str, Enum):
    NDA = "nda"
    SERVICE_AGREEMENT = "service_agreement"
    LEASE = "lease"

    @property
    def display_name(self) -> str:
        return CONTRACT_TYPE_LABELS[self]


CONTRACT_TYPE_LABELS = {
    ContractType.NDA: "Non-Disclosure Agreement",
    ContractType.SERVICE_AGREEMENT: "Service Agreement",
    ContractType.LEASE: "Lease Agreement",
}


class ComparisonType(str, Enum):
    DOCUMENT_VS_DOCUMENT = "document_vs_document"
    DOCUMENT_VS_TEMPLATE = "document_vs_template"


def _normalize_level(value: Any) -> Any:
    """Strip and lowercase level strings coming back from the engine."""
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _loads_if_serialized(value: Any) -> Any:
    """Stored payload columns hold JSON text; API clients send parsed objects."""
    if isinstance(value, str):
        return json.loads(value)
    return value


# ============================================================================
# Engine Payloads
# ============================================================================


class ExtractedClause(BaseModel):
    """A clause quoted from the contract, in the order the engine returned it."""

    clause_type: str = Field(..., min_length=1, description="Clause type tag, e.g. 'governing_law'")
    title: str = Field(..., description="Clause heading")
    text: str = Field(..., description="Exact quoted clause text")
    section_reference: Optional[str] = Field(None, description="Section reference like 'Section 4.2'")
    importance: RiskLevel = Field(RiskLevel.MEDIUM, description="high / medium / low")

    @model_validator(mode="before")
    @classmethod
    def default_title(cls, data: Any) -> Any:
        # Engines often omit the title; fall back to the clause type tag
        if isinstance(data, dict) and not data.get("title") and data.get("clause_type"):
            data = {**data, "title": data["clause_type"]}
        return data

    @field_validator("importance", mode="before")
    @classmethod
    def normalize_importance(cls, v: Any) -> Any:
        return RiskLevel.MEDIUM if v is None else _normalize_level(v)


class ExtractionData(BaseModel):
    """Structured extraction payload: parties, dates and ordered clauses."""

    parties: List[str] = Field(default_factory=list)
    effective_date: Optional[str] = None
    termination_date: Optional[str] = None
    clauses: List[ExtractedClause] = Field(default_factory=list)
    contract_type: Optional[str] = None


class RiskFlag(BaseModel):
    """One identified risk."""

    category: str = Field(..., min_length=1)
    severity: RiskLevel
    description: str = Field(..., min_length=1)
    clause_reference: Optional[str] = None
    suggestion: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        return _normalize_level(v)


class RiskData(BaseModel):
    """
    Risk assessment payload.

    The engine's stated risk_level is kept as-is. Only when the engine leaves
    it out is it derived from overall_score with risk_level_for_score().
    """

    overall_score: int = Field(..., ge=0, le=100)
    risk_level: Optional[RiskLevel] = None
    flags: List[RiskFlag] = Field(default_factory=list)
    summary: Optional[str] = None

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, v: Any) -> Any:
        return _normalize_level(v)

    @model_validator(mode="after")
    def derive_missing_level(self) -> "RiskData":
        if self.risk_level is None:
            self.risk_level = risk_level_for_score(self.overall_score)
        return self


class AnalysisPayload(BaseModel):
    """Single engine response carrying both halves of an analysis run."""

    extraction: ExtractionData
    risk: RiskData


class Difference(BaseModel):
    """One difference between two contract texts."""

    category: str = Field(..., min_length=1)
    diff_type: str = Field(..., min_length=1, description="substantive / cosmetic / formatting / ...")
    description: str = Field(..., min_length=1)
    text_a: Optional[str] = Field(None, description="Excerpt from document A")
    text_b: Optional[str] = Field(None, description="Excerpt from document B or the template")
    significance: RiskLevel

    @field_validator("diff_type", mode="before")
    @classmethod
    def normalize_diff_type(cls, v: Any) -> Any:
        return _normalize_level(v)

    @field_validator("significance", mode="before")
    @classmethod
    def normalize_significance(cls, v: Any) -> Any:
        return _normalize_level(v)


class ComparisonPayload(BaseModel):
    """Engine comparison response. The differences key is required."""

    differences: List[Difference]
    summary: Optional[str] = None


difference_list_adapter = TypeAdapter(List[Difference])


# ============================================================================
# Document Responses
# ============================================================================


class _DocumentBase(BaseModel):
    id: str
    filename: str
    original_path: str
    stored_path: str
    file_hash: str
    file_size: int
    contract_type: ContractType
    page_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class PendingDocument(_DocumentBase):
    """Uploaded, text not extracted yet."""
    processing_status: Literal["pending"] = "pending"
    raw_text: None = None


class ExtractedDocument(_DocumentBase):
    """Text extracted, not yet analyzed."""
    processing_status: Literal["extracted"] = "extracted"
    raw_text: str


class AnalyzingDocument(_DocumentBase):
    """Analysis call in flight."""
    processing_status: Literal["analyzing"] = "analyzing"
    raw_text: str


class AnalyzedDocument(_DocumentBase):
    """Analyzed at least once; carries the newest assessment's headline numbers."""
    processing_status: Literal["analyzed"] = "analyzed"
    raw_text: str
    risk_assessment_id: str
    overall_score: int
    risk_level: RiskLevel


class ErrorDocument(_DocumentBase):
    """Last operation failed. raw_text survives an analysis failure."""
    processing_status: Literal["error"] = "error"
    raw_text: Optional[str] = None
    error_message: str = Field(..., min_length=1)


DocumentResponse = Annotated[
    Union[PendingDocument, ExtractedDocument, AnalyzingDocument, AnalyzedDocument, ErrorDocument],
    Field(discriminator="processing_status"),
]

document_adapter = TypeAdapter(DocumentResponse)
document_list_adapter = TypeAdapter(List[DocumentResponse])


class DocumentStats(BaseModel):
    """Aggregate counts; pending covers both pending and extracted documents."""
    total: int = 0
    analyzed: int = 0
    pending: int = 0
    failed: int = 0


class RiskDistribution(BaseModel):
    low: int = 0
    medium: int = 0
    high: int = 0


# ============================================================================
# Analysis / Comparison / Report Responses
# ============================================================================


class ExtractionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    ai_provider: str
    ai_model: Optional[str] = None
    contract_type: ContractType
    extracted_data: ExtractionData
    confidence_score: Optional[float] = None
    processing_time_ms: Optional[int] = None
    created_at: datetime

    @field_validator("extracted_data", mode="before")
    @classmethod
    def parse_extracted_data(cls, v: Any) -> Any:
        return _loads_if_serialized(v)


class RiskAssessmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    extraction_id: str
    overall_score: int
    risk_level: RiskLevel
    flags: List[RiskFlag] = Field(default_factory=list)
    summary: Optional[str] = None
    ai_provider: str
    created_at: datetime

    @field_validator("flags", mode="before")
    @classmethod
    def parse_flags(cls, v: Any) -> Any:
        return _loads_if_serialized(v)


class AnalysisResult(BaseModel):
    """Combined result of one successful analyze run."""

    extraction_id: str
    risk_assessment_id: str
    extraction_data: ExtractionData
    overall_score: int
    risk_level: RiskLevel
    risk_flags: List[RiskFlag] = Field(default_factory=list)
    summary: Optional[str] = None


class ComparisonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_a_id: str
    document_b_id: Optional[str] = None
    template_id: Optional[str] = None
    comparison_type: ComparisonType
    differences: List[Difference] = Field(default_factory=list)
    summary: Optional[str] = None
    ai_provider: Optional[str] = None
    created_at: datetime

    @field_validator("differences", mode="before")
    @classmethod
    def parse_differences(cls, v: Any) -> Any:
        return _loads_if_serialized(v)


class ReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    document_id: str
    report_type: str
    content: str
    export_path: Optional[str] = None
    format: str
    created_at: datetime


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    contract_type: ContractType
    description: Optional[str] = None
    raw_text: str
    extracted_data: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ============================================================================
# Request Schemas
# ============================================================================


class UploadRequest(BaseModel):
    """Request schema for registering a PDF on disk as a new document."""
    file_path: str = Field(..., min_length=1, description="Path of the PDF to upload")
    contract_type: ContractType


class CompareRequest(BaseModel):
    document_a_id: str = Field(..., min_length=1)
    document_b_id: str = Field(..., min_length=1)


class TemplateCompareRequest(BaseModel):
    document_id: str = Field(..., min_length=1)
    template_id: str = Field(..., min_length=1)


class TemplateCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    contract_type: ContractType
    description: Optional[str] = None
    raw_text: str = Field(..., min_length=1)

    @field_validator("raw_text")
    @classmethod
    def text_not_empty(cls, v: str) -> str:
        """Validate that text is not empty or whitespace only."""
        if not v.strip():
            raise ValueError("Template text must not be empty")
        return v


class SettingUpdateRequest(BaseModel):
    value: str


class SettingResponse(BaseModel):
    key: str
    value: Optional[str] = None


# ============================================================================
# Provider Settings
# ============================================================================


class AIProvider(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    CLAUDE = "claude"


class SettingKey(str, Enum):
    """
    Recognized keys of the settings table.

    - ai_provider: which engine adapter handles analyze/compare/report
    - ollama_url / ollama_model: endpoint and model for the Ollama adapter
    - claude_api_key / claude_model: credentials and model for the Claude adapter
    - openai_api_key / openai_model: credentials and model for the OpenAI adapter
    """
    AI_PROVIDER = "ai_provider"
    OLLAMA_URL = "ollama_url"
    OLLAMA_MODEL = "ollama_model"
    CLAUDE_API_KEY = "claude_api_key"
    CLAUDE_MODEL = "claude_model"
    OPENAI_API_KEY = "openai_api_key"
    OPENAI_MODEL = "openai_model"


SECRET_SETTING_KEYS = frozenset({SettingKey.CLAUDE_API_KEY, SettingKey.OPENAI_API_KEY})


class ProviderSettings(BaseModel):
    """Typed view over the settings table."""

    ai_provider: AIProvider = AIProvider.OLLAMA
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"
    claude_api_key: Optional[str] = None
    claude_model: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_model: Optional[str] = None

    @field_validator("ollama_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    def masked(self) -> "ProviderSettings":
        """Copy with API keys replaced, for display."""
        updates = {
            key.value: "****"
            for key in SECRET_SETTING_KEYS
            if getattr(self, key.value)
        }
        return self.model_copy(update=updates)
