from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from legal_review.schemas import (
    AnalyzedDocument,
    ComparisonPayload,
    ContractType,
    ErrorDocument,
    ExtractedClause,
    ExtractionData,
    PendingDocument,
    ProviderSettings,
    RiskData,
    RiskFlag,
    TemplateCreateRequest,
    document_adapter,
)
from legal_review.status import RiskLevel

from conftest import DIFFERENCES, EXTRACTION, RISK

BASE = {
    "id": "doc-1",
    "filename": "contract.pdf",
    "original_path": "/tmp/contract.pdf",
    "stored_path": "/data/contract.pdf",
    "file_hash": "abc123",
    "file_size": 1024,
    "contract_type": "nda",
    "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
    "updated_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
}


def test_contract_type_display_names():
    assert ContractType.NDA.display_name == "Non-Disclosure Agreement"
    assert ContractType("service_agreement").display_name == "Service Agreement"
    assert ContractType.LEASE.display_name == "Lease Agreement"


def test_extraction_keeps_clause_order():
    data = ExtractionData.model_validate(EXTRACTION)
    assert [c.clause_type for c in data.clauses] == [
        "governing_law", "termination", "exclusions", "term_and_duration"
    ]
    assert data.parties == ["Acme Corp", "Beta LLC"]


def test_clause_title_falls_back_to_type():
    clause = ExtractedClause.model_validate({"clause_type": "non_compete", "text": "..."})
    assert clause.title == "non_compete"
    assert clause.importance == RiskLevel.MEDIUM


def test_risk_levels_are_normalized():
    risk = RiskData.model_validate(RISK)
    assert risk.risk_level == RiskLevel.MEDIUM
    assert risk.flags[0].severity == RiskLevel.HIGH


def test_engine_level_is_not_overridden_by_score():
    risk = RiskData.model_validate({"overall_score": 90, "risk_level": "low"})
    assert risk.risk_level == RiskLevel.LOW


def test_missing_level_is_derived_from_score():
    assert RiskData.model_validate({"overall_score": 70}).risk_level == RiskLevel.HIGH
    assert RiskData.model_validate({"overall_score": 10}).risk_level == RiskLevel.LOW


@pytest.mark.parametrize("score", [-1, 101])
def test_score_out_of_range_rejected(score):
    with pytest.raises(ValidationError):
        RiskData.model_validate({"overall_score": score, "risk_level": "low"})


def test_unknown_severity_rejected():
    with pytest.raises(ValidationError):
        RiskFlag.model_validate({"category": "other", "severity": "critical", "description": "x"})


def test_comparison_requires_differences_key():
    with pytest.raises(ValidationError):
        ComparisonPayload.model_validate({"summary": "no diff list"})

    payload = ComparisonPayload.model_validate(DIFFERENCES)
    assert payload.differences[1].diff_type == "cosmetic"
    assert payload.differences[0].significance == RiskLevel.HIGH


def test_document_variants_by_status():
    pending = document_adapter.validate_python({**BASE, "processing_status": "pending"})
    assert isinstance(pending, PendingDocument)

    analyzed = document_adapter.validate_python({
        **BASE,
        "processing_status": "analyzed",
        "raw_text": "text",
        "risk_assessment_id": "risk-1",
        "overall_score": 72,
        "risk_level": "high",
    })
    assert isinstance(analyzed, AnalyzedDocument)
    assert analyzed.risk_level == RiskLevel.HIGH

    failed = document_adapter.validate_python({
        **BASE, "processing_status": "error", "error_message": "Engine unreachable"
    })
    assert isinstance(failed, ErrorDocument)
    assert failed.raw_text is None


def test_pending_document_rejects_text():
    with pytest.raises(ValidationError):
        document_adapter.validate_python({**BASE, "processing_status": "pending", "raw_text": "text"})


def test_analyzed_document_requires_score():
    with pytest.raises(ValidationError):
        document_adapter.validate_python({**BASE, "processing_status": "analyzed", "raw_text": "text"})


def test_error_document_requires_message():
    with pytest.raises(ValidationError):
        document_adapter.validate_python({**BASE, "processing_status": "error", "error_message": ""})


def test_template_text_must_not_be_blank():
    with pytest.raises(ValidationError):
        TemplateCreateRequest(name="Blank", contract_type="nda", raw_text="   ")


def test_provider_settings_masking():
    settings = ProviderSettings(
        ai_provider="openai",
        ollama_url="http://localhost:11434/",
        openai_api_key="sk-secret",
    )
    assert settings.ollama_url == "http://localhost:11434"

    masked = settings.masked()
    assert masked.openai_api_key == "****"
    assert masked.claude_api_key is None
    assert settings.openai_api_key == "sk-secret"
