"""
Comparison engine.

Compares a document with another document or with a template. The analysis
engine produces the diff and every difference is validated before it is
stored. A reply that does not match the Difference schema is a PayloadError,
never an empty diff. Comparisons are append-only, keep the engine's ordering
of differences, and never change document status.

Templates (reference contracts to compare against) are managed here too.
"""

import logging
from typing import List, Optional

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from legal_review import crud
from legal_review.errors import (
    PayloadError,
    PreconditionError,
    TemplateNotFoundError,
    ValidationError,
)
from legal_review.models import Comparison, Document, Template
from legal_review.schemas import (
    ComparisonPayload,
    ComparisonResponse,
    ComparisonType,
    Difference,
    TemplateCreateRequest,
    difference_list_adapter,
)
from legal_review.services.documents import require_document
from legal_review.services.engine import AnalysisEngine, engine_error

logger = logging.getLogger(__name__)


def parse_differences(serialized: str) -> List[Difference]:
    """
    Validate a stored differences payload.

    Raises:
        PayloadError: If the payload is not a list of valid differences
    """
    try:
        return difference_list_adapter.validate_json(serialized)
    except SchemaValidationError as e:
        raise PayloadError(f"Stored comparison differences are malformed: {e}") from e


def _require_text(document: Document, label: str) -> str:
    if not document.raw_text:
        raise PreconditionError(f"Document {label} has no extracted text")
    return document.raw_text


def _run_comparison(
    engine: AnalysisEngine,
    text_a: str,
    text_b: str,
    contract_type: str
) -> ComparisonPayload:
    try:
        payload, error = engine.compare_documents(text_a, text_b, contract_type)
    except Exception as e:
        logger.error(f"Engine {engine.name} raised during comparison: {e}", exc_info=True)
        payload, error = None, f"{engine.name} comparison failed: {e}"

    if error or payload is None:
        raise engine_error(error or f"{engine.name} returned no comparison")
    return payload


def _store(
    db: Session,
    payload: ComparisonPayload,
    engine: AnalysisEngine,
    comparison_type: ComparisonType,
    document_a_id: str,
    document_b_id: Optional[str] = None,
    template_id: Optional[str] = None
) -> Comparison:
    comparison = crud.create_comparison(
        db,
        document_a_id=document_a_id,
        document_b_id=document_b_id,
        template_id=template_id,
        comparison_type=comparison_type.value,
        differences=[diff.model_dump(mode="json") for diff in payload.differences],
        summary=payload.summary,
        ai_provider=engine.name,
    )
    logger.info(
        f"Stored {comparison_type.value} comparison {comparison.id} "
        f"({len(payload.differences)} differences)"
    )
    return comparison


def compare_documents(
    db: Session,
    document_a_id: str,
    document_b_id: str,
    engine: AnalysisEngine
) -> Comparison:
    """
    Compare two documents' texts.

    Args:
        db: Database session
        document_a_id: First document (its contract type drives the prompt)
        document_b_id: Second document
        engine: Analysis engine adapter

    Returns:
        Comparison: Stored document_vs_document comparison

    Raises:
        ValidationError: Both ids are the same document
        DocumentNotFoundError: Either document is unknown
        PreconditionError: Either document has no extracted text
        EngineError / PayloadError: The engine failed or its diff is malformed
    """
    if document_a_id == document_b_id:
        raise ValidationError("Cannot compare a document with itself")

    document_a = require_document(db, document_a_id)
    document_b = require_document(db, document_b_id)
    text_a = _require_text(document_a, "A")
    text_b = _require_text(document_b, "B")

    payload = _run_comparison(engine, text_a, text_b, document_a.contract_type)
    return _store(
        db,
        payload,
        engine,
        ComparisonType.DOCUMENT_VS_DOCUMENT,
        document_a_id=document_a_id,
        document_b_id=document_b_id,
    )


def compare_with_template(
    db: Session,
    document_id: str,
    template_id: str,
    engine: AnalysisEngine
) -> Comparison:
    """
    Compare a document against a template.

    Raises:
        DocumentNotFoundError / TemplateNotFoundError: Unknown ids
        PreconditionError: The document has no extracted text
        EngineError / PayloadError: The engine failed or its diff is malformed
    """
    document = require_document(db, document_id)
    template = crud.get_template(db, template_id)
    if template is None:
        raise TemplateNotFoundError(template_id)
    text = _require_text(document, "A")

    payload = _run_comparison(engine, text, template.raw_text, document.contract_type)
    return _store(
        db,
        payload,
        engine,
        ComparisonType.DOCUMENT_VS_TEMPLATE,
        document_a_id=document_id,
        template_id=template_id,
    )


def list_comparisons(db: Session, document_id: str) -> List[Comparison]:
    """Comparisons where the document is on either side, newest first."""
    require_document(db, document_id)
    return crud.list_comparisons(db, document_id)


def describe_comparison(comparison: Comparison) -> ComparisonResponse:
    """
    Build the response view of a stored comparison.

    Raises:
        PayloadError: If the stored differences are malformed
    """
    return ComparisonResponse(
        id=comparison.id,
        document_a_id=comparison.document_a_id,
        document_b_id=comparison.document_b_id,
        template_id=comparison.template_id,
        comparison_type=comparison.comparison_type,
        differences=parse_differences(comparison.differences),
        summary=comparison.summary,
        ai_provider=comparison.ai_provider,
        created_at=comparison.created_at,
    )


# ============================================================================
# Templates
# ============================================================================


def create_template(db: Session, request: TemplateCreateRequest) -> Template:
    template = crud.create_template(
        db,
        name=request.name.strip(),
        contract_type=request.contract_type.value,
        raw_text=request.raw_text,
        description=request.description,
    )
    logger.info(f"Created template {template.id} ({template.name})")
    return template


def list_templates(db: Session) -> List[Template]:
    return crud.list_templates(db)


def delete_template(db: Session, template_id: str) -> None:
    """
    Raises:
        TemplateNotFoundError: Unknown template
    """
    if not crud.delete_template(db, template_id):
        raise TemplateNotFoundError(template_id)
