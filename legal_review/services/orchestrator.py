"""
Analysis orchestration.

An analysis run turns a document's text into one Extraction and one
RiskAssessment, and moves the document through analyzing to analyzed:

    1. validate: document exists, has text, and its status allows analyzing
    2. compare-and-set the observed status -> analyzing
    3. engine.analyze_contract(): clause extraction, then risk scoring of that
       extraction, returned together as one payload
    4. append rule-based flags to the engine's flags
    5. in ONE transaction: insert Extraction, insert RiskAssessment, and
       compare-and-set analyzing -> analyzed
    6. on any failure after step 2: compare-and-set analyzing -> error

The document therefore never shows analyzed without both records, never stays
in analyzing after the call returns, and a failed re-analysis leaves the
earlier records in place. Re-analysis appends a new pair; the newest pair is
authoritative.

If the document is deleted while the engine call is in flight, the response (or
the engine failure) is discarded and analyze_document() returns None.
"""

import json
import logging
import time
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from legal_review import crud
from legal_review.errors import (
    DocumentNotFoundError,
    PersistenceError,
    PreconditionError,
    StaleStatusError,
)
from legal_review.models import Extraction, RiskAssessment
from legal_review.schemas import AnalysisPayload, AnalysisResult
from legal_review.services.documents import require_document
from legal_review.services.engine import AnalysisEngine, engine_error
from legal_review.services.risk_rules import apply_rules
from legal_review.status import DocumentStatus, guard_transition

logger = logging.getLogger(__name__)


def _mark_failed(db: Session, document_id: str, message: str) -> bool:
    """Move an analyzing document to error. Returns False if it is gone or moved on."""
    try:
        return crud.compare_and_set_status(
            db,
            document_id,
            DocumentStatus.ANALYZING,
            DocumentStatus.ERROR,
            error_message=message or "Analysis failed",
        )
    except SQLAlchemyError:
        logger.exception(f"Could not record failure for document {document_id}")
        return False


def _persist_run(
    db: Session,
    document_id: str,
    contract_type: str,
    payload: AnalysisPayload,
    engine: AnalysisEngine,
    elapsed_ms: int
) -> Optional[AnalysisResult]:
    """Insert both records and complete the transition in a single transaction."""
    extraction = crud.create_extraction(
        db,
        document_id=document_id,
        ai_provider=engine.name,
        ai_model=engine.model,
        contract_type=contract_type,
        extracted_data=payload.extraction.model_dump_json(),
        processing_time_ms=elapsed_ms,
        commit=False,
    )
    risk = crud.create_risk_assessment(
        db,
        document_id=document_id,
        extraction_id=extraction.id,
        overall_score=payload.risk.overall_score,
        risk_level=payload.risk.risk_level.value,
        flags=json.dumps([flag.model_dump(mode="json") for flag in payload.risk.flags]),
        summary=payload.risk.summary,
        ai_provider=engine.name,
        commit=False,
    )
    completed = crud.compare_and_set_status(
        db,
        document_id,
        DocumentStatus.ANALYZING,
        DocumentStatus.ANALYZED,
        commit=False,
    )
    if not completed:
        db.rollback()
        return None

    db.commit()
    return AnalysisResult(
        extraction_id=extraction.id,
        risk_assessment_id=risk.id,
        extraction_data=payload.extraction,
        overall_score=risk.overall_score,
        risk_level=payload.risk.risk_level,
        risk_flags=payload.risk.flags,
        summary=risk.summary,
    )


def analyze_document(db: Session, document_id: str, engine: AnalysisEngine) -> Optional[AnalysisResult]:
    """
    Run a full analysis of a document.

    Args:
        db: Database session
        document_id: Document to analyze
        engine: Analysis engine adapter

    Returns:
        AnalysisResult on success, or None if the document was deleted while
        the engine call was in flight (whether the call succeeded or failed)

    Raises:
        DocumentNotFoundError: Unknown document
        PreconditionError: Text not extracted yet (nothing is changed)
        InvalidTransitionError: Status does not allow analyzing (e.g. a run is in flight)
        StaleStatusError: Another operation changed the status first, before
            the run started or while the engine call was in flight
        EngineError / PayloadError: The engine failed; the document is now in error
        PersistenceError: Saving the results failed; the document is now in error
    """
    document = crud.get_document(db, document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)

    raw_text = document.raw_text
    contract_type = document.contract_type
    observed = DocumentStatus(document.processing_status)

    if not raw_text:
        raise PreconditionError("Document text not yet extracted")
    guard_transition(observed, DocumentStatus.ANALYZING, has_text=True)

    if not crud.compare_and_set_status(db, document_id, observed, DocumentStatus.ANALYZING):
        db.expire_all()
        if crud.get_document(db, document_id) is None:
            raise DocumentNotFoundError(document_id)
        raise StaleStatusError(
            f"Document {document_id} is no longer '{observed.value}'; another operation is in progress"
        )

    logger.info(f"Analyzing document {document_id} with {engine.name} ({engine.model})")
    start = time.monotonic()
    try:
        payload, error = engine.analyze_contract(raw_text, contract_type)
    except Exception as e:
        # Adapters report failures as values; anything raised is still an engine failure
        logger.error(f"Engine {engine.name} raised during analysis: {e}", exc_info=True)
        payload, error = None, f"{engine.name} analysis failed: {e}"
    elapsed_ms = int((time.monotonic() - start) * 1000)

    if error or payload is None:
        message = error or f"{engine.name} returned no analysis"
        if not _mark_failed(db, document_id, message):
            db.expire_all()
            current = crud.get_document(db, document_id)
            if current is None:
                logger.info(f"Document {document_id} was deleted during analysis; engine failure discarded")
                return None
            if current.processing_status != DocumentStatus.ANALYZING.value:
                raise StaleStatusError(
                    f"Document {document_id} changed to '{current.processing_status}' during analysis"
                )
        raise engine_error(message)

    payload.risk.flags.extend(apply_rules(payload.extraction, contract_type))

    try:
        result = _persist_run(db, document_id, contract_type, payload, engine, elapsed_ms)
    except SQLAlchemyError as e:
        db.rollback()
        db.expire_all()
        if crud.get_document(db, document_id) is None:
            # Foreign keys reject records for a deleted document
            logger.info(f"Document {document_id} was deleted during analysis; response discarded")
            return None
        logger.error(f"Failed to save analysis for document {document_id}: {e}", exc_info=True)
        _mark_failed(db, document_id, f"Failed to save analysis results: {e}")
        raise PersistenceError(f"Failed to save analysis results for document {document_id}") from e

    if result is None:
        db.expire_all()
        current = crud.get_document(db, document_id)
        if current is not None:
            raise StaleStatusError(
                f"Document {document_id} changed to '{current.processing_status}' during analysis"
            )
        logger.info(f"Document {document_id} was deleted during analysis; response discarded")
        return None

    logger.info(
        f"Document {document_id} analyzed: score {result.overall_score} ({result.risk_level.value}), "
        f"{len(result.risk_flags)} flags in {elapsed_ms}ms"
    )
    return result


def list_extractions(db: Session, document_id: str) -> List[Extraction]:
    """Extractions of a document, newest first."""
    require_document(db, document_id)
    return crud.list_extractions(db, document_id)


def list_risk_assessments(db: Session, document_id: str) -> List[RiskAssessment]:
    """Risk assessments of a document, newest first."""
    require_document(db, document_id)
    return crud.list_risk_assessments(db, document_id)
