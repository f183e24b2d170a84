"""
CRUD (Create, Read, Update, Delete) operations for database entities.

This module is the document registry: pure data access over the models in
legal_review/models.py, with no business logic beyond uniqueness and status
bookkeeping. Business rules (which transition is legal, what an analysis run
must write) live in legal_review/status.py and legal_review/services/.

Error handling notes:
- Functions raise SQLAlchemy exceptions on database errors
- Status and text writes are compare-and-set: they only apply when the row
  still has the status the caller observed, and report whether they applied
- Append functions accept commit=False so a service can group several appends
  and a status change into a single transaction
"""

import json
import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from legal_review.models import (
    Comparison,
    Document,
    Extraction,
    Report,
    RiskAssessment,
    Setting,
    Template,
    utcnow,
)
from legal_review.status import DocumentStatus

logger = logging.getLogger(__name__)


def _persist(db: Session, record, commit: bool):
    """Add a record, then commit (or only flush, to assign defaults) it."""
    db.add(record)
    try:
        if commit:
            db.commit()
            db.refresh(record)
        else:
            db.flush()
    except SQLAlchemyError:
        db.rollback()
        raise
    return record


# ============================================================================
# Document CRUD Operations
# ============================================================================


def create_document(
    db: Session,
    filename: str,
    original_path: str,
    stored_path: str,
    file_hash: str,
    file_size: int,
    contract_type: str
) -> Document:
    """
    Create a new document record in pending status.

    Args:
        db: Database session
        filename: Original file name
        original_path: Path the file was uploaded from
        stored_path: Path of the managed copy
        file_hash: SHA-256 hex digest of the file
        file_size: File size in bytes
        contract_type: nda / service_agreement / lease

    Returns:
        Document: Created document with generated ID and timestamps

    Raises:
        SQLAlchemyError: On database operation failure
    """
    document = Document(
        filename=filename,
        original_path=original_path,
        stored_path=stored_path,
        file_hash=file_hash,
        file_size=file_size,
        contract_type=contract_type,
        processing_status=DocumentStatus.PENDING.value,
    )
    return _persist(db, document, commit=True)


def get_document(db: Session, document_id: str) -> Optional[Document]:
    """
    Retrieve a document by ID.

    Args:
        db: Database session
        document_id: Document primary key

    Returns:
        Document object if found, None otherwise
    """
    return db.get(Document, document_id)


def list_documents(db: Session) -> List[Document]:
    """Retrieve all documents, most recently uploaded first."""
    return list(db.scalars(select(Document).order_by(Document.created_at.desc())))


def find_documents_by_hash(db: Session, file_hash: str) -> List[Document]:
    """Retrieve documents whose file contents hash to file_hash."""
    return list(db.scalars(select(Document).where(Document.file_hash == file_hash)))


def compare_and_set_status(
    db: Session,
    document_id: str,
    expected: DocumentStatus,
    target: DocumentStatus,
    error_message: Optional[str] = None,
    commit: bool = True
) -> bool:
    """
    Move a document from the expected status to target, atomically.

    The UPDATE only matches when the row still has the expected status, so an
    operation that raced with another one (or with a delete) changes nothing.
    error_message is stored for the error status and cleared for every other.
    raw_text and page_count are never touched here.

    Args:
        db: Database session
        document_id: Document primary key
        expected: Status the caller observed
        target: Status to move to
        error_message: Failure message (target error only)
        commit: Commit immediately; pass False to join a larger transaction

    Returns:
        True if the row was updated, False if it was missing or had moved on
    """
    target = DocumentStatus(target)
    values = {
        "processing_status": target.value,
        "error_message": error_message if target == DocumentStatus.ERROR else None,
        "updated_at": utcnow(),
    }
    stmt = (
        update(Document)
        .where(
            Document.id == document_id,
            Document.processing_status == DocumentStatus(expected).value,
        )
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = db.execute(stmt)
        if commit:
            db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    applied = result.rowcount == 1
    if not applied:
        logger.debug(
            f"Status CAS {expected} -> {target} did not apply for document {document_id}"
        )
    return applied


def set_extracted_text(
    db: Session,
    document_id: str,
    expected: DocumentStatus,
    raw_text: str,
    page_count: Optional[int]
) -> bool:
    """
    Store extracted text and move the document to extracted, atomically.

    Same compare-and-set semantics as compare_and_set_status(): a document that
    was deleted (or moved on) while extraction ran is left alone.

    Returns:
        True if the row was updated, False otherwise
    """
    stmt = (
        update(Document)
        .where(
            Document.id == document_id,
            Document.processing_status == DocumentStatus(expected).value,
        )
        .values(
            raw_text=raw_text,
            page_count=page_count,
            processing_status=DocumentStatus.EXTRACTED.value,
            error_message=None,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return result.rowcount == 1


INTERRUPTED_ANALYSIS_MESSAGE = "Analysis interrupted"


def recover_interrupted_analyses(db: Session) -> int:
    """
    Move every document stuck in analyzing to error.

    Only a running analysis holds a document in analyzing, so rows found there
    at startup belong to a process that died during the engine call. raw_text
    and earlier records are kept; the document can be analyzed again.

    Returns:
        Number of documents moved to error
    """
    stmt = (
        update(Document)
        .where(Document.processing_status == DocumentStatus.ANALYZING.value)
        .values(
            processing_status=DocumentStatus.ERROR.value,
            error_message=INTERRUPTED_ANALYSIS_MESSAGE,
            updated_at=utcnow(),
        )
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    if result.rowcount:
        logger.warning(f"Moved {result.rowcount} interrupted analyses to error")
    return result.rowcount


def delete_document(db: Session, document_id: str) -> bool:
    """
    Delete a document and all related data.

    Foreign key cascades remove extractions, risk assessments, reports and the
    comparisons where the document is side A; comparisons where it is side B
    keep their row with document_b_id set to NULL.

    Args:
        db: Database session
        document_id: Document primary key

    Returns:
        True if deleted, False if document not found
    """
    document = get_document(db, document_id)
    if not document:
        return False
    db.delete(document)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return True


def get_document_stats(db: Session) -> Dict[str, int]:
    """
    Count documents by processing status.

    Returns:
        Dictionary with total, analyzed, pending (pending + extracted) and
        failed (error) counts
    """
    results = db.execute(
        select(Document.processing_status, func.count(Document.id))
        .group_by(Document.processing_status)
    ).all()
    by_status = {status: count for status, count in results}

    return {
        "total": sum(by_status.values()),
        "analyzed": by_status.get(DocumentStatus.ANALYZED.value, 0),
        "pending": (
            by_status.get(DocumentStatus.PENDING.value, 0)
            + by_status.get(DocumentStatus.EXTRACTED.value, 0)
        ),
        "failed": by_status.get(DocumentStatus.ERROR.value, 0),
    }


# ============================================================================
# Extraction CRUD Operations
# ============================================================================


def create_extraction(
    db: Session,
    document_id: str,
    ai_provider: str,
    contract_type: str,
    extracted_data: str,
    ai_model: Optional[str] = None,
    confidence_score: Optional[float] = None,
    processing_time_ms: Optional[int] = None,
    commit: bool = True
) -> Extraction:
    """
    Append an extraction record.

    Args:
        db: Database session
        document_id: Parent document ID
        ai_provider: Engine name
        contract_type: Contract type the extraction was made for
        extracted_data: JSON-serialized ExtractionData
        ai_model: Optional model name
        confidence_score: Optional engine confidence
        processing_time_ms: Duration of the engine call
        commit: Commit immediately; pass False to join a larger transaction

    Returns:
        Extraction: Created record (ID assigned even when not committed)

    Raises:
        IntegrityError: If document_id does not exist
    """
    extraction = Extraction(
        document_id=document_id,
        ai_provider=ai_provider,
        ai_model=ai_model,
        contract_type=contract_type,
        extracted_data=extracted_data,
        confidence_score=confidence_score,
        processing_time_ms=processing_time_ms,
    )
    return _persist(db, extraction, commit)


def get_extraction(db: Session, extraction_id: str) -> Optional[Extraction]:
    return db.get(Extraction, extraction_id)


def list_extractions(db: Session, document_id: str) -> List[Extraction]:
    """Retrieve a document's extractions, newest first."""
    return list(db.scalars(
        select(Extraction)
        .where(Extraction.document_id == document_id)
        .order_by(Extraction.created_at.desc())
    ))


# ============================================================================
# Risk Assessment CRUD Operations
# ============================================================================


def create_risk_assessment(
    db: Session,
    document_id: str,
    extraction_id: str,
    overall_score: int,
    risk_level: str,
    flags: str,
    ai_provider: str,
    summary: Optional[str] = None,
    commit: bool = True
) -> RiskAssessment:
    """
    Append a risk assessment derived from an extraction.

    Args:
        db: Database session
        document_id: Parent document ID
        extraction_id: Extraction produced by the same run
        overall_score: Score 0-100
        risk_level: low / medium / high
        flags: JSON-serialized list of RiskFlag
        ai_provider: Engine name
        summary: Optional risk overview
        commit: Commit immediately; pass False to join a larger transaction

    Returns:
        RiskAssessment: Created record

    Raises:
        IntegrityError: For foreign key violations (unknown document or extraction)
    """
    risk = RiskAssessment(
        document_id=document_id,
        extraction_id=extraction_id,
        overall_score=overall_score,
        risk_level=risk_level.strip().lower(),
        flags=flags,
        summary=summary,
        ai_provider=ai_provider,
    )
    return _persist(db, risk, commit)


def list_risk_assessments(db: Session, document_id: str) -> List[RiskAssessment]:
    """Retrieve a document's risk assessments, newest first."""
    return list(db.scalars(
        select(RiskAssessment)
        .where(RiskAssessment.document_id == document_id)
        .order_by(RiskAssessment.created_at.desc())
    ))


def get_latest_risk_assessment(db: Session, document_id: str) -> Optional[RiskAssessment]:
    """Return the authoritative (newest) risk assessment of a document, if any."""
    return db.scalars(
        select(RiskAssessment)
        .where(RiskAssessment.document_id == document_id)
        .order_by(RiskAssessment.created_at.desc())
        .limit(1)
    ).first()


def get_risk_distribution(db: Session) -> Dict[str, int]:
    """
    Count all risk assessments by level.

    Returns:
        Dictionary with low, medium and high counts (missing levels are 0)
    """
    results = db.execute(
        select(RiskAssessment.risk_level, func.count(RiskAssessment.id))
        .group_by(RiskAssessment.risk_level)
    ).all()
    counts = {level: count for level, count in results}
    return {level: counts.get(level, 0) for level in ("low", "medium", "high")}


# ============================================================================
# Template CRUD Operations
# ============================================================================


def create_template(
    db: Session,
    name: str,
    contract_type: str,
    raw_text: str,
    description: Optional[str] = None
) -> Template:
    """Create a comparison template."""
    template = Template(
        name=name,
        contract_type=contract_type,
        description=description,
        raw_text=raw_text,
    )
    return _persist(db, template, commit=True)


def get_template(db: Session, template_id: str) -> Optional[Template]:
    return db.get(Template, template_id)


def list_templates(db: Session) -> List[Template]:
    """Retrieve all templates ordered by name."""
    return list(db.scalars(select(Template).order_by(Template.name)))


def delete_template(db: Session, template_id: str) -> bool:
    """
    Delete a template. Comparisons made against it keep their row with
    template_id set to NULL.

    Returns:
        True if deleted, False if template not found
    """
    template = get_template(db, template_id)
    if not template:
        return False
    db.delete(template)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return True


# ============================================================================
# Comparison CRUD Operations
# ============================================================================


def create_comparison(
    db: Session,
    document_a_id: str,
    comparison_type: str,
    differences: Iterable[dict],
    document_b_id: Optional[str] = None,
    template_id: Optional[str] = None,
    summary: Optional[str] = None,
    ai_provider: Optional[str] = None
) -> Comparison:
    """
    Append a comparison record.

    Args:
        db: Database session
        document_a_id: Compared document
        comparison_type: document_vs_document / document_vs_template
        differences: Difference dictionaries, in display order
        document_b_id: Other document, if any
        template_id: Template, if any
        summary: Optional overall summary
        ai_provider: Engine name

    Returns:
        Comparison: Created record
    """
    comparison = Comparison(
        document_a_id=document_a_id,
        document_b_id=document_b_id,
        template_id=template_id,
        comparison_type=comparison_type,
        differences=json.dumps(list(differences)),
        summary=summary,
        ai_provider=ai_provider,
    )
    return _persist(db, comparison, commit=True)


def list_comparisons(db: Session, document_id: str) -> List[Comparison]:
    """Retrieve comparisons involving a document on either side, newest first."""
    return list(db.scalars(
        select(Comparison)
        .where(or_(
            Comparison.document_a_id == document_id,
            Comparison.document_b_id == document_id,
        ))
        .order_by(Comparison.created_at.desc())
    ))


# ============================================================================
# Report CRUD Operations
# ============================================================================


def create_report(
    db: Session,
    document_id: str,
    report_type: str,
    content: str,
    format: str = "text",
    export_path: Optional[str] = None,
    commit: bool = True
) -> Report:
    """Append a generated report."""
    report = Report(
        document_id=document_id,
        report_type=report_type,
        content=content,
        format=format,
        export_path=export_path,
    )
    return _persist(db, report, commit=commit)


def list_reports(db: Session, document_id: str) -> List[Report]:
    """Retrieve a document's reports, newest first."""
    return list(db.scalars(
        select(Report)
        .where(Report.document_id == document_id)
        .order_by(Report.created_at.desc())
    ))


# ============================================================================
# Settings CRUD Operations
# ============================================================================


def get_setting(db: Session, key: str) -> Optional[str]:
    setting = db.get(Setting, key)
    return setting.value if setting else None


def get_all_settings(db: Session) -> Dict[str, str]:
    return {setting.key: setting.value for setting in db.scalars(select(Setting))}


def set_setting(db: Session, key: str, value: str) -> Setting:
    """Insert or update a setting value."""
    setting = db.get(Setting, key)
    if setting:
        setting.value = value
        setting.updated_at = utcnow()
    else:
        setting = Setting(key=key, value=value)
    return _persist(db, setting, commit=True)
