"""
Document intake: upload, text extraction, deletion and document views.

Upload copies the PDF into the managed storage directory and registers a
pending document. Text extraction moves it to extracted (or to error) with a
compare-and-set against the status observed before the extractor ran, so a
document deleted or re-processed in the meantime is never overwritten.

Usage Example:
    from legal_review.services import documents

    doc = documents.upload_document(db, "/tmp/nda.pdf", "nda")
    view = documents.extract_text(db, doc.id)
"""

import hashlib
import logging
import shutil
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from sqlalchemy.orm import Session

from legal_review import crud
from legal_review.config import get_settings
from legal_review.errors import (
    DocumentNotFoundError,
    ExtractionError,
    StaleStatusError,
    ValidationError,
)
from legal_review.models import Document
from legal_review.schemas import (
    ContractType,
    DocumentResponse,
    DocumentStats,
    RiskDistribution,
    document_adapter,
)
from legal_review.services.pdf_extractor import PdfText, extract_pdf_text
from legal_review.status import DocumentStatus, guard_transition

logger = logging.getLogger(__name__)

Extractor = Callable[[Union[str, Path]], Tuple[Optional[PdfText], Optional[str]]]

_HASH_CHUNK_SIZE = 1024 * 1024


def compute_file_hash(path: Path) -> str:
    """SHA-256 hex digest of a file's contents."""
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_HASH_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def parse_contract_type(contract_type: str) -> ContractType:
    try:
        return ContractType(contract_type)
    except ValueError:
        raise ValidationError(f"Unknown contract type: {contract_type}") from None


def require_document(db: Session, document_id: str) -> Document:
    document = crud.get_document(db, document_id)
    if document is None:
        raise DocumentNotFoundError(document_id)
    return document


def upload_document(
    db: Session,
    file_path: str,
    contract_type: str,
    storage_dir: Optional[Path] = None
) -> Document:
    """
    Register a PDF as a new pending document.

    The file is copied to <storage_dir>/<hash[:8]>_<filename>.

    Args:
        db: Database session
        file_path: Path of the file to upload
        contract_type: nda / service_agreement / lease
        storage_dir: Managed storage directory (defaults to Settings.storage_dir)

    Returns:
        Document: Created pending document

    Raises:
        ValidationError: If the file does not exist or the contract type is unknown
    """
    source = Path(file_path)
    kind = parse_contract_type(contract_type)
    if not source.is_file():
        raise ValidationError(f"File not found: {file_path}")

    file_hash = compute_file_hash(source)
    file_size = source.stat().st_size

    target_dir = Path(storage_dir or get_settings().storage_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    stored_path = target_dir / f"{file_hash[:8]}_{source.name}"
    shutil.copyfile(source, stored_path)

    document = crud.create_document(
        db,
        filename=source.name,
        original_path=str(source),
        stored_path=str(stored_path),
        file_hash=file_hash,
        file_size=file_size,
        contract_type=kind.value,
    )
    logger.info(f"Uploaded {source.name} as document {document.id} ({file_size} bytes)")
    return document


def _resolve_lost_update(db: Session, document_id: str, expected: DocumentStatus) -> None:
    """
    Explain a compare-and-set that did not apply.

    Returns None when the document was deleted (the caller discards its
    result) and raises StaleStatusError when another operation moved it.
    """
    db.expire_all()
    current = crud.get_document(db, document_id)
    if current is None:
        logger.info(f"Document {document_id} was deleted during processing; result discarded")
        return None
    raise StaleStatusError(
        f"Document {document_id} changed from '{expected.value}' to "
        f"'{current.processing_status}' during processing"
    )


def extract_text(
    db: Session,
    document_id: str,
    extractor: Extractor = extract_pdf_text
) -> Optional[DocumentResponse]:
    """
    Extract the stored PDF's text and move the document to extracted.

    Args:
        db: Database session
        document_id: Document to process
        extractor: PDF extractor (injectable for tests)

    Returns:
        The updated document view, or None if the document was deleted while
        the extractor ran

    Raises:
        DocumentNotFoundError: Unknown document
        InvalidTransitionError: Status does not allow extraction (e.g. analyzed)
        ExtractionError: The extractor failed; the document is now in error
        StaleStatusError: Another operation changed the document meanwhile
    """
    document = require_document(db, document_id)
    observed = DocumentStatus(document.processing_status)
    # Only the edge is checked here; the text guard runs on the extractor's result
    guard_transition(observed, DocumentStatus.EXTRACTED, has_text=True)

    logger.info(f"Extracting text for document {document_id} ({document.filename})")
    result, error = extractor(document.stored_path)

    if error is None and result is not None and not result.text.strip():
        error = "Extraction produced no text"

    if error:
        applied = crud.compare_and_set_status(
            db, document_id, observed, DocumentStatus.ERROR, error_message=error
        )
        if not applied:
            _resolve_lost_update(db, document_id, observed)
            return None
        logger.warning(f"Text extraction failed for document {document_id}: {error}")
        raise ExtractionError(error)

    guard_transition(observed, DocumentStatus.EXTRACTED, has_text=bool(result.text))
    applied = crud.set_extracted_text(db, document_id, observed, result.text, result.page_count)
    if not applied:
        _resolve_lost_update(db, document_id, observed)
        return None

    db.expire_all()
    logger.info(f"Document {document_id} extracted ({result.page_count} pages)")
    return describe_document(db, require_document(db, document_id))


def delete_document(db: Session, document_id: str) -> None:
    """
    Delete a document, its records and its stored file.

    The stored file is kept while another document still points at it (the
    same file uploaded twice).

    Raises:
        DocumentNotFoundError: Unknown document
    """
    document = require_document(db, document_id)
    stored = Path(document.stored_path)
    shared = any(
        other.id != document.id and other.stored_path == document.stored_path
        for other in crud.find_documents_by_hash(db, document.file_hash)
    )

    crud.delete_document(db, document_id)

    if stored.exists() and not shared:
        stored.unlink()
    logger.info(f"Deleted document {document_id}")


def describe_document(db: Session, document: Document) -> DocumentResponse:
    """
    Build the status-specific view of a document.

    Analyzed documents carry the newest risk assessment's score and level;
    failed ones carry their error message.
    """
    data = {
        "id": document.id,
        "filename": document.filename,
        "original_path": document.original_path,
        "stored_path": document.stored_path,
        "file_hash": document.file_hash,
        "file_size": document.file_size,
        "contract_type": document.contract_type,
        "page_count": document.page_count,
        "processing_status": document.processing_status,
        "raw_text": document.raw_text,
        "created_at": document.created_at,
        "updated_at": document.updated_at,
    }

    status = DocumentStatus(document.processing_status)
    if status == DocumentStatus.ANALYZED:
        latest = crud.get_latest_risk_assessment(db, document.id)
        if latest is not None:
            data.update(
                risk_assessment_id=latest.id,
                overall_score=latest.overall_score,
                risk_level=latest.risk_level,
            )
    elif status == DocumentStatus.ERROR:
        data["error_message"] = document.error_message

    return document_adapter.validate_python(data)


def get_document(db: Session, document_id: str) -> DocumentResponse:
    return describe_document(db, require_document(db, document_id))


def list_documents(db: Session) -> List[DocumentResponse]:
    """All documents, newest upload first."""
    return [describe_document(db, document) for document in crud.list_documents(db)]


def get_stats(db: Session) -> DocumentStats:
    return DocumentStats(**crud.get_document_stats(db))


def get_risk_distribution(db: Session) -> RiskDistribution:
    return RiskDistribution(**crud.get_risk_distribution(db))
