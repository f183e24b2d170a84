"""
FastAPI application exposing the review pipeline over HTTP.

Endpoints are thin: each validates input with the schemas in schemas.py, calls
one service operation, and translates service errors into HTTP errors:

    ValidationError                       -> 400
    NotFoundError                         -> 404
    PreconditionError (incl. transitions) -> 409
    EngineError / ExtractionError         -> 502
    PersistenceError, anything else       -> 500

The analysis engine is built per request from the provider settings, so a
settings change applies to the next call, and closed when the request is done.
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Callable, List

from fastapi import Depends, FastAPI, HTTPException, status
from sqlalchemy.orm import Session

from legal_review.config import configure_logging, get_settings
from legal_review.database import get_db, init_db, recover_interrupted_analyses
from legal_review.errors import (
    EngineError,
    ExtractionError,
    NotFoundError,
    PreconditionError,
    ReviewError,
    ValidationError,
)
from legal_review.schemas import (
    SECRET_SETTING_KEYS,
    AnalysisResult,
    CompareRequest,
    ComparisonResponse,
    DocumentResponse,
    DocumentStats,
    ExtractionResponse,
    ProviderSettings,
    ReportResponse,
    RiskAssessmentResponse,
    RiskDistribution,
    SettingKey,
    SettingResponse,
    SettingUpdateRequest,
    TemplateCompareRequest,
    TemplateCreateRequest,
    TemplateResponse,
    UploadRequest,
)
from legal_review.services import comparison, documents, orchestrator, provider_settings, reports
from legal_review.services.engine import AnalysisEngine, create_engine_from_settings

# Logging setup
logger = logging.getLogger(__name__)

settings = get_settings()

EngineFactory = Callable[[Session], AnalysisEngine]


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    recover_interrupted_analyses()
    logger.info(f"{settings.app_name} {settings.app_version} started ({settings.environment})")
    yield


# Initialize the FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Contract intake, AI clause extraction and risk analysis, comparisons and reports.",
    lifespan=lifespan,
)


# --------------------------
# Dependencies
# --------------------------


def engine_from_settings(db: Session) -> AnalysisEngine:
    return create_engine_from_settings(provider_settings.load_provider_settings(db))


def get_engine_factory() -> EngineFactory:
    """Dependency returning the callable that builds the analysis engine."""
    return engine_from_settings


def get_storage_dir() -> Path:
    return settings.storage_dir


def get_reports_dir() -> Path:
    return settings.reports_dir


def _http_error(error: ReviewError) -> HTTPException:
    """Map a service error to its HTTP status."""
    if isinstance(error, ValidationError):
        code = status.HTTP_400_BAD_REQUEST
    elif isinstance(error, NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(error, PreconditionError):
        code = status.HTTP_409_CONFLICT
    elif isinstance(error, (EngineError, ExtractionError)):
        code = status.HTTP_502_BAD_GATEWAY
    else:
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
    return HTTPException(status_code=code, detail=error.message)


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Failed to {action}: {type(e).__name__}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}"
    )


def _document_gone() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")


# --------------------------
# Health
# --------------------------


@app.get("/health")
def health_check():
    """
    Health check endpoint to verify the service is running.
    Returns status and service information.
    """
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version
    }


# --------------------------
# Documents
# --------------------------


@app.post("/documents", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
def upload_document(
    req: UploadRequest,
    db: Session = Depends(get_db),
    storage_dir: Path = Depends(get_storage_dir)
):
    """
    Register a PDF on disk as a new pending document.

    Args:
        req: File path and contract type
        db: Database session (injected)
        storage_dir: Managed storage directory (injected)

    Returns:
        The pending document

    Raises:
        HTTPException: 400 if the file does not exist, 500 on storage failure
    """
    try:
        document = documents.upload_document(db, req.file_path, req.contract_type.value, storage_dir)
        return documents.describe_document(db, document)
    except HTTPException:
        raise
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("upload document", e)


@app.get("/documents", response_model=List[DocumentResponse])
def list_documents(db: Session = Depends(get_db)):
    """List all documents, most recently uploaded first."""
    try:
        return documents.list_documents(db)
    except Exception as e:
        raise _internal_error("list documents", e)


@app.get("/documents/stats", response_model=DocumentStats)
def get_document_stats(db: Session = Depends(get_db)):
    """Counts by status; pending includes extracted documents, failed counts errors."""
    try:
        return documents.get_stats(db)
    except Exception as e:
        raise _internal_error("load document stats", e)


@app.get("/documents/{document_id}", response_model=DocumentResponse)
def get_document(document_id: str, db: Session = Depends(get_db)):
    try:
        return documents.get_document(db, document_id)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("load document", e)


@app.delete("/documents/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_document(document_id: str, db: Session = Depends(get_db)):
    """Delete a document with its extractions, assessments, reports and stored file."""
    try:
        documents.delete_document(db, document_id)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("delete document", e)


@app.post("/documents/{document_id}/extract", response_model=DocumentResponse)
def extract_document_text(document_id: str, db: Session = Depends(get_db)):
    """
    Extract the text of a document's PDF.

    Raises:
        HTTPException: 404 if the document is unknown (or deleted meanwhile),
            409 if its status does not allow extraction, 502 if extraction failed
    """
    try:
        result = documents.extract_text(db, document_id)
        if result is None:
            raise _document_gone()
        return result
    except HTTPException:
        raise
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("extract document text", e)


@app.post("/documents/{document_id}/analyze", response_model=AnalysisResult)
def analyze_document(
    document_id: str,
    db: Session = Depends(get_db),
    engine_factory: EngineFactory = Depends(get_engine_factory)
):
    """
    Run clause extraction and risk assessment for a document.

    Each run appends one extraction and one risk assessment; the newest pair is
    what the document view shows.

    Raises:
        HTTPException: 400 if the provider is not configured, 404 if the document
            is unknown (or deleted during analysis), 409 if its text is missing or
            another run is in flight, 502 if the engine failed
    """
    try:
        logger.info(f"Starting analysis for document {document_id}")
        with engine_factory(db) as engine:
            result = orchestrator.analyze_document(db, document_id, engine)
        if result is None:
            raise _document_gone()
        return result
    except HTTPException:
        raise
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error(f"analyze document {document_id}", e)


@app.get("/documents/{document_id}/extractions", response_model=List[ExtractionResponse])
def get_extractions(document_id: str, db: Session = Depends(get_db)):
    """Extractions of a document, newest (authoritative) first."""
    try:
        return [
            ExtractionResponse.model_validate(extraction)
            for extraction in orchestrator.list_extractions(db, document_id)
        ]
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("load extractions", e)


@app.get("/documents/{document_id}/risk-assessments", response_model=List[RiskAssessmentResponse])
def get_risk_assessments(document_id: str, db: Session = Depends(get_db)):
    """Risk assessments of a document, newest (authoritative) first."""
    try:
        return [
            RiskAssessmentResponse.model_validate(risk)
            for risk in orchestrator.list_risk_assessments(db, document_id)
        ]
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("load risk assessments", e)


@app.get("/documents/{document_id}/comparisons", response_model=List[ComparisonResponse])
def get_comparisons(document_id: str, db: Session = Depends(get_db)):
    try:
        return [
            comparison.describe_comparison(record)
            for record in comparison.list_comparisons(db, document_id)
        ]
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("load comparisons", e)


@app.post(
    "/documents/{document_id}/reports",
    response_model=ReportResponse,
    status_code=status.HTTP_201_CREATED
)
def generate_report(
    document_id: str,
    db: Session = Depends(get_db),
    engine_factory: EngineFactory = Depends(get_engine_factory),
    reports_dir: Path = Depends(get_reports_dir)
):
    """
    Generate a plain-text report from the newest risk assessment.

    Raises:
        HTTPException: 404 if the document is unknown, 409 if it was never
            analyzed, 502 if the engine failed to write the summary
    """
    try:
        with engine_factory(db) as engine:
            report = reports.generate_report(db, document_id, engine, export_dir=reports_dir)
        return ReportResponse.model_validate(report)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("generate report", e)


@app.get("/documents/{document_id}/reports", response_model=List[ReportResponse])
def get_reports(document_id: str, db: Session = Depends(get_db)):
    try:
        return [ReportResponse.model_validate(report) for report in reports.list_reports(db, document_id)]
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("load reports", e)


@app.get("/risk-distribution", response_model=RiskDistribution)
def get_risk_distribution(db: Session = Depends(get_db)):
    """Counts of all risk assessments by level."""
    try:
        return documents.get_risk_distribution(db)
    except Exception as e:
        raise _internal_error("load risk distribution", e)


# --------------------------
# Comparisons & Templates
# --------------------------


@app.post("/comparisons", response_model=ComparisonResponse, status_code=status.HTTP_201_CREATED)
def compare_documents(
    req: CompareRequest,
    db: Session = Depends(get_db),
    engine_factory: EngineFactory = Depends(get_engine_factory)
):
    """
    Compare two documents.

    Raises:
        HTTPException: 400 if both ids are the same, 404 for unknown documents,
            409 if either has no text, 502 if the engine failed
    """
    try:
        with engine_factory(db) as engine:
            record = comparison.compare_documents(db, req.document_a_id, req.document_b_id, engine)
        return comparison.describe_comparison(record)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("compare documents", e)


@app.post("/comparisons/template", response_model=ComparisonResponse, status_code=status.HTTP_201_CREATED)
def compare_with_template(
    req: TemplateCompareRequest,
    db: Session = Depends(get_db),
    engine_factory: EngineFactory = Depends(get_engine_factory)
):
    """Compare a document against a template."""
    try:
        with engine_factory(db) as engine:
            record = comparison.compare_with_template(db, req.document_id, req.template_id, engine)
        return comparison.describe_comparison(record)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("compare with template", e)


@app.post("/templates", response_model=TemplateResponse, status_code=status.HTTP_201_CREATED)
def create_template(req: TemplateCreateRequest, db: Session = Depends(get_db)):
    try:
        return TemplateResponse.model_validate(comparison.create_template(db, req))
    except Exception as e:
        raise _internal_error("create template", e)


@app.get("/templates", response_model=List[TemplateResponse])
def list_templates(db: Session = Depends(get_db)):
    try:
        return [TemplateResponse.model_validate(t) for t in comparison.list_templates(db)]
    except Exception as e:
        raise _internal_error("list templates", e)


@app.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(template_id: str, db: Session = Depends(get_db)):
    try:
        comparison.delete_template(db, template_id)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("delete template", e)


# --------------------------
# Settings
# --------------------------


@app.get("/settings", response_model=ProviderSettings)
def get_provider_settings(db: Session = Depends(get_db)):
    """Effective provider settings with API keys masked."""
    try:
        return provider_settings.load_provider_settings(db).masked()
    except Exception as e:
        raise _internal_error("load settings", e)


@app.get("/settings/{key}", response_model=SettingResponse)
def get_setting(key: str, db: Session = Depends(get_db)):
    """Stored value of one setting (null if unset). API keys are masked."""
    try:
        value = provider_settings.get_setting(db, key)
        if value and SettingKey(key) in SECRET_SETTING_KEYS:
            value = "****"
        return SettingResponse(key=key, value=value)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("load setting", e)


@app.put("/settings/{key}", response_model=SettingResponse)
def update_setting(key: str, req: SettingUpdateRequest, db: Session = Depends(get_db)):
    try:
        provider_settings.set_setting(db, key, req.value)
        value = provider_settings.get_setting(db, key)
        if SettingKey(key) in SECRET_SETTING_KEYS:
            value = "****"
        return SettingResponse(key=key, value=value)
    except ReviewError as e:
        raise _http_error(e)
    except Exception as e:
        raise _internal_error("update setting", e)
