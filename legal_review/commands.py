"""
Command clients: the async boundary between the document store and the pipeline.

Two implementations share the CommandClient interface:

- LocalCommandClient runs service operations in-process. Each command opens
  its own database session and runs in a worker thread (asyncio.to_thread), so
  the event loop never blocks on SQLAlchemy or the analysis engine.
- HttpCommandClient talks to the FastAPI app in main.py with httpx.

Every failure surfaces as CommandError carrying the service's message. Database,
file system and schema failures in the local client are logged and wrapped too.

Usage:
    client = LocalCommandClient(SessionLocal)
    docs = await client.list_documents()
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, List, Optional

import httpx
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from legal_review.config import get_settings
from legal_review.errors import ReviewError
from legal_review.schemas import (
    AnalysisResult,
    ComparisonResponse,
    DocumentResponse,
    DocumentStats,
    ExtractionResponse,
    ReportResponse,
    RiskAssessmentResponse,
    RiskDistribution,
    SettingResponse,
    TemplateCreateRequest,
    TemplateResponse,
    document_adapter,
    document_list_adapter,
)
from legal_review.services import comparison, documents, orchestrator, provider_settings, reports
from legal_review.services.engine import AnalysisEngine, create_engine_from_settings

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A command failed; message is the service's (or server's) error detail."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class CommandClient(ABC):
    """Async commands available to the document store and other front ends."""

    @abstractmethod
    async def upload(self, file_path: str, contract_type: str) -> DocumentResponse: ...

    @abstractmethod
    async def extract_text(self, document_id: str) -> Optional[DocumentResponse]: ...

    @abstractmethod
    async def get_document(self, document_id: str) -> DocumentResponse: ...

    @abstractmethod
    async def list_documents(self) -> List[DocumentResponse]: ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> None: ...

    @abstractmethod
    async def get_stats(self) -> DocumentStats: ...

    @abstractmethod
    async def analyze(self, document_id: str) -> Optional[AnalysisResult]: ...

    @abstractmethod
    async def get_extractions(self, document_id: str) -> List[ExtractionResponse]: ...

    @abstractmethod
    async def get_risk_assessments(self, document_id: str) -> List[RiskAssessmentResponse]: ...

    @abstractmethod
    async def get_risk_distribution(self) -> RiskDistribution: ...

    @abstractmethod
    async def compare(self, document_a_id: str, document_b_id: str) -> ComparisonResponse: ...

    @abstractmethod
    async def compare_with_template(self, document_id: str, template_id: str) -> ComparisonResponse: ...

    @abstractmethod
    async def get_comparisons(self, document_id: str) -> List[ComparisonResponse]: ...

    @abstractmethod
    async def create_template(
        self,
        name: str,
        contract_type: str,
        raw_text: str,
        description: Optional[str] = None
    ) -> TemplateResponse: ...

    @abstractmethod
    async def list_templates(self) -> List[TemplateResponse]: ...

    @abstractmethod
    async def delete_template(self, template_id: str) -> None: ...

    @abstractmethod
    async def generate_report(self, document_id: str) -> ReportResponse: ...

    @abstractmethod
    async def get_reports(self, document_id: str) -> List[ReportResponse]: ...

    @abstractmethod
    async def get_setting(self, key: str) -> Optional[str]: ...

    @abstractmethod
    async def set_setting(self, key: str, value: str) -> None: ...


def _engine_from_settings(db: Session) -> AnalysisEngine:
    return create_engine_from_settings(provider_settings.load_provider_settings(db))


class LocalCommandClient(CommandClient):
    """
    In-process command client.

    Args:
        session_factory: Creates a database session per command
        engine_factory: Builds the analysis engine for a session (defaults to
            the provider selected in the settings table)
        storage_dir: Where uploads are copied (defaults to Settings.storage_dir)
        reports_dir: Where reports are exported (defaults to Settings.reports_dir)
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        engine_factory: Callable[[Session], AnalysisEngine] = _engine_from_settings,
        storage_dir: Optional[Path] = None,
        reports_dir: Optional[Path] = None
    ):
        settings = get_settings()
        self._session_factory = session_factory
        self._engine_factory = engine_factory
        self._storage_dir = storage_dir or settings.storage_dir
        self._reports_dir = reports_dir or settings.reports_dir

    async def _run(self, operation: Callable[[Session], Any]) -> Any:
        def work():
            with self._session_factory() as db:
                try:
                    return operation(db)
                except ReviewError as e:
                    raise CommandError(e.message) from e
                except (SQLAlchemyError, OSError, SchemaValidationError) as e:
                    logger.exception(f"Command failed: {e}")
                    raise CommandError(f"Internal error: {e}") from e

        return await asyncio.to_thread(work)

    async def _run_with_engine(self, operation: Callable[[Session, AnalysisEngine], Any]) -> Any:
        def op(db):
            with self._engine_factory(db) as engine:
                return operation(db, engine)
        return await self._run(op)


    async def upload(self, file_path, contract_type):
        def op(db):
            document = documents.upload_document(db, file_path, contract_type, self._storage_dir)
            return documents.describe_document(db, document)
        return await self._run(op)

    async def extract_text(self, document_id):
        return await self._run(lambda db: documents.extract_text(db, document_id))

    async def get_document(self, document_id):
        return await self._run(lambda db: documents.get_document(db, document_id))

    async def list_documents(self):
        return await self._run(documents.list_documents)

    async def delete_document(self, document_id):
        await self._run(lambda db: documents.delete_document(db, document_id))

    async def get_stats(self):
        return await self._run(documents.get_stats)

    async def analyze(self, document_id):
        return await self._run_with_engine(
            lambda db, engine: orchestrator.analyze_document(db, document_id, engine)
        )

    async def get_extractions(self, document_id):
        return await self._run(lambda db: [
            ExtractionResponse.model_validate(e) for e in orchestrator.list_extractions(db, document_id)
        ])

    async def get_risk_assessments(self, document_id):
        return await self._run(lambda db: [
            RiskAssessmentResponse.model_validate(r) for r in orchestrator.list_risk_assessments(db, document_id)
        ])

    async def get_risk_distribution(self):
        return await self._run(documents.get_risk_distribution)

    async def compare(self, document_a_id, document_b_id):
        return await self._run_with_engine(lambda db, engine: comparison.describe_comparison(
            comparison.compare_documents(db, document_a_id, document_b_id, engine)
        ))

    async def compare_with_template(self, document_id, template_id):
        return await self._run_with_engine(lambda db, engine: comparison.describe_comparison(
            comparison.compare_with_template(db, document_id, template_id, engine)
        ))

    async def get_comparisons(self, document_id):
        return await self._run(lambda db: [
            comparison.describe_comparison(c) for c in comparison.list_comparisons(db, document_id)
        ])

    async def create_template(self, name, contract_type, raw_text, description=None):
        try:
            request = TemplateCreateRequest(
                name=name, contract_type=contract_type, raw_text=raw_text, description=description
            )
        except ValueError as e:
            raise CommandError(str(e)) from e
        return await self._run(
            lambda db: TemplateResponse.model_validate(comparison.create_template(db, request))
        )

    async def list_templates(self):
        return await self._run(lambda db: [
            TemplateResponse.model_validate(t) for t in comparison.list_templates(db)
        ])

    async def delete_template(self, template_id):
        await self._run(lambda db: comparison.delete_template(db, template_id))

    async def generate_report(self, document_id):
        return await self._run_with_engine(lambda db, engine: ReportResponse.model_validate(
            reports.generate_report(db, document_id, engine, export_dir=self._reports_dir)
        ))

    async def get_reports(self, document_id):
        return await self._run(lambda db: [
            ReportResponse.model_validate(r) for r in reports.list_reports(db, document_id)
        ])

    async def get_setting(self, key):
        return await self._run(lambda db: provider_settings.get_setting(db, key))

    async def set_setting(self, key, value):
        await self._run(lambda db: provider_settings.set_setting(db, key, value))


class HttpCommandClient(CommandClient):
    """
    Command client for the HTTP API.

    Args:
        base_url: API root, e.g. http://localhost:8000
        transport: Optional httpx transport (httpx.ASGITransport(app=app) in tests)
        timeout: Request timeout; analysis calls can take minutes
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            transport=transport,
            timeout=timeout or get_settings().engine_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise CommandError(f"Request to {path} failed: {e}") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise CommandError(str(detail), status_code=response.status_code)

        if response.status_code == 204:
            return None
        return response.json()

    async def upload(self, file_path, contract_type):
        data = await self._request("POST", "/documents", json={
            "file_path": file_path, "contract_type": contract_type
        })
        return document_adapter.validate_python(data)

    async def extract_text(self, document_id):
        return document_adapter.validate_python(
            await self._request("POST", f"/documents/{document_id}/extract")
        )

    async def get_document(self, document_id):
        return document_adapter.validate_python(await self._request("GET", f"/documents/{document_id}"))

    async def list_documents(self):
        return document_list_adapter.validate_python(await self._request("GET", "/documents"))

    async def delete_document(self, document_id):
        await self._request("DELETE", f"/documents/{document_id}")

    async def get_stats(self):
        return DocumentStats.model_validate(await self._request("GET", "/documents/stats"))

    async def analyze(self, document_id):
        return AnalysisResult.model_validate(await self._request("POST", f"/documents/{document_id}/analyze"))

    async def get_extractions(self, document_id):
        data = await self._request("GET", f"/documents/{document_id}/extractions")
        return [ExtractionResponse.model_validate(item) for item in data]

    async def get_risk_assessments(self, document_id):
        data = await self._request("GET", f"/documents/{document_id}/risk-assessments")
        return [RiskAssessmentResponse.model_validate(item) for item in data]

    async def get_risk_distribution(self):
        return RiskDistribution.model_validate(await self._request("GET", "/risk-distribution"))

    async def compare(self, document_a_id, document_b_id):
        data = await self._request("POST", "/comparisons", json={
            "document_a_id": document_a_id, "document_b_id": document_b_id
        })
        return ComparisonResponse.model_validate(data)

    async def compare_with_template(self, document_id, template_id):
        data = await self._request("POST", "/comparisons/template", json={
            "document_id": document_id, "template_id": template_id
        })
        return ComparisonResponse.model_validate(data)

    async def get_comparisons(self, document_id):
        data = await self._request("GET", f"/documents/{document_id}/comparisons")
        return [ComparisonResponse.model_validate(item) for item in data]

    async def create_template(self, name, contract_type, raw_text, description=None):
        data = await self._request("POST", "/templates", json={
            "name": name,
            "contract_type": contract_type,
            "raw_text": raw_text,
            "description": description,
        })
        return TemplateResponse.model_validate(data)

    async def list_templates(self):
        return [TemplateResponse.model_validate(item) for item in await self._request("GET", "/templates")]

    async def delete_template(self, template_id):
        await self._request("DELETE", f"/templates/{template_id}")

    async def generate_report(self, document_id):
        return ReportResponse.model_validate(await self._request("POST", f"/documents/{document_id}/reports"))

    async def get_reports(self, document_id):
        data = await self._request("GET", f"/documents/{document_id}/reports")
        return [ReportResponse.model_validate(item) for item in data]

    async def get_setting(self, key):
        return SettingResponse.model_validate(await self._request("GET", f"/settings/{key}")).value

    async def set_setting(self, key, value):
        await self._request("PUT", f"/settings/{key}", json={"value": value})
