import json

import fitz
import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from legal_review import crud
from legal_review.database import build_engine, get_db, init_db
from legal_review.main import app, get_engine_factory, get_reports_dir, get_storage_dir
from legal_review.services.engine import AnalysisEngine
from legal_review.services.openai_client import clear_client_cache
from legal_review.status import DocumentStatus

NDA_TEXT = (
    "MUTUAL NON-DISCLOSURE AGREEMENT\n"
    "This Agreement is made between Acme Corp and Beta LLC.\n"
    "Section 7. Either party may terminate this Agreement with 30 days written notice.\n"
    "Section 9. This Agreement is governed by the laws of the State of Delaware."
)

EXTRACTION = {
    "parties": ["Acme Corp", "Beta LLC"],
    "effective_date": "2026-01-01",
    "termination_date": None,
    "clauses": [
        {
            "clause_type": "governing_law",
            "title": "Governing Law",
            "text": "This Agreement is governed by the laws of the State of Delaware.",
            "section_reference": "Section 9",
            "importance": "medium",
        },
        {
            "clause_type": "termination",
            "title": "Termination",
            "text": "Either party may terminate this Agreement with 30 days written notice.",
            "section_reference": "Section 7",
            "importance": "high",
        },
        {
            "clause_type": "exclusions",
            "title": "Exclusions",
            "text": "Confidential Information does not include publicly available information.",
            "section_reference": "Section 3",
            "importance": "medium",
        },
        {
            "clause_type": "term_and_duration",
            "title": "Term",
            "text": "Obligations survive for three years.",
            "section_reference": "Section 8",
            "importance": "medium",
        },
    ],
}

RISK = {
    "overall_score": 42,
    "risk_level": "Medium",
    "flags": [
        {
            "category": "liability",
            "severity": "HIGH",
            "description": "Liability for breach is uncapped.",
            "clause_reference": "Section 5",
            "suggestion": "Cap liability at fees paid in the prior 12 months.",
        }
    ],
    "summary": "Moderate risk driven by uncapped liability.",
}

DIFFERENCES = {
    "differences": [
        {
            "category": "termination",
            "diff_type": "substantive",
            "description": "Notice period differs.",
            "text_a": "30 days written notice",
            "text_b": "90 days written notice",
            "significance": "high",
        },
        {
            "category": "governing_law",
            "diff_type": "Cosmetic",
            "description": "Jurisdiction wording differs.",
            "text_a": "State of Delaware",
            "text_b": "Delaware",
            "significance": "low",
        },
    ],
    "summary": "Termination notice is the main difference.",
}


class ScriptedEngine(AnalysisEngine):
    """Engine whose backend replies are queued by the test.

    A queued exception is raised from the backend call instead of returned.
    before_reply runs ahead of every reply, to simulate concurrent changes.
    """

    name = "scripted"
    default_model = "scripted-1"

    def __init__(self, *replies, model=None, before_reply=None):
        super().__init__(model)
        self.replies = list(replies)
        self.before_reply = before_reply
        self.calls = []
        self.closed = 0

    def queue(self, *replies):
        self.replies.extend(replies)

    def close(self):
        self.closed += 1

    def _complete(self, system, prompt, json_mode, max_tokens):
        self.calls.append({"system": system, "prompt": prompt, "json_mode": json_mode})
        if self.before_reply is not None:
            self.before_reply()
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


def analysis_replies(extraction=None, risk=None):
    return [extraction or EXTRACTION, risk or RISK]


@pytest.fixture(autouse=True)
def _no_network(monkeypatch):
    # Mock and ASGI transports still work; real sockets do not
    def block(self, request):
        raise RuntimeError(f"External HTTP blocked: {request.url}")

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", block)
    yield


@pytest.fixture(autouse=True)
def _fresh_openai_clients():
    clear_client_cache()
    yield
    clear_client_cache()


@pytest.fixture
def db_engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def make_document(db):
    """Insert a document directly in the given status."""

    def factory(
        status=DocumentStatus.PENDING,
        raw_text=None,
        contract_type="nda",
        filename="contract.pdf",
        error_message=None,
        stored_path=None,
        file_hash="abc123",
    ):
        document = crud.create_document(
            db,
            filename=filename,
            original_path=f"/tmp/{filename}",
            stored_path=stored_path or f"/data/{filename}",
            file_hash=file_hash,
            file_size=1024,
            contract_type=contract_type,
        )
        status = DocumentStatus(status)
        if status != DocumentStatus.PENDING:
            document.processing_status = status.value
            document.raw_text = raw_text
            document.error_message = error_message
            db.commit()
        return document

    return factory


@pytest.fixture
def analyzed_document(db, make_document):
    """A document with one stored extraction/assessment pair."""
    document = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    extraction = crud.create_extraction(
        db,
        document_id=document.id,
        ai_provider="scripted",
        contract_type="nda",
        extracted_data=json.dumps(EXTRACTION),
    )
    crud.create_risk_assessment(
        db,
        document_id=document.id,
        extraction_id=extraction.id,
        overall_score=RISK["overall_score"],
        risk_level="medium",
        flags=json.dumps(RISK["flags"]),
        summary=RISK["summary"],
        ai_provider="scripted",
    )
    return document


@pytest.fixture
def sample_pdf(tmp_path):
    path = tmp_path / "incoming" / "nda.pdf"
    path.parent.mkdir()
    pdf = fitz.open()
    page = pdf.new_page()
    y = 72
    for line in NDA_TEXT.splitlines():
        page.insert_text((72, y), line, fontsize=9)
        y += 18
    pdf.save(str(path))
    pdf.close()
    return path


@pytest.fixture
def blank_pdf(tmp_path):
    path = tmp_path / "scanned.pdf"
    pdf = fitz.open()
    pdf.new_page()
    pdf.save(str(path))
    pdf.close()
    return path


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "storage"


@pytest.fixture
def reports_dir(tmp_path):
    return tmp_path / "reports"


@pytest.fixture
def api_engine():
    return ScriptedEngine()


@pytest.fixture
def client(session_factory, api_engine, storage_dir, reports_dir):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_engine_factory] = lambda: (lambda db: api_engine)
    app.dependency_overrides[get_storage_dir] = lambda: storage_dir
    app.dependency_overrides[get_reports_dir] = lambda: reports_dir
    yield TestClient(app)
    app.dependency_overrides.clear()
