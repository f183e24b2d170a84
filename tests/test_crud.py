import json

import pytest
from sqlalchemy.exc import IntegrityError

from legal_review import crud
from legal_review.database import recover_interrupted_analyses
from legal_review.models import Comparison, Extraction, Report, RiskAssessment
from legal_review.status import DocumentStatus

from conftest import EXTRACTION, NDA_TEXT


def test_create_document_starts_pending(db):
    document = crud.create_document(
        db,
        filename="contract.pdf",
        original_path="/tmp/contract.pdf",
        stored_path="/data/contract.pdf",
        file_hash="abc123",
        file_size=1024,
        contract_type="nda",
    )
    assert document.id
    assert document.processing_status == "pending"
    assert document.raw_text is None
    assert crud.get_document(db, document.id) is document


def test_list_documents_newest_first(make_document, db):
    first = make_document(filename="a.pdf")
    second = make_document(filename="b.pdf")
    assert [d.id for d in crud.list_documents(db)] == [second.id, first.id]


def test_pending_document_cannot_hold_text(make_document, db):
    document = make_document()
    document.raw_text = "text without extraction"
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_extracted_document_requires_text(make_document, db):
    document = make_document()
    document.processing_status = "extracted"
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_compare_and_set_applies_when_status_matches(make_document, db):
    document = make_document(DocumentStatus.EXTRACTED, raw_text=NDA_TEXT)
    assert crud.compare_and_set_status(db, document.id, DocumentStatus.EXTRACTED, DocumentStatus.ANALYZING)
    db.expire_all()
    assert crud.get_document(db, document.id).processing_status == "analyzing"


def test_compare_and_set_skips_when_status_moved(make_document, db):
    document = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    applied = crud.compare_and_set_status(db, document.id, DocumentStatus.EXTRACTED, DocumentStatus.ANALYZING)
    assert not applied
    db.expire_all()
    assert crud.get_document(db, document.id).processing_status == "analyzed"


def test_compare_and_set_unknown_document(db):
    assert not crud.compare_and_set_status(db, "missing", DocumentStatus.PENDING, DocumentStatus.ERROR)


def test_error_message_only_kept_for_error_status(make_document, db):
    document = make_document(DocumentStatus.ANALYZING, raw_text=NDA_TEXT)
    crud.compare_and_set_status(
        db, document.id, DocumentStatus.ANALYZING, DocumentStatus.ERROR, error_message="engine down"
    )
    db.expire_all()
    failed = crud.get_document(db, document.id)
    assert failed.error_message == "engine down"
    assert failed.raw_text == NDA_TEXT

    crud.compare_and_set_status(
        db, document.id, DocumentStatus.ERROR, DocumentStatus.ANALYZING, error_message="ignored"
    )
    db.expire_all()
    assert crud.get_document(db, document.id).error_message is None


def test_set_extracted_text(make_document, db):
    document = make_document()
    assert crud.set_extracted_text(db, document.id, DocumentStatus.PENDING, NDA_TEXT, 2)
    db.expire_all()
    updated = crud.get_document(db, document.id)
    assert updated.processing_status == "extracted"
    assert updated.raw_text == NDA_TEXT
    assert updated.page_count == 2


def test_document_stats(make_document, db):
    make_document()
    make_document(DocumentStatus.EXTRACTED, raw_text="x")
    make_document(DocumentStatus.ANALYZED, raw_text="x")
    make_document(DocumentStatus.ERROR, error_message="failed")
    make_document(DocumentStatus.ANALYZING, raw_text="x")

    assert crud.get_document_stats(db) == {"total": 5, "analyzed": 1, "pending": 2, "failed": 1}


def test_document_stats_empty(db):
    assert crud.get_document_stats(db) == {"total": 0, "analyzed": 0, "pending": 0, "failed": 0}


def _add_run(db, document_id, score, level):
    extraction = crud.create_extraction(
        db,
        document_id=document_id,
        ai_provider="scripted",
        contract_type="nda",
        extracted_data=json.dumps(EXTRACTION),
    )
    return crud.create_risk_assessment(
        db,
        document_id=document_id,
        extraction_id=extraction.id,
        overall_score=score,
        risk_level=level,
        flags="[]",
        ai_provider="scripted",
    )


def test_latest_risk_assessment_is_newest(make_document, db):
    document = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    _add_run(db, document.id, 20, "low")
    newest = _add_run(db, document.id, 80, "HIGH ")

    assert crud.get_latest_risk_assessment(db, document.id).id == newest.id
    assert newest.risk_level == "high"
    assert [r.overall_score for r in crud.list_risk_assessments(db, document.id)] == [80, 20]


def test_risk_distribution_counts_every_assessment(make_document, db):
    first = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    second = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    _add_run(db, first.id, 20, "low")
    _add_run(db, first.id, 50, "medium")
    _add_run(db, second.id, 55, "medium")

    assert crud.get_risk_distribution(db) == {"low": 1, "medium": 2, "high": 0}


def test_risk_assessment_requires_existing_extraction(make_document, db):
    document = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    with pytest.raises(IntegrityError):
        crud.create_risk_assessment(
            db,
            document_id=document.id,
            extraction_id="missing",
            overall_score=10,
            risk_level="low",
            flags="[]",
            ai_provider="scripted",
        )


def test_delete_document_cascades(make_document, db):
    document = make_document(DocumentStatus.ANALYZED, raw_text=NDA_TEXT)
    other = make_document(DocumentStatus.EXTRACTED, raw_text=NDA_TEXT)
    _add_run(db, document.id, 40, "medium")
    crud.create_report(db, document_id=document.id, report_type="full_analysis", content="report")
    as_a = crud.create_comparison(db, document.id, "document_vs_document", [], document_b_id=other.id)
    as_b = crud.create_comparison(db, other.id, "document_vs_document", [], document_b_id=document.id)

    assert crud.delete_document(db, document.id)
    db.expire_all()

    assert crud.get_document(db, document.id) is None
    assert db.query(Extraction).count() == 0
    assert db.query(RiskAssessment).count() == 0
    assert db.query(Report).count() == 0
    assert db.get(Comparison, as_a.id) is None
    kept = db.get(Comparison, as_b.id)
    assert kept is not None
    assert kept.document_b_id is None


def test_delete_unknown_document(db):
    assert not crud.delete_document(db, "missing")


def test_deleting_template_keeps_comparisons(make_document, db):
    document = make_document(DocumentStatus.EXTRACTED, raw_text=NDA_TEXT)
    template = crud.create_template(db, name="Standard NDA", contract_type="nda", raw_text="template")
    comparison = crud.create_comparison(db, document.id, "document_vs_template", [], template_id=template.id)

    assert crud.delete_template(db, template.id)
    db.expire_all()
    assert db.get(Comparison, comparison.id).template_id is None
    assert not crud.delete_template(db, template.id)


def test_list_comparisons_either_side(make_document, db):
    a = make_document(DocumentStatus.EXTRACTED, raw_text="a")
    b = make_document(DocumentStatus.EXTRACTED, raw_text="b")
    c = make_document(DocumentStatus.EXTRACTED, raw_text="c")
    first = crud.create_comparison(db, a.id, "document_vs_document", [], document_b_id=b.id)
    second = crud.create_comparison(db, c.id, "document_vs_document", [], document_b_id=a.id)
    crud.create_comparison(db, b.id, "document_vs_document", [], document_b_id=c.id)

    assert [cmp.id for cmp in crud.list_comparisons(db, a.id)] == [second.id, first.id]


def test_list_templates_by_name(db):
    crud.create_template(db, name="Zeta lease", contract_type="lease", raw_text="z")
    crud.create_template(db, name="Alpha NDA", contract_type="nda", raw_text="a")
    assert [t.name for t in crud.list_templates(db)] == ["Alpha NDA", "Zeta lease"]


def test_settings_upsert(db):
    assert crud.get_setting(db, "ai_provider") is None
    crud.set_setting(db, "ai_provider", "openai")
    crud.set_setting(db, "ai_provider", "claude")
    crud.set_setting(db, "claude_model", "claude-x")

    assert crud.get_setting(db, "ai_provider") == "claude"
    assert crud.get_all_settings(db) == {"ai_provider": "claude", "claude_model": "claude-x"}


def test_interrupted_analyses_move_to_error(make_document, db):
    stuck = make_document(DocumentStatus.ANALYZING, raw_text=NDA_TEXT)
    untouched = make_document(DocumentStatus.EXTRACTED, raw_text=NDA_TEXT)

    assert crud.recover_interrupted_analyses(db) == 1
    db.expire_all()

    recovered = crud.get_document(db, stuck.id)
    assert recovered.processing_status == "error"
    assert recovered.error_message == "Analysis interrupted"
    assert recovered.raw_text == NDA_TEXT
    assert crud.get_document(db, untouched.id).processing_status == "extracted"
    assert crud.recover_interrupted_analyses(db) == 0


def test_startup_recovery_uses_given_engine(make_document, db, db_engine):
    stuck = make_document(DocumentStatus.ANALYZING, raw_text=NDA_TEXT)

    assert recover_interrupted_analyses(bind=db_engine) == 1
    db.expire_all()
    assert crud.get_document(db, stuck.id).processing_status == "error"
