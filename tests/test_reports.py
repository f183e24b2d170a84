import pytest

from legal_review import crud
from legal_review.errors import DocumentNotFoundError, EngineError, PersistenceError, PreconditionError
from legal_review.schemas import ExtractionData, RiskData
from legal_review.services import orchestrator, reports
from legal_review.status import DocumentStatus

from conftest import EXTRACTION, NDA_TEXT, RISK, ScriptedEngine, analysis_replies


def test_build_report_content_layout():
    content = reports.build_report_content(
        ExtractionData.model_validate(EXTRACTION),
        RiskData.model_validate(RISK),
        "The agreement is broadly balanced.",
    )
    lines = content.splitlines()

    assert lines[0] == "=" * 51
    assert lines[1].strip() == "LEGAL DOCUMENT REVIEW REPORT"
    assert "EXECUTIVE SUMMARY" in lines
    assert "The agreement is broadly balanced." in lines
    assert "  * Acme Corp" in lines
    assert "Effective Date: 2026-01-01" in lines
    assert not any(line.startswith("Termination Date") for line in lines)
    assert "[GOVERNING_LAW] Governing Law (Ref: Section 9)" in lines
    assert "  Importance: medium" in lines
    assert "Overall Score: 42/100 (MEDIUM)" in lines
    assert "  [HIGH - LIABILITY] Liability for breach is uncapped." in lines
    assert "    Ref: Section 5" in lines
    assert "    Suggestion: Cap liability at fees paid in the prior 12 months." in lines
    assert lines[-1] == "Generated by Legal Document Review Assistant"
    assert content.endswith("\n")


def test_clauses_keep_extraction_order():
    content = reports.build_report_content(
        ExtractionData.model_validate(EXTRACTION), RiskData.model_validate(RISK), "Summary."
    )
    positions = [content.index(f"[{c['clause_type'].upper()}]") for c in EXTRACTION["clauses"]]
    assert positions == sorted(positions)


def test_flag_without_reference_is_general():
    risk = RiskData.model_validate({
        "overall_score": 10,
        "risk_level": "low",
        "flags": [{"category": "other", "severity": "low", "description": "Minor typo."}],
    })
    content = reports.build_report_content(ExtractionData(), risk, "Summary.")
    assert "    Ref: General" in content.splitlines()
    assert "Suggestion" not in content


def test_generate_report_from_latest_assessment(db, analyzed_document, reports_dir):
    engine = ScriptedEngine("Low-friction mutual NDA.")
    report = reports.generate_report(db, analyzed_document.id, engine, export_dir=reports_dir)

    assert report.report_type == "full_analysis"
    assert report.format == "text"
    assert "Low-friction mutual NDA." in report.content
    assert "Overall Score: 42/100 (MEDIUM)" in report.content
    exported = reports_dir / f"report_{report.id[:8]}.txt"
    assert report.export_path == str(exported)
    assert exported.read_text(encoding="utf-8") == report.content


def test_report_uses_newest_run(db, make_document):
    document = make_document(DocumentStatus.EXTRACTED, raw_text=NDA_TEXT)
    orchestrator.analyze_document(db, document.id, ScriptedEngine(*analysis_replies()))
    orchestrator.analyze_document(db, document.id, ScriptedEngine(*analysis_replies(
        risk={"overall_score": 85, "risk_level": "high", "flags": []}
    )))

    report = reports.generate_report(db, document.id, ScriptedEngine("Summary."))
    assert "Overall Score: 85/100 (HIGH)" in report.content
    assert report.export_path is None


def test_report_requires_analysis(db, make_document):
    document = make_document(DocumentStatus.EXTRACTED, raw_text=NDA_TEXT)
    engine = ScriptedEngine()
    with pytest.raises(PreconditionError, match="No risk assessment found. Run analysis first."):
        reports.generate_report(db, document.id, engine)
    assert engine.calls == []


def test_report_unknown_document(db):
    with pytest.raises(DocumentNotFoundError):
        reports.generate_report(db, "missing", ScriptedEngine())


def test_summary_failure_stores_nothing(db, analyzed_document):
    with pytest.raises(EngineError):
        reports.generate_report(db, analyzed_document.id, ScriptedEngine(RuntimeError("rate limited")))
    assert reports.list_reports(db, analyzed_document.id) == []


def test_reports_do_not_change_status_and_accumulate(db, analyzed_document):
    first = reports.generate_report(db, analyzed_document.id, ScriptedEngine("One."))
    second = reports.generate_report(db, analyzed_document.id, ScriptedEngine("Two."))

    assert [r.id for r in reports.list_reports(db, analyzed_document.id)] == [second.id, first.id]
    db.expire_all()
    assert crud.get_document(db, analyzed_document.id).processing_status == "analyzed"


def test_export_failure_stores_nothing(db, analyzed_document, tmp_path):
    not_a_dir = tmp_path / "reports"
    not_a_dir.write_text("occupied")

    with pytest.raises(PersistenceError, match="Failed to store report"):
        reports.generate_report(db, analyzed_document.id, ScriptedEngine("Summary."), export_dir=not_a_dir)

    assert reports.list_reports(db, analyzed_document.id) == []
    assert not_a_dir.read_text() == "occupied"
