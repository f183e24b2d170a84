"""
Report generation.

A report is a plain-text snapshot of a document's newest risk assessment, the
extraction it was derived from, and an executive summary written by the
analysis engine. Reports are append-only and are never invalidated by later
analyses; generating one never changes the document's status.

Usage Example:
    from legal_review.services.reports import generate_report

    report = generate_report(db, document_id, engine, export_dir=Path("data/reports"))
    print(report.content)
"""

import json
import logging
from pathlib import Path
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from legal_review import crud
from legal_review.errors import PersistenceError, PreconditionError
from legal_review.models import Report
from legal_review.schemas import ExtractionData, RiskData, RiskFlag
from legal_review.services.documents import require_document
from legal_review.services.engine import AnalysisEngine, engine_error

logger = logging.getLogger(__name__)

REPORT_TYPE = "full_analysis"
REPORT_FORMAT = "text"

HEAVY_RULE = "=" * 51
LIGHT_RULE_CHAR = "-"


def _heading(title: str) -> List[str]:
    return [title, LIGHT_RULE_CHAR * len(title)]


def build_report_content(extraction: ExtractionData, risk: RiskData, summary: str) -> str:
    """
    Render the plain-text report.

    Sections: executive summary, key parties and dates, extracted clauses in
    extraction order, then the risk score and flags.
    """
    lines = [
        HEAVY_RULE,
        "        LEGAL DOCUMENT REVIEW REPORT",
        HEAVY_RULE,
        "",
        *_heading("EXECUTIVE SUMMARY"),
        summary,
        "",
        *_heading("KEY PARTIES"),
    ]
    lines.extend(f"  * {party}" for party in extraction.parties)
    lines.append("")

    if extraction.effective_date:
        lines.append(f"Effective Date: {extraction.effective_date}")
    if extraction.termination_date:
        lines.append(f"Termination Date: {extraction.termination_date}")
    lines.append("")

    lines.extend(_heading("EXTRACTED CLAUSES"))
    for clause in extraction.clauses:
        lines.extend([
            "",
            f"[{clause.clause_type.upper()}] {clause.title} (Ref: {clause.section_reference or 'N/A'})",
            f"  Importance: {clause.importance.value}",
            f"  Text: {clause.text}",
        ])
    lines.append("")

    lines.extend(_heading("RISK ASSESSMENT"))
    lines.append(f"Overall Score: {risk.overall_score}/100 ({risk.risk_level.value.upper()})")
    lines.append("")

    if risk.flags:
        lines.append("Risk Flags:")
        for flag in risk.flags:
            lines.extend([
                "",
                f"  [{flag.severity.value.upper()} - {flag.category.upper()}] {flag.description}",
                f"    Ref: {flag.clause_reference or 'General'}",
            ])
            if flag.suggestion:
                lines.append(f"    Suggestion: {flag.suggestion}")

    lines.extend([
        "",
        HEAVY_RULE,
        "Generated by Legal Document Review Assistant",
    ])
    return "\n".join(lines) + "\n"


def generate_report(
    db: Session,
    document_id: str,
    engine: AnalysisEngine,
    export_dir: Optional[Path] = None
) -> Report:
    """
    Generate a full-analysis report for a document.

    Args:
        db: Database session
        document_id: Document to report on
        engine: Analysis engine adapter (writes the executive summary)
        export_dir: If given, the content is also written to report_<id>.txt there

    Returns:
        Report: Stored report

    Raises:
        DocumentNotFoundError: Unknown document
        PreconditionError: The document has never been analyzed successfully
        EngineError: The engine failed to write the summary
        PersistenceError: The report or its export could not be written;
            nothing is stored
    """
    require_document(db, document_id)
    latest_risk = crud.get_latest_risk_assessment(db, document_id)
    if latest_risk is None:
        raise PreconditionError("No risk assessment found. Run analysis first.")

    extraction = ExtractionData.model_validate_json(latest_risk.extraction.extracted_data)
    risk = RiskData(
        overall_score=latest_risk.overall_score,
        risk_level=latest_risk.risk_level,
        flags=[RiskFlag.model_validate(flag) for flag in json.loads(latest_risk.flags)],
        summary=latest_risk.summary,
    )

    summary, error = engine.generate_summary(extraction, risk)
    if error:
        raise engine_error(error)

    content = build_report_content(extraction, risk, summary)
    # The row is only committed once the export (if any) is on disk
    report = crud.create_report(
        db,
        document_id=document_id,
        report_type=REPORT_TYPE,
        content=content,
        format=REPORT_FORMAT,
        commit=False,
    )

    export_path = None
    try:
        if export_dir is not None:
            export_dir = Path(export_dir)
            export_path = export_dir / f"report_{report.id[:8]}.txt"
            export_dir.mkdir(parents=True, exist_ok=True)
            export_path.write_text(content, encoding="utf-8")
            report.export_path = str(export_path)
        db.commit()
        db.refresh(report)
    except (OSError, SQLAlchemyError) as e:
        db.rollback()
        if export_path is not None:
            _remove_export(export_path)
        logger.error(f"Failed to store report for document {document_id}: {e}", exc_info=True)
        raise PersistenceError(f"Failed to store report for document {document_id}: {e}") from e

    logger.info(f"Generated report {report.id} for document {document_id}")
    return report


def _remove_export(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning(f"Could not remove partial report export {path}")


def list_reports(db: Session, document_id: str) -> List[Report]:
    """Reports of a document, newest first."""
    require_document(db, document_id)
    return crud.list_reports(db, document_id)
