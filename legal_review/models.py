"""
SQLAlchemy ORM models for the Legal Review database schema.

This module defines the persisted records of the review pipeline:
- Document: Uploaded contract and its processing status
- Extraction: One analysis run's structured clause/party/date data (append-only)
- RiskAssessment: One analysis run's scored risk evaluation (append-only)
- Template: Reference contract text used for template comparisons
- Comparison: Structured diff between two documents or a document and a template
- Report: Generated point-in-time review report
- Setting: Provider configuration key/value pair

Extraction, RiskAssessment, Comparison and Report rows are never updated after
creation. Listing queries return them newest-first and the newest is the
authoritative one for display.

All models use SQLAlchemy 2.0 declarative base with type hints, relationships,
and cascade deletion for data integrity.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional, List
from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from legal_review.database import Base


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Document(Base):
    """
    Represents an uploaded contract document.

    Attributes:
        id: UUID primary key
        filename: Original file name
        original_path: Path the file was uploaded from
        stored_path: Path of the managed copy
        file_hash: SHA-256 of the file contents
        file_size: Size in bytes
        contract_type: nda / service_agreement / lease
        raw_text: Extracted text (null until extraction succeeds)
        page_count: Number of pages reported by the extractor
        processing_status: pending / extracted / analyzing / analyzed / error
        error_message: Message of the most recent failure (status error only)
        created_at: Upload timestamp
        updated_at: Last status/text change
        extractions: Related extraction records (newest first)
        risk_assessments: Related risk assessment records (newest first)
        reports: Related report records (newest first)
    """

    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    filename: Mapped[str] = mapped_column(String(500))
    original_path: Mapped[str] = mapped_column(Text)
    stored_path: Mapped[str] = mapped_column(Text)
    file_hash: Mapped[str] = mapped_column(String(64))
    file_size: Mapped[int] = mapped_column(Integer)
    contract_type: Mapped[str] = mapped_column(String(50))
    raw_text: Mapped[Optional[str]] = mapped_column(Text)
    page_count: Mapped[Optional[int]] = mapped_column(Integer)
    processing_status: Mapped[str] = mapped_column(String(20), default="pending")
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Relationships with cascade delete
    extractions: Mapped[List["Extraction"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Extraction.created_at.desc()",
    )
    risk_assessments: Mapped[List["RiskAssessment"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RiskAssessment.created_at.desc()",
    )
    reports: Mapped[List["Report"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Report.created_at.desc()",
    )

    # raw_text must be absent while pending and present once extracted
    __table_args__ = (
        CheckConstraint(
            "processing_status IN ('pending', 'extracted', 'analyzing', 'analyzed', 'error')",
            name="ck_documents_status",
        ),
        CheckConstraint(
            "processing_status != 'pending' OR raw_text IS NULL",
            name="ck_documents_pending_without_text",
        ),
        CheckConstraint(
            "processing_status NOT IN ('extracted', 'analyzing', 'analyzed') OR raw_text IS NOT NULL",
            name="ck_documents_text_after_extraction",
        ),
        Index("ix_documents_status", "processing_status"),
    )

    @property
    def latest_risk_assessment(self) -> Optional["RiskAssessment"]:
        return self.risk_assessments[0] if self.risk_assessments else None


class Extraction(Base):
    """
    Represents one analysis run's structured extraction.

    Attributes:
        id: UUID primary key
        document_id: Foreign key to parent document
        ai_provider: Engine that produced the data (ollama/openai/claude)
        ai_model: Model name, when known
        contract_type: Contract type the prompt was built for
        extracted_data: JSON-serialized ExtractionData
        confidence_score: Optional engine confidence
        processing_time_ms: Wall time of the engine call
        created_at: Timestamp of the run
    """

    __tablename__ = "extractions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"))
    ai_provider: Mapped[str] = mapped_column(String(50))
    ai_model: Mapped[Optional[str]] = mapped_column(String(200))
    contract_type: Mapped[str] = mapped_column(String(50))
    extracted_data: Mapped[str] = mapped_column(Text)
    confidence_score: Mapped[Optional[float]] = mapped_column(Float)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Relationships
    document: Mapped["Document"] = relationship(back_populates="extractions")

    __table_args__ = (
        Index("ix_extractions_document", "document_id", "created_at"),
    )


class RiskAssessment(Base):
    """
    Represents one analysis run's risk evaluation.

    Each assessment points at the Extraction produced by the same run; an
    assessment without its extraction is invalid, so the foreign key is required.

    Attributes:
        id: UUID primary key
        document_id: Foreign key to parent document
        extraction_id: Foreign key to the extraction of the same run
        overall_score: Risk score 0-100
        risk_level: low / medium / high, as stated by the engine
        flags: JSON-serialized list of RiskFlag
        summary: Short risk overview
        ai_provider: Engine that produced the assessment
        created_at: Timestamp of the run
    """

    __tablename__ = "risk_assessments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"))
    extraction_id: Mapped[str] = mapped_column(ForeignKey("extractions.id", ondelete="CASCADE"))
    overall_score: Mapped[int] = mapped_column(Integer)
    risk_level: Mapped[str] = mapped_column(String(20))
    flags: Mapped[str] = mapped_column(Text)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    ai_provider: Mapped[str] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Relationships
    document: Mapped["Document"] = relationship(back_populates="risk_assessments")
    extraction: Mapped["Extraction"] = relationship()

    __table_args__ = (
        CheckConstraint("overall_score BETWEEN 0 AND 100", name="ck_risk_score_range"),
        Index("ix_risk_assessments_document", "document_id", "created_at"),
        Index("ix_risk_assessments_level", "risk_level"),
    )


class Template(Base):
    """
    Represents a reference contract that documents can be compared against.

    Attributes:
        id: UUID primary key
        name: Display name
        contract_type: nda / service_agreement / lease
        description: Optional description
        raw_text: Template text sent to the engine on comparison
        extracted_data: Optional pre-computed extraction JSON
    """

    __tablename__ = "templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(500))
    contract_type: Mapped[str] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text)
    raw_text: Mapped[str] = mapped_column(Text)
    extracted_data: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class Comparison(Base):
    """
    Represents a stored comparison.

    document_b_id is null for template comparisons, and is also nulled when the
    second document is deleted; deleting document A removes the comparison.

    Attributes:
        id: UUID primary key
        document_a_id: Foreign key to the compared document
        document_b_id: Foreign key to the other document, if any
        template_id: Foreign key to the template, if any
        comparison_type: document_vs_document / document_vs_template
        differences: JSON-serialized ordered list of Difference
        summary: Overall comparison summary
        ai_provider: Engine that produced the diff
        created_at: Timestamp of the comparison
    """

    __tablename__ = "comparisons"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    document_a_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"))
    document_b_id: Mapped[Optional[str]] = mapped_column(ForeignKey("documents.id", ondelete="SET NULL"))
    template_id: Mapped[Optional[str]] = mapped_column(ForeignKey("templates.id", ondelete="SET NULL"))
    comparison_type: Mapped[str] = mapped_column(String(50))
    differences: Mapped[str] = mapped_column(Text)
    summary: Mapped[Optional[str]] = mapped_column(Text)
    ai_provider: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_comparisons_doc_a", "document_a_id", "created_at"),
    )


class Report(Base):
    """
    Represents a generated report.

    Reports are snapshots and are never invalidated by later analyses.

    Attributes:
        id: UUID primary key
        document_id: Foreign key to parent document
        report_type: Report kind (full_analysis)
        content: Full report text
        export_path: File the report was exported to, if any
        format: Content format tag (text)
        created_at: Generation timestamp
    """

    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    document_id: Mapped[str] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"))
    report_type: Mapped[str] = mapped_column(String(50))
    content: Mapped[str] = mapped_column(Text)
    export_path: Mapped[Optional[str]] = mapped_column(Text)
    format: Mapped[str] = mapped_column(String(20), default="text")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    # Relationships
    document: Mapped["Document"] = relationship(back_populates="reports")

    __table_args__ = (
        Index("ix_reports_document", "document_id", "created_at"),
    )


class Setting(Base):
    """Provider configuration value keyed by one of schemas.SettingKey."""

    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
