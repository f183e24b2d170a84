"""
Services module for business logic and external service integrations.

This package contains the operations built on top of the document registry:
- documents: Upload, text extraction, deletion and document views
- pdf_extractor: PyMuPDF text extraction from uploaded PDFs
- orchestrator: Analysis runs (extraction + risk assessment in one transaction)
- comparison: Document-vs-document and document-vs-template diffs
- reports: Plain-text review reports
- risk_rules: Deterministic missing-clause checks per contract type
- provider_settings: Typed access to the AI provider settings table
- engine / openai_engine / ollama_engine / claude_engine: Analysis engine adapters
- prompts: Prompt text shared by all engine adapters

Service Pattern:
- Engine adapters and the PDF extractor talk to the outside world and return a
  tuple of (result, error_message); they never raise
- Operations over the registry raise errors from legal_review.errors, which the
  HTTP layer maps to status codes
- Comprehensive logging through module-level loggers
"""
