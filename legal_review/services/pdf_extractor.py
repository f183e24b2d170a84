"""
PDF text extraction using PyMuPDF.

Returns a tuple (result, error_message) like the engine adapters:
- On success: (PdfText, None)
- On failure: (None, error_message_string)

Scanned PDFs have no text layer; they fail with a message pointing at OCR
rather than producing an empty document.
"""

import logging
from pathlib import Path
from typing import NamedTuple, Optional, Tuple, Union

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

NO_TEXT_MESSAGE = "PDF contains no extractable text. It may be a scanned document requiring OCR."


class PdfText(NamedTuple):
    text: str
    page_count: int


def clean_text(text: str) -> str:
    """
    Trim every line and drop blank ones.

    Examples:
        >>> clean_text("  Hello  \\n\\n  World  \\n   \\n  Test  ")
        'Hello\\nWorld\\nTest'
    """
    return "\n".join(line.strip() for line in text.splitlines() if line.strip())


def extract_pdf_text(path: Union[str, Path]) -> Tuple[Optional[PdfText], Optional[str]]:
    """
    Extract and clean the text of every page of a PDF.

    Args:
        path: Path to the PDF file

    Returns:
        Tuple of (PdfText, None) on success or (None, error_message)
    """
    path = Path(path)
    if not path.is_file():
        return None, f"File not found: {path}"

    try:
        with fitz.open(path) as pdf:
            page_count = pdf.page_count
            text = "\n".join(page.get_text("text") for page in pdf)
    except Exception as e:
        error_msg = f"Failed to extract text from {path}: {e}"
        logger.error(error_msg)
        return None, error_msg

    if not text.strip():
        logger.warning(f"No text layer in {path.name} ({page_count} pages)")
        return None, NO_TEXT_MESSAGE

    logger.info(f"Extracted {len(text)} chars from {path.name} ({page_count} pages)")
    return PdfText(text=clean_text(text), page_count=page_count), None
