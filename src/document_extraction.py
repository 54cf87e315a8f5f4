"""
Document Extraction Module

Contains functions for extracting plain text from uploaded PDF, Word and
text files before question extraction.
"""

import io
import logging
from pathlib import Path

import fitz  # PyMuPDF
from docx import Document

logger = logging.getLogger("smartquiz.documents")

MAX_FILE_BYTES = 20 * 1024 * 1024  # 20MB
SUPPORTED_EXTENSIONS = (".pdf", ".docx", ".txt")


class DocumentReadError(ValueError):
    """Raised when a document is rejected or its text cannot be read."""


def validate_document(filename: str, size: int):
    """Reject unsupported formats and oversized files."""
    suffix = Path(filename).suffix.lower()
    if suffix == ".doc":
        raise DocumentReadError("Old Word format (.doc) is not supported. Please save as .docx or .pdf.")
    if suffix not in SUPPORTED_EXTENSIONS:
        raise DocumentReadError("Supported formats: .pdf, .docx, .txt")
    if size > MAX_FILE_BYTES:
        raise DocumentReadError("File size must be under 20MB.")


def extract_text_from_pdf(data: bytes) -> str:
    """Extract raw text from PDF bytes using PyMuPDF, one block per page."""
    doc = fitz.open(stream=data, filetype="pdf")
    try:
        pages = [doc[page_num].get_text() for page_num in range(len(doc))]
    finally:
        doc.close()
    return "\n\n".join(pages)


def extract_text_from_docx(data: bytes) -> str:
    """Extract paragraph text, then table cell text, from a .docx file."""
    doc = Document(io.BytesIO(data))
    lines = [paragraph.text for paragraph in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            for cell in row.cells:
                lines.append(cell.text)
    return "\n".join(lines)


def read_document(filename: str, data: bytes) -> str:
    """
    Extract plain text from an uploaded document.

    Args:
        filename: Original file name (extension selects the reader)
        data: Raw file bytes

    Returns:
        Extracted text

    Raises:
        DocumentReadError: unsupported, oversized, unreadable or empty document
    """
    validate_document(filename, len(data))
    suffix = Path(filename).suffix.lower()

    if suffix == ".pdf":
        try:
            text = extract_text_from_pdf(data)
        except Exception as e:
            logger.error(f"PDF parsing error for {filename}: {e}")
            raise DocumentReadError(
                "Failed to read PDF. It might be password protected or a scanned image."
            ) from e
    elif suffix == ".docx":
        try:
            text = extract_text_from_docx(data)
        except Exception as e:
            logger.error(f"Docx parsing error for {filename}: {e}")
            raise DocumentReadError(f"Failed to read Word document: {e}") from e
    else:
        text = data.decode("utf-8", errors="replace")

    if not text.strip():
        raise DocumentReadError("The document appears to be empty or text could not be extracted.")

    logger.info(f"Read {len(text):,} characters from {filename}")
    return text


def bank_name_from_filename(filename: str) -> str:
    """Use the file name without its extension as the initial bank name."""
    return Path(filename).stem
