"""PDF-to-text parser backed by PyMuPDF."""

import logging
from pathlib import Path

import fitz  # PyMuPDF

from docdigest.core.errors import ExtractionError
from docdigest.parsers.models import ParsedDocument, PdfMetadata

logger = logging.getLogger(__name__)


# ── Public API ───────────────────────────────────────────────────────


def parse_pdf(pdf_path: str) -> ParsedDocument:
    """Extract the full text and metadata of a PDF.

    Raises ExtractionError when the file is missing, empty, or not a PDF.
    """
    path = Path(pdf_path)
    try:
        size = path.stat().st_size
        doc = fitz.open(str(path))
    except (OSError, RuntimeError, ValueError) as exc:
        raise ExtractionError(f"Cannot open {pdf_path}: {exc}") from exc

    try:
        if not doc.is_pdf:
            raise ExtractionError(f"Not a PDF: {pdf_path}")
        text = "".join(page.get_text() for page in doc)
        page_count = len(doc)
        info = _clean_info(doc.metadata)
    except RuntimeError as exc:
        raise ExtractionError(f"Cannot read {pdf_path}: {exc}") from exc
    finally:
        doc.close()

    logger.info("Parsed %s: %d pages, %d chars", pdf_path, page_count, len(text))
    return ParsedDocument(
        text=text,
        metadata=PdfMetadata(
            path=pdf_path,
            size_bytes=size,
            page_count=page_count,
            info=info,
        ),
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _clean_info(raw: dict | None) -> dict[str, str]:
    """Drop empty document-info entries (PyMuPDF reports them as '' or None)."""
    if not raw:
        return {}
    return {k: str(v) for k, v in raw.items() if v}
