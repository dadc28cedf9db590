"""Text extraction from raw file bytes.

extract_text(data, mime_type) returns the full text plus, for PDFs, one entry per page so
that chunks can carry exact page numbers. Unsupported mime types and unreadable PDFs yield
empty text rather than an error; the sync engine treats that as a soft skip.
"""
import io
import logging
from dataclasses import dataclass
from typing import List, Optional

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from archivist.utils import normalize_whitespace

logger = logging.getLogger(__name__)

PDF_MIME = "application/pdf"
TEXT_MIMES = {"text/plain", "text/markdown"}
# Exported as text/plain by the Drive source tree before extraction
GOOGLE_DOC_MIME = "application/vnd.google-apps.document"


@dataclass
class Extraction:
    full_text: str
    pages: Optional[List[str]] = None


def extract_pdf_pages(data: bytes) -> List[str]:
    """Per-page text with runs of whitespace collapsed."""
    reader = PdfReader(io.BytesIO(data))
    return [normalize_whitespace(page.extract_text() or "") for page in reader.pages]


def supported_mime(mime_type: str) -> bool:
    """True when a file of this type can yield text, so fetching it is worthwhile."""
    return mime_type == PDF_MIME or mime_type in TEXT_MIMES or mime_type == GOOGLE_DOC_MIME


def extract_text(data: bytes, mime_type: str) -> Extraction:
    """Extract text from raw bytes according to their mime type.

    Args:
        data: Raw file content.
        mime_type: Content type of `data`.

    Returns:
        Extraction: Full text (possibly empty) and optional per-page text.
    """
    if mime_type == PDF_MIME:
        try:
            pages = extract_pdf_pages(data)
        except (PyPdfError, ValueError, KeyError) as e:
            logger.warning("Could not read PDF (%d bytes): %s", len(data), e)
            return Extraction(full_text="")
        return Extraction(full_text="\n\n".join(pages), pages=pages)
    if mime_type in TEXT_MIMES:
        return Extraction(full_text=data.decode("utf-8", errors="replace"))
    logger.debug("Unsupported mime type for extraction: %s", mime_type)
    return Extraction(full_text="")
