"""Raw text extraction for uploaded health documents.

Documents are sorted into a content category first (pdf, text, image or
unknown) from the declared content type, the file extension and finally the
leading magic bytes. Only pdf and text documents yield text; images are
rejected so that no model call is attempted for them.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from healthrecords.errors import TextExtractionError, UnsupportedMediaError

logger = logging.getLogger(__name__)

PDF = "pdf"
TEXT = "text"
IMAGE = "image"
UNKNOWN = "unknown"

TEXT_EXTENSIONS = {".txt", ".text", ".csv", ".md", ".json", ".log"}
IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".bmp", ".tif", ".tiff", ".webp", ".heic"}
TEXT_CONTENT_TYPES = {"application/json", "application/csv"}

_IMAGE_SIGNATURES = (b"\x89PNG\r\n\x1a\n", b"\xff\xd8\xff", b"GIF87a", b"GIF89a", b"BM")


def content_category(filename: str | None, content_type: str | None, data: bytes | None = None) -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    if mime == "application/pdf":
        return PDF
    if mime.startswith("image/"):
        return IMAGE
    if mime.startswith("text/") or mime in TEXT_CONTENT_TYPES:
        return TEXT

    suffix = Path(filename or "").suffix.lower()
    if suffix == ".pdf":
        return PDF
    if suffix in IMAGE_EXTENSIONS:
        return IMAGE
    if suffix in TEXT_EXTENSIONS:
        return TEXT

    head = (data or b"")[:16]
    if head.startswith(b"%PDF-"):
        return PDF
    if head.startswith(_IMAGE_SIGNATURES):
        return IMAGE
    return UNKNOWN


def extract_pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            reader.decrypt("")
        pages = [(page.extract_text() or "").strip() for page in reader.pages]
    except (PyPdfError, ValueError, KeyError, TypeError) as exc:
        raise TextExtractionError(f"PDF could not be opened: {exc}") from exc

    text = "\n\n".join(p for p in pages if p)
    if not text.strip():
        # Scanned, image-only PDFs carry no text layer.
        raise TextExtractionError(f"PDF has no extractable text ({len(pages)} page(s))")
    logger.debug("Extracted %d chars from %d PDF page(s)", len(text), len(pages))
    return text


def decode_plain_text(data: bytes) -> str:
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    if not text.strip():
        raise TextExtractionError("Text document is empty")
    return text


def extract_text(filename: str | None, content_type: str | None, data: bytes) -> tuple[str, str]:
    """Return ``(category, text)`` for a document or raise a typed extraction error."""
    category = content_category(filename, content_type, data)
    if category == PDF:
        return category, extract_pdf_text(data)
    if category == TEXT:
        return category, decode_plain_text(data)
    if category == IMAGE:
        raise UnsupportedMediaError(f"Image documents are not analyzed: {filename or content_type}")
    raise UnsupportedMediaError(f"Unsupported document type: {content_type or filename or 'unknown'}")
