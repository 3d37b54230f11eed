from __future__ import annotations

import logging

import fitz

logger = logging.getLogger(__name__)

PDF_SIGNATURE = b"%PDF-"
PDF_CONTENT_TYPES = {"application/pdf", "application/x-pdf"}


class PDFValidationError(ValueError):
    """Raised when an uploaded document cannot be used as a PDF source."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


def validate_pdf_upload(
    *,
    pdf_bytes: bytes,
    filename: str | None,
    content_type: str | None,
    max_bytes: int,
) -> None:
    """Reject uploads before any text extraction or model call happens.

    The byte signature decides whether a file is a PDF; a ``.pdf`` name or a
    PDF content type on other bytes is still rejected.
    """
    if not pdf_bytes:
        raise PDFValidationError("empty", "Uploaded PDF is empty.")
    if max_bytes > 0 and len(pdf_bytes) > max_bytes:
        max_mb = max_bytes // (1024 * 1024)
        raise PDFValidationError("too_large", f"PDF file too large. Max allowed size is {max_mb}MB.")

    normalized_type = (content_type or "").split(";", 1)[0].strip().lower()
    if normalized_type and normalized_type not in PDF_CONTENT_TYPES | {"application/octet-stream"}:
        raise PDFValidationError("not_pdf", "Only PDF files are supported.")
    if not pdf_bytes.lstrip().startswith(PDF_SIGNATURE):
        logger.info("Rejected upload %r without a PDF signature", filename)
        raise PDFValidationError("not_pdf", "Only PDF files are supported.")


def extract_text_from_pdf(pdf_bytes: bytes) -> str:
    try:
        with fitz.open(stream=pdf_bytes, filetype="pdf") as document:
            pages = [page.get_text("text") for page in document]
    except (RuntimeError, ValueError) as exc:
        raise PDFValidationError("unreadable", "Could not read the PDF file.") from exc

    text = "\n\n".join(page.strip() for page in pages if page and page.strip())
    if not text:
        raise PDFValidationError(
            "no_text",
            "No text could be extracted from the PDF. Scanned documents are not supported.",
        )
    logger.debug("Extracted %d characters from %d PDF pages", len(text), len(pages))
    return text
