from __future__ import annotations

import io

from pypdf import PdfReader

from doc_chat.exception.custom_exception import ExtractionError, UnsupportedFileTypeError
from doc_chat.logger import GLOBAL_LOGGER as log
from doc_chat.utils.thread_pool import run_sync

PDF_MIME = "application/pdf"
TEXT_MIME = "text/plain"

SUPPORTED_MIME_TYPES = (PDF_MIME, TEXT_MIME)


def normalize_mime_type(mime_type: str | None) -> str:
    # "text/plain; charset=utf-8" -> "text/plain"
    return (mime_type or "").split(";", 1)[0].strip().lower()


def _pdf_to_text(data: bytes) -> str:
    reader = PdfReader(io.BytesIO(data))
    pages = []
    for page in reader.pages:
        pages.append(page.extract_text() or "")
    return "\n\n".join(pages)


def _plain_to_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


_EXTRACTORS = {
    PDF_MIME: _pdf_to_text,
    TEXT_MIME: _plain_to_text,
}


async def extract_text(data: bytes, mime_type: str, file_name: str = "file") -> str:
    """
    Extract plain text from an uploaded document, dispatching on MIME type.

    Raises:
        UnsupportedFileTypeError: no extractor for this MIME type
        ExtractionError: the extractor failed (e.g. a corrupt PDF)
    """
    mime = normalize_mime_type(mime_type)
    extractor = _EXTRACTORS.get(mime)
    if extractor is None:
        raise UnsupportedFileTypeError(
            "Unsupported file type. Please upload a PDF or TXT file."
        )

    try:
        text = await run_sync(extractor, data)
    except Exception as e:
        log.error("Text extraction failed | file=%s | mime=%s | error=%s", file_name, mime, str(e))
        raise ExtractionError(f"Could not read text from {file_name}", e) from e

    log.info("Text extracted | file=%s | mime=%s | chars=%d", file_name, mime, len(text))
    return text
