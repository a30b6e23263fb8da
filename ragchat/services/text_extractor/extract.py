"""
Upload validation and text extraction.

PDF parsing runs in a worker thread and is bounded by PDF_PARSE_TIMEOUT;
everything else is decoded as UTF-8.
"""
import asyncio
import logging
from typing import Optional

from ragchat.core.config import settings
from ragchat.core.exceptions import ExtractionError, ValidationError
from .pdf import extract_text_from_pdf_bytes
from .txt import extract_text_from_txt_bytes

logger = logging.getLogger(__name__)

ALLOWED_CONTENT_TYPES = {"application/pdf", "text/plain", "text/html"}
ALLOWED_EXTENSIONS = (".txt", ".pdf")
PDF_CONTENT_TYPE = "application/pdf"


def _is_pdf(filename: str, content_type: Optional[str]) -> bool:
    if content_type:
        return content_type == PDF_CONTENT_TYPE
    return filename.lower().endswith(".pdf")


def validate_upload(filename: str, content_type: Optional[str], data: bytes) -> None:
    """
    Check the size and type of an uploaded file.

    Raises:
        ValidationError: Empty, too large, or unsupported file
    """
    if not data:
        raise ValidationError("No file uploaded.")

    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(data) > max_bytes:
        raise ValidationError(f"File is too large (max {settings.MAX_UPLOAD_SIZE_MB} MB).")

    name = (filename or "").lower()
    if content_type not in ALLOWED_CONTENT_TYPES and not name.endswith(ALLOWED_EXTENSIONS):
        raise ValidationError("Only PDF, TXT and HTML files are allowed.")


async def extract_text(filename: str, content_type: Optional[str], data: bytes) -> str:
    """
    Extract raw text from uploaded file content.

    Raises:
        ExtractionError: The PDF is unreadable, timed out, or has no text layer
    """
    if not _is_pdf(filename, content_type):
        return extract_text_from_txt_bytes(data)

    try:
        text = await asyncio.wait_for(
            asyncio.to_thread(extract_text_from_pdf_bytes, data),
            timeout=settings.PDF_PARSE_TIMEOUT,
        )
    except asyncio.TimeoutError:
        raise ExtractionError("PDF parsing timed out")
    except Exception as e:
        logger.warning(f"PDF parsing failed for {filename}: {e}")
        raise ExtractionError(str(e) or "Could not read PDF")

    if len(text) < settings.MIN_DOCUMENT_TEXT_LENGTH:
        raise ExtractionError("PDF has no extractable text (may be scanned/image)")
    return text
