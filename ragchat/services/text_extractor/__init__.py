from .pdf import extract_text_from_pdf_bytes
from .txt import extract_text_from_txt_bytes
from .extract import extract_text, validate_upload

__all__ = [
    "extract_text",
    "extract_text_from_pdf_bytes",
    "extract_text_from_txt_bytes",
    "validate_upload",
]
