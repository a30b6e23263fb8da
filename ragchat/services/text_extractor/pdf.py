import io
from typing import List

import pdfplumber


def extract_text_from_pdf_bytes(data: bytes) -> str:
    """Return the text of every page of a PDF, joined by newlines."""
    pages: List[str] = []
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        for page in pdf.pages:
            text = page.extract_text() or ""
            if text.strip():
                pages.append(text)
    return "\n".join(pages).strip()
