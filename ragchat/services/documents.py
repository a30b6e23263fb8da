"""
Document services used by the upload/text-submission collaborator.

Each helper stores the document first, then runs ingestion. When ingestion
fails the document row and any chunks already stored are kept, and the
IngestionError propagates to the caller.
"""
import logging
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ragchat.core.config import settings
from ragchat.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ragchat.models.document import Document
from ragchat.services import store
from ragchat.services.embedding import EmbeddingProvider
from ragchat.services.ingestion import ingest
from ragchat.services.text_extractor import extract_text, validate_upload

logger = logging.getLogger(__name__)


async def add_text_document(
    db: Session,
    user_id: str,
    title: Optional[str],
    content: str,
    embedder: Optional[EmbeddingProvider] = None,
) -> Tuple[Document, int]:
    """
    Store manually entered text as a document and index it.

    Returns:
        The document and the number of chunks indexed
    """
    if not content or len(content.strip()) < settings.MIN_DOCUMENT_TEXT_LENGTH:
        raise ValidationError(
            f"Content must be at least {settings.MIN_DOCUMENT_TEXT_LENGTH} characters."
        )

    filename = f"{title or 'Untitled'}.txt"
    document = store.create_document(db, user_id, filename, filename, content)
    count = await ingest(db, content, document.id, embedder=embedder)
    return document, count


async def add_uploaded_document(
    db: Session,
    user_id: str,
    filename: str,
    data: bytes,
    content_type: Optional[str] = None,
    embedder: Optional[EmbeddingProvider] = None,
) -> Tuple[Document, int]:
    """
    Extract text from an uploaded file, store it and index it.

    The stored content is truncated to MAX_DOCUMENT_CONTENT_CHARS; the full
    extracted text is chunked.

    Raises:
        ValidationError: Bad file, or too little text
        ExtractionError: Unreadable content; nothing is stored
    """
    validate_upload(filename, content_type, data)
    text = await extract_text(filename, content_type, data)

    if not text or len(text.strip()) < settings.MIN_DOCUMENT_TEXT_LENGTH:
        raise ValidationError("File has insufficient text content.")

    document = store.create_document(
        db,
        user_id,
        filename,
        filename,
        text[:settings.MAX_DOCUMENT_CONTENT_CHARS],
    )
    count = await ingest(db, text, document.id, embedder=embedder)
    logger.info(f"Uploaded {filename} as document {document.id} ({count} chunks)")
    return document, count


def list_documents(db: Session, user_id: str) -> List[Document]:
    return store.list_documents(db, user_id)


def delete_document(db: Session, document_id: int, user_id: str) -> None:
    """
    Delete a user's document and its chunks.

    Raises:
        NotFoundError: No such document
        ForbiddenError: The document belongs to another user
    """
    document = store.get_document(db, document_id)
    if document is None:
        raise NotFoundError("Document not found.")
    if document.user_id != user_id:
        raise ForbiddenError("Not authorized.")
    store.delete_document(db, document)
