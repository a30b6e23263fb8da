"""
Persistence adapter for documents, chunks, sessions and messages.

Every read is filtered by the owning user id; nothing is shared across users.
"""
import json
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ragchat.models.document import Document, DocumentChunk
from ragchat.models.chat_session import ChatSession
from ragchat.models.message import ChatMessage

logger = logging.getLogger(__name__)


@dataclass
class StoredChunk:
    """A chunk loaded for ranking: its text and decoded embedding."""
    content: str
    embedding: List[float]


def decode_embedding(raw) -> List[float]:
    """
    Decode a stored embedding.

    Malformed or legacy values decode to an empty vector so that they score 0
    during ranking instead of failing the query.
    """
    if isinstance(raw, list):
        value = raw
    elif not raw:
        return []
    else:
        try:
            value = json.loads(raw)
        except (TypeError, ValueError):
            return []
    if not isinstance(value, list) or not all(_is_number(x) for x in value):
        return []
    return value


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


# =============================================================================
# Documents and chunks
# =============================================================================

def create_document(
    db: Session,
    user_id: str,
    filename: str,
    original_name: str,
    content: Optional[str],
) -> Document:
    document = Document(
        user_id=user_id,
        filename=filename,
        original_name=original_name,
        content=content,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


def get_document(db: Session, document_id: int) -> Optional[Document]:
    return db.query(Document).filter(Document.id == document_id).first()


def list_documents(db: Session, user_id: str) -> List[Document]:
    return db.query(Document).filter(
        Document.user_id == user_id
    ).order_by(
        Document.created_at.desc(), Document.id.desc()
    ).all()


def delete_document(db: Session, document: Document) -> None:
    """Delete a document, removing its chunks first."""
    db.query(DocumentChunk).filter(
        DocumentChunk.document_id == document.id
    ).delete(synchronize_session=False)
    db.delete(document)
    db.commit()


def add_chunks(
    db: Session,
    document_id: int,
    pairs: Sequence[Tuple[str, List[float]]],
) -> int:
    """Persist (text, vector) pairs for a document. Returns the number stored."""
    for content, vector in pairs:
        db.add(DocumentChunk(
            document_id=document_id,
            content=content,
            embedding=json.dumps(list(vector)),
        ))
    db.commit()
    return len(pairs)


def load_user_chunks(db: Session, user_id: str) -> List[StoredChunk]:
    """Load every chunk belonging to documents owned by the user."""
    rows = db.query(DocumentChunk.content, DocumentChunk.embedding).join(
        Document, Document.id == DocumentChunk.document_id
    ).filter(
        Document.user_id == user_id
    ).order_by(
        DocumentChunk.id.asc()
    ).all()

    return [
        StoredChunk(content=content, embedding=decode_embedding(embedding))
        for content, embedding in rows
    ]


# =============================================================================
# Sessions and messages
# =============================================================================

def get_user_session(db: Session, session_id: int, user_id: str) -> Optional[ChatSession]:
    return db.query(ChatSession).filter(
        ChatSession.id == session_id,
        ChatSession.user_id == user_id,
    ).first()


def create_session(db: Session, user_id: str, title: str) -> ChatSession:
    session = ChatSession(user_id=user_id, title=title)
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.debug(f"Created chat session {session.id} for user {user_id}")
    return session


def add_message(db: Session, session_id: int, role: str, content: str) -> ChatMessage:
    message = ChatMessage(session_id=session_id, role=role, content=content)
    db.add(message)
    db.commit()
    db.refresh(message)
    return message


def get_recent_messages(db: Session, session_id: int, limit: int) -> List[ChatMessage]:
    """Return the last `limit` messages of a session in chronological order."""
    newest_first = db.query(ChatMessage).filter(
        ChatMessage.session_id == session_id
    ).order_by(
        ChatMessage.created_at.desc(), ChatMessage.id.desc()
    ).limit(limit).all()
    return list(reversed(newest_first))


def list_sessions(db: Session, user_id: str) -> List[ChatSession]:
    return db.query(ChatSession).filter(
        ChatSession.user_id == user_id
    ).order_by(
        ChatSession.created_at.desc(), ChatSession.id.desc()
    ).all()


def list_messages(db: Session, session_id: int) -> List[ChatMessage]:
    return db.query(ChatMessage).filter(
        ChatMessage.session_id == session_id
    ).order_by(
        ChatMessage.created_at.asc(), ChatMessage.id.asc()
    ).all()
