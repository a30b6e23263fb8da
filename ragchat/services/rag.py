"""
RAG (Retrieval-Augmented Generation) chat service with session-based history.

This module handles:
- Resolving or lazily creating the user's chat session
- Brute-force similarity retrieval over the user's chunks
- Grounded generation, single-shot and streaming
- Recording both sides of the conversation
"""
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy.orm import Session

from ragchat.core.exceptions import (
    NotFoundError,
    ValidationError,
    describe_provider_error,
    to_app_exception,
)
from ragchat.models.chat_session import ChatSession
from ragchat.models.message import ChatMessage
from ragchat.services import store
from ragchat.services.embedding import EmbeddingProvider, get_embedding_provider
from ragchat.services.llm_client import EMPTY_RESPONSE, GenerationProvider, get_generation_provider
from ragchat.services.ranker import rank_chunks
from ragchat.services.rag_utils import (
    build_llm_messages,
    build_system_instruction,
    get_conversation_history,
    session_title,
)

logger = logging.getLogger(__name__)


@dataclass
class ChatAnswer:
    text: str
    session_id: int


@dataclass
class ChatEvent:
    """One server-sent event of a streamed answer."""
    text: Optional[str] = None
    done: bool = False
    session_id: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        if self.error is not None:
            return {"error": self.error}
        if self.done:
            return {"done": True, "sessionId": self.session_id}
        return {"text": self.text}


@dataclass
class ChatTurn:
    """Everything generation needs, prepared before any output is produced."""
    session_id: int
    messages: List[Dict[str, str]]
    system_instruction: str
    context_count: int


async def retrieve_context(
    db: Session,
    query: str,
    user_id: str,
    embedder: EmbeddingProvider,
) -> List[str]:
    """
    Rank the user's chunks against the query.

    Only chunks of documents owned by `user_id` are loaded. No embedding call
    is made when the user has no chunks.
    """
    candidates = store.load_user_chunks(db, user_id)
    if not candidates:
        return []
    query_vector = await embedder.embed_one(query)
    return rank_chunks(query_vector, candidates)


def resolve_session(db: Session, query: str, user_id: str, session_id: Optional[int]) -> ChatSession:
    """Reuse the caller's session, or create one titled after the query."""
    if session_id is not None:
        session = store.get_user_session(db, session_id, user_id)
        if session is not None:
            return session
    return store.create_session(db, user_id, session_title(query))


async def start_turn(
    db: Session,
    query: str,
    user_id: str,
    session_id: Optional[int] = None,
    embedder: Optional[EmbeddingProvider] = None,
) -> ChatTurn:
    """
    Prepare a chat turn.

    The user's message is recorded here, before generation, so a later failure
    still leaves it in the session. Retrieval failures are logged and the turn
    continues without document context.

    Raises:
        ValidationError: Empty query
    """
    if not query or not query.strip():
        raise ValidationError("Message is required.")

    embedder = embedder or get_embedding_provider()
    session = resolve_session(db, query, user_id, session_id)

    history = get_conversation_history(db, session.id)
    store.add_message(db, session.id, "user", query)

    try:
        contexts = await retrieve_context(db, query, user_id, embedder)
    except Exception as e:
        logger.error(f"Embedding/retrieval error (continuing with empty context): {e}")
        contexts = []

    logger.debug(f"Session {session.id}: {len(history)} history messages, {len(contexts)} context chunks")
    return ChatTurn(
        session_id=session.id,
        messages=build_llm_messages(history, query),
        system_instruction=build_system_instruction(contexts),
        context_count=len(contexts),
    )


async def answer(
    db: Session,
    query: str,
    user_id: str,
    session_id: Optional[int] = None,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[GenerationProvider] = None,
) -> ChatAnswer:
    """
    Answer a query grounded in the user's documents.

    Returns:
        ChatAnswer with the response text and the resolved session id

    Raises:
        ValidationError: Empty query
        ProviderRateLimitError, ProviderAuthError, LLMConnectionError:
            Generation failed after retries and failover
    """
    generator = generator or get_generation_provider()
    turn = await start_turn(db, query, user_id, session_id, embedder)
    logger.info(f"Session {turn.session_id}: answering with {turn.context_count} context chunks")

    try:
        text = await generator.complete(turn.messages, turn.system_instruction)
    except Exception as e:
        logger.error(f"Chat generation failed for session {turn.session_id}: {e}")
        raise to_app_exception(e) from e

    store.add_message(db, turn.session_id, "assistant", text)
    return ChatAnswer(text=text, session_id=turn.session_id)


async def stream_turn(
    db: Session,
    turn: ChatTurn,
    generator: Optional[GenerationProvider] = None,
) -> AsyncIterator[ChatEvent]:
    """
    Stream the response to a prepared turn.

    Yields text events as deltas arrive, then one terminal event: `done` with
    the session id, or `error`. Errors are never raised once output has begun.
    Closing the iterator early closes the upstream stream and records nothing.
    """
    generator = generator or get_generation_provider()
    parts: List[str] = []
    logger.info(f"Session {turn.session_id}: streaming with {turn.context_count} context chunks")
    stream = None
    try:
        stream = await generator.complete_stream(turn.messages, turn.system_instruction)
        async for delta in stream:
            parts.append(delta)
            yield ChatEvent(text=delta)
    except Exception as e:
        logger.error(f"Stream chat error for session {turn.session_id}: {e}")
        yield ChatEvent(error=describe_provider_error(e))
        return
    finally:
        if stream is not None:
            await stream.aclose()

    full_content = "".join(parts)
    if not full_content:
        full_content = EMPTY_RESPONSE
        yield ChatEvent(text=full_content)

    try:
        store.add_message(db, turn.session_id, "assistant", full_content)
    except Exception as e:
        logger.exception(f"Failed to record assistant message for session {turn.session_id}")
        yield ChatEvent(error=describe_provider_error(e))
        return

    yield ChatEvent(done=True, session_id=turn.session_id)


async def answer_stream(
    db: Session,
    query: str,
    user_id: str,
    session_id: Optional[int] = None,
    embedder: Optional[EmbeddingProvider] = None,
    generator: Optional[GenerationProvider] = None,
) -> AsyncIterator[ChatEvent]:
    """
    Streaming variant of `answer`.

    ValidationError is raised before the first event; every later failure is
    reported as a terminal error event.
    """
    turn = await start_turn(db, query, user_id, session_id, embedder)
    async for event in stream_turn(db, turn, generator):
        yield event


def list_sessions(db: Session, user_id: str) -> List[ChatSession]:
    """The user's sessions, newest first."""
    return store.list_sessions(db, user_id)


def list_messages(db: Session, session_id: int, user_id: str) -> List[ChatMessage]:
    """
    Messages of one of the user's sessions, oldest first.

    Raises:
        NotFoundError: The session does not exist or belongs to another user
    """
    session = store.get_user_session(db, session_id, user_id)
    if session is None:
        raise NotFoundError("Session not found.")
    return store.list_messages(db, session.id)
