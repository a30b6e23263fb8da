"""
Common RAG (Retrieval-Augmented Generation) utilities.

This module provides shared functionality for the chat flow:
- Conversation history retrieval
- Grounding instruction construction (document context vs. site fallback)
- LLM message building
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ragchat.core.config import settings
from ragchat.core.site_content import DEFAULT_SITE_CONTEXT
from ragchat.services import store

logger = logging.getLogger(__name__)

CONTEXT_SEPARATOR = "\n\n---\n\n"

DOCUMENT_ANSWER_MISSING = "I don't have that information in your uploaded documents."
NO_DOCUMENT_MATCH = (
    "I couldn't find relevant information in your documents. "
    "Please upload a PDF or rephrase your question."
)

GROUNDED_INSTRUCTION = (
    "You are a RAG assistant. Answer ONLY from the context below "
    "(the user's uploaded PDF/documents). Do NOT use external knowledge.\n"
    "\n"
    "STRICT RULES:\n"
    "1. Answer ONLY using the provided context. Every fact in your response must come from the context.\n"
    '2. If the context does NOT contain the answer, respond: "' + DOCUMENT_ANSWER_MISSING + '"\n'
    "3. Be concise and accurate. Quote or paraphrase from the context when possible.\n"
    "4. Do not make up information or use general knowledge.\n"
    "\n"
    "Context:\n"
)

FALLBACK_INSTRUCTION = (
    "You are a RAG assistant. No relevant document content was found. "
    "Use only the fallback below for site/service questions. "
    'Otherwise say: "' + NO_DOCUMENT_MATCH + '"\n'
    "\n"
    "Context:\n"
)


def get_conversation_history(
    db: Session,
    session_id: int,
    max_messages: Optional[int] = None,
) -> List[Dict[str, str]]:
    """
    Retrieve conversation history from a session for LLM context.

    Args:
        db: Database session
        session_id: Chat session ID
        max_messages: Maximum number of messages to include (most recent kept)

    Returns:
        List of message dicts with 'role' and 'content' keys, oldest first
    """
    if max_messages is None:
        max_messages = settings.MAX_CHAT_HISTORY_MESSAGES

    messages = store.get_recent_messages(db, session_id, max_messages)
    return [{"role": msg.role, "content": msg.content} for msg in messages]


def build_context_text(contexts: List[str], separator: str = CONTEXT_SEPARATOR) -> str:
    return separator.join(contexts)


def build_system_instruction(contexts: List[str]) -> str:
    """
    Build the grounding instruction.

    With retrieved chunks the model must answer strictly from them; without any
    it may only use the fixed site description and otherwise says it found
    nothing.
    """
    if contexts:
        context = (
            "Content from the user's uploaded documents (PDF/text):\n\n"
            + build_context_text(contexts)
        )
        return GROUNDED_INSTRUCTION + context

    context = "No relevant content from uploaded documents. Use only this fallback:" + DEFAULT_SITE_CONTEXT
    return FALLBACK_INSTRUCTION + context


def build_llm_messages(
    conversation_history: List[Dict[str, str]],
    user_content: str,
) -> List[Dict[str, str]]:
    """
    Build LLM messages list. The system instruction is passed separately.

    Args:
        conversation_history: Previous conversation messages
        user_content: Current user message content

    Returns:
        List of message dicts for LLM
    """
    messages = list(conversation_history)
    messages.append({"role": "user", "content": user_content})
    return messages


def session_title(query: str, length: Optional[int] = None) -> str:
    """Title a new session after the first characters of its first message."""
    length = length or settings.SESSION_TITLE_LENGTH
    return query[:length] + "..." if len(query) > length else query
