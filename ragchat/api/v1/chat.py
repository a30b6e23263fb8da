"""
Chat API endpoints with session-based conversation management.

Provides endpoints for:
- Sending messages (single response or server-sent event stream)
- Listing the caller's sessions
- Retrieving a session's message history
"""
import json
import logging
from typing import AsyncIterator, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from ragchat.core.deps import get_current_user_id, get_db
from ragchat.core.exceptions import ValidationError
from ragchat.schemas.chat import (
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionListResponse,
    ChatSessionOut,
    MessageOut,
)
from ragchat.services import rag

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])


# =============================================================================
# Helper Functions
# =============================================================================

def parse_session_id(value: Optional[Union[int, str]]) -> Optional[int]:
    """Parse an optional session id; anything but a positive integer is rejected."""
    if value is None or value == "":
        return None
    try:
        session_id = int(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid session ID.")
    if session_id <= 0:
        raise ValidationError("Invalid session ID.")
    return session_id


def format_sse(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def _event_source(request: Request, events: AsyncIterator[rag.ChatEvent]) -> AsyncIterator[str]:
    """Forward chat events as SSE frames until done or the client goes away."""
    try:
        async for event in events:
            if await request.is_disconnected():
                logger.info("Client disconnected, stopping stream")
                break
            yield format_sse(event.to_dict())
    finally:
        await events.aclose()


# =============================================================================
# Chat Message Endpoints
# =============================================================================

@router.post("/message", response_model=ChatResponse)
async def send_message(
    req: ChatRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> ChatResponse:
    """
    Answer a message from the caller's documents.

    If sessionId is missing or does not belong to the caller, a new session
    is created and its id returned.
    """
    session_id = parse_session_id(req.session_id)
    result = await rag.answer(db, req.message or "", user_id, session_id)
    return ChatResponse(response=result.text, session_id=result.session_id)


@router.post("/stream")
async def stream_message(
    req: ChatRequest,
    request: Request,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> StreamingResponse:
    """
    Stream an answer as server-sent events.

    Events are `{"text": ...}` deltas followed by `{"done": true, "sessionId": ...}`
    or `{"error": ...}`.
    """
    session_id = parse_session_id(req.session_id)
    # Validation and session setup happen before the stream opens
    turn = await rag.start_turn(db, req.message or "", user_id, session_id)

    return StreamingResponse(
        _event_source(request, rag.stream_turn(db, turn)),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


# =============================================================================
# History Endpoints
# =============================================================================

@router.get("/sessions", response_model=ChatSessionListResponse)
def list_sessions(
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> ChatSessionListResponse:
    """List the caller's chat sessions, newest first."""
    sessions = rag.list_sessions(db, user_id)
    return ChatSessionListResponse(
        sessions=[ChatSessionOut.model_validate(s) for s in sessions],
    )


@router.get("/sessions/{session_id}/messages", response_model=ChatHistoryResponse)
def get_session_messages(
    session_id: str,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
) -> ChatHistoryResponse:
    """Get a session's messages, oldest first."""
    sess_id = parse_session_id(session_id)
    messages = rag.list_messages(db, sess_id, user_id)
    return ChatHistoryResponse(
        messages=[MessageOut.model_validate(m) for m in messages],
    )
