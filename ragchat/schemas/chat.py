"""
Chat schemas for request/response validation.
"""
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ChatRequest(BaseModel):
    """Request schema for sending a chat message."""
    model_config = ConfigDict(populate_by_name=True)

    # Emptiness is checked by the service so that it maps to a 400
    message: Optional[str] = Field(None, max_length=10000)
    session_id: Optional[Union[int, str]] = Field(
        None,
        alias="sessionId",
        description="Session ID. If missing or not yours, a new session is created.",
    )


class ChatResponse(BaseModel):
    """Response schema for a chat message."""
    model_config = ConfigDict(populate_by_name=True)

    response: str
    session_id: int = Field(..., serialization_alias="sessionId")


class ChatSessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    created_at: Optional[datetime] = None


class ChatSessionListResponse(BaseModel):
    sessions: List[ChatSessionOut]


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    role: str
    content: str
    created_at: Optional[datetime] = None


class ChatHistoryResponse(BaseModel):
    messages: List[MessageOut]
