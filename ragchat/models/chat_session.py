"""
ChatSession model for managing conversation sessions.

Sessions are created lazily on a user's first message and titled from it.
"""
from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ragchat.db.base import Base


class ChatSession(Base):
    """
    Represents a chat session owned by one user.

    A session groups related messages together, allowing the LLM to maintain
    context across multiple exchanges within the same conversation thread.
    """

    __tablename__ = "chat_sessions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)

    # Derived from the first message
    title = Column(String(255), nullable=False, default="New Chat")

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="ChatMessage.id",
    )
