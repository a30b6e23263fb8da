from ragchat.db.base import Base  # noqa: F401

from .document import Document, DocumentChunk  # noqa: F401
from .chat_session import ChatSession  # noqa: F401
from .message import ChatMessage  # noqa: F401
