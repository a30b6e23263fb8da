"""
Pytest configuration and fixtures for the test suite.
"""
import os
import re
from typing import AsyncIterator, Dict, Generator, List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session

# Set test environment before importing app
os.environ["ENV"] = "development"
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite:///./test.db")
os.environ["CLOUD_API_KEY"] = ""
os.environ["USE_LOCAL_LLM"] = "false"

from ragchat.main import app
from ragchat.db.base import Base
from ragchat.core.deps import get_db
from ragchat.models.document import Document
from ragchat.services.availability import LocalAvailability
from ragchat.services.embedding import Embedder, EmbeddingProvider, reset_embedding_provider
from ragchat.services.llm_client import GenerationProvider, Generator as ChatGenerator, reset_generation_provider
from ragchat.services.retry import FallbackController


SQLALCHEMY_TEST_DATABASE_URL = os.environ["DATABASE_URL"]

engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False} if "sqlite" in SQLALCHEMY_TEST_DATABASE_URL else {},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

VOCABULARY = ["warranty", "months", "purchase", "refund", "shipping", "price", "battery", "color"]


def keyword_vector(text: str) -> List[float]:
    """Bag-of-words vector over a tiny vocabulary; unrelated text maps to zeros."""
    words = re.findall(r"[a-z]+", text.lower())
    return [float(words.count(term)) for term in VOCABULARY]


async def no_sleep(seconds: float) -> None:
    return None


class FakeEmbedder(Embedder):
    """In-memory embedding backend that records every call."""

    name = "cloud"

    def __init__(self, fail_on_call: Optional[int] = None, error: Optional[Exception] = None):
        self.batch_calls: List[List[str]] = []
        self.single_calls: List[str] = []
        self.fail_on_call = fail_on_call
        self.error = error or RuntimeError("embedding backend exploded")

    async def embed_one(self, text: str) -> List[float]:
        self.single_calls.append(text)
        return keyword_vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))
        if self.fail_on_call is not None and len(self.batch_calls) == self.fail_on_call:
            raise self.error
        return [keyword_vector(t) for t in texts]


class FakeGenerator(ChatGenerator):
    """
    Scripted chat backend.

    `deltas` are streamed in order; if `fail_after` is set the stream raises
    `error` once that many deltas have been produced.
    """

    name = "cloud"

    def __init__(
        self,
        reply: str = "The warranty period is 12 months.",
        deltas: Optional[List[str]] = None,
        fail_after: Optional[int] = None,
        error: Optional[Exception] = None,
    ):
        self.reply = reply
        self.deltas = deltas if deltas is not None else ["The warranty ", "period is ", "12 months."]
        self.fail_after = fail_after
        self.error = error or RuntimeError("connection reset by peer")
        self.calls: List[Dict] = []
        self.closed = False

    async def complete(self, messages: List[Dict], system_instruction: str) -> str:
        self.calls.append({"messages": list(messages), "system_instruction": system_instruction})
        if self.fail_after == 0:
            raise self.error
        return self.reply

    async def _stream(self) -> AsyncIterator[str]:
        try:
            for i, delta in enumerate(self.deltas):
                if self.fail_after is not None and i == self.fail_after:
                    raise self.error
                yield delta
            if self.fail_after is not None and self.fail_after >= len(self.deltas):
                raise self.error
        finally:
            self.closed = True

    def stream(self, messages: List[Dict], system_instruction: str) -> AsyncIterator[str]:
        self.calls.append({"messages": list(messages), "system_instruction": system_instruction})
        return self._stream()


def offline_availability() -> LocalAvailability:
    async def probe() -> bool:
        return False
    return LocalAvailability(probe, enabled=False, name="test")


def make_embedding_provider(backend: Embedder) -> EmbeddingProvider:
    availability = offline_availability()
    return EmbeddingProvider(
        local=backend,
        cloud=backend,
        availability=availability,
        controller=FallbackController(availability, sleep=no_sleep),
    )


def make_generation_provider(backend: ChatGenerator) -> GenerationProvider:
    availability = offline_availability()
    return GenerationProvider(
        local=backend,
        cloud=backend,
        availability=availability,
        controller=FallbackController(availability, sleep=no_sleep),
    )


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""

    def override_get_db_with_session():
        """Return the test database session."""
        yield db

    app.dependency_overrides[get_db] = override_get_db_with_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    reset_embedding_provider()
    reset_generation_provider()


@pytest.fixture
def user_headers() -> dict:
    return {"X-User-Id": "user-alice"}


@pytest.fixture
def other_user_headers() -> dict:
    return {"X-User-Id": "user-bob"}


@pytest.fixture
def warranty_document(db: Session) -> Document:
    """A document owned by user-alice with one embedded chunk."""
    from ragchat.services import store

    text = "The warranty period is 12 months from purchase date."
    document = store.create_document(db, "user-alice", "warranty.txt", "warranty.txt", text)
    store.add_chunks(db, document.id, [(text, keyword_vector(text))])
    return document
