"""
Embedding Provider - abstraction over the local and cloud embedding backends.

The local backend is used when USE_LOCAL_LLM is enabled and the server answers
its availability probe (cached for the process lifetime); otherwise the cloud
backend is used under the rate-limit retry/failover policy.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from ragchat.core.config import settings
from ragchat.core.exceptions import EmbeddingCountMismatchError
from ragchat.services.availability import LocalAvailability
from ragchat.services.gemini_client import GeminiClient, get_gemini_client
from ragchat.services.ollama_client import OllamaClient, get_ollama_client
from ragchat.services.retry import FallbackController

logger = logging.getLogger(__name__)


def prepare_input(text: str) -> str:
    """Collapse newlines to spaces and truncate to MAX_EMBED_INPUT_CHARS."""
    return text.replace("\n", " ")[:settings.MAX_EMBED_INPUT_CHARS]


class Embedder(ABC):
    """One embedding backend."""

    name: str

    @abstractmethod
    async def embed_one(self, text: str) -> List[float]:
        ...

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        ...


class LocalEmbedder(Embedder):
    name = "local"

    def __init__(self, client: OllamaClient):
        self.client = client

    async def embed_one(self, text: str) -> List[float]:
        vectors = await self.client.embed([text])
        if not vectors:
            raise EmbeddingCountMismatchError(expected=1, received=0)
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return await self.client.embed(texts)


class CloudEmbedder(Embedder):
    name = "cloud"

    def __init__(self, client: GeminiClient):
        self.client = client

    async def embed_one(self, text: str) -> List[float]:
        return await self.client.embed_one(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        return await self.client.embed_batch(texts)


class EmbeddingProvider:
    """
    Routes embedding calls to the local or cloud backend.

    Cloud calls are wrapped by the FallbackController; local calls are not
    retried beyond the transport timeout.
    """

    def __init__(
        self,
        local: Embedder,
        cloud: Embedder,
        availability: LocalAvailability,
        controller: Optional[FallbackController] = None,
    ):
        self.local = local
        self.cloud = cloud
        self.availability = availability
        self.controller = controller or FallbackController(availability)

    async def select(self) -> Embedder:
        """Choose the backend for this call."""
        if await self.availability.is_available():
            return self.local
        return self.cloud

    async def embed_one(self, text: str) -> List[float]:
        """Embed a single text."""
        prepared = prepare_input(text)
        backend = await self.select()
        if backend is self.local:
            return await self.local.embed_one(prepared)
        return await self.controller.run(
            lambda: self.cloud.embed_one(prepared),
            lambda: self.local.embed_one(prepared),
        )

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Embed several texts with a single provider call.

        Raises:
            EmbeddingCountMismatchError: The backend returned a different number
                of vectors than texts were sent
        """
        if not texts:
            return []
        prepared = [prepare_input(t) for t in texts]
        backend = await self.select()
        if backend is self.local:
            vectors = await self.local.embed_batch(prepared)
        else:
            vectors = await self.controller.run(
                lambda: self.cloud.embed_batch(prepared),
                lambda: self.local.embed_batch(prepared),
            )
        if len(vectors) != len(texts):
            raise EmbeddingCountMismatchError(expected=len(texts), received=len(vectors))
        logger.debug(f"Embedded {len(texts)} texts with {backend.name} backend")
        return vectors


# Default provider instance
_default_provider: Optional[EmbeddingProvider] = None


def get_embedding_provider() -> EmbeddingProvider:
    """Get the default embedding provider (singleton)."""
    global _default_provider
    if _default_provider is None:
        ollama = get_ollama_client()
        _default_provider = EmbeddingProvider(
            local=LocalEmbedder(ollama),
            cloud=CloudEmbedder(get_gemini_client()),
            availability=LocalAvailability(
                ollama.is_available, enabled=settings.USE_LOCAL_LLM, name="embeddings"
            ),
        )
    return _default_provider


def reset_embedding_provider() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _default_provider
    _default_provider = None
