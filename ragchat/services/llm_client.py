"""
Generation Provider - abstraction over the local and cloud chat backends.

Mirrors the embedding provider: the local backend is used when enabled and
reachable (its own cached probe), otherwise the cloud backend runs under the
rate-limit retry/failover policy. Streaming responses are exposed as a
DeltaStream.
"""
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Dict, List, Optional

from ragchat.core.config import settings
from ragchat.services.availability import LocalAvailability
from ragchat.services.gemini_client import GeminiClient, get_gemini_client
from ragchat.services.ollama_client import OllamaClient, get_ollama_client
from ragchat.services.retry import FallbackController

logger = logging.getLogger(__name__)

EMPTY_RESPONSE = "Sorry, I could not generate a response."


class DeltaStream:
    """
    Lazy, finite, forward-only sequence of text deltas.

    Iterating twice does not restart generation. `aclose()` stops forwarding
    and releases the underlying connection; it is safe to call more than once.
    """

    def __init__(self, source: AsyncIterator[str]):
        self._source = source
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "DeltaStream":
        return self

    async def __anext__(self) -> str:
        if self._closed:
            raise StopAsyncIteration
        try:
            delta = await self._source.__anext__()
        except StopAsyncIteration:
            self._closed = True
            raise
        return delta

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()


class Generator(ABC):
    """One chat completion backend."""

    name: str

    @abstractmethod
    async def complete(self, messages: List[Dict], system_instruction: str) -> str:
        ...

    @abstractmethod
    def stream(self, messages: List[Dict], system_instruction: str) -> AsyncIterator[str]:
        ...


class LocalGenerator(Generator):
    """System entries in history are kept; the instruction is prepended as one more."""

    name = "local"

    def __init__(self, client: OllamaClient):
        self.client = client

    async def complete(self, messages: List[Dict], system_instruction: str) -> str:
        return await self.client.chat(messages, system_instruction)

    def stream(self, messages: List[Dict], system_instruction: str) -> AsyncIterator[str]:
        return self.client.chat_stream(messages, system_instruction)


class CloudGenerator(Generator):
    """System entries in history are dropped; the instruction goes out-of-band."""

    name = "cloud"

    def __init__(self, client: GeminiClient):
        self.client = client

    async def complete(self, messages: List[Dict], system_instruction: str) -> str:
        return await self.client.generate(messages, system_instruction)

    def stream(self, messages: List[Dict], system_instruction: str) -> AsyncIterator[str]:
        return self.client.generate_stream(messages, system_instruction)


class GenerationProvider:
    """Routes chat completions to the local or cloud backend."""

    def __init__(
        self,
        local: Generator,
        cloud: Generator,
        availability: LocalAvailability,
        controller: Optional[FallbackController] = None,
    ):
        self.local = local
        self.cloud = cloud
        self.availability = availability
        self.controller = controller or FallbackController(availability)

    async def select(self) -> Generator:
        """Choose the backend for this call."""
        if await self.availability.is_available():
            return self.local
        return self.cloud

    async def complete(self, messages: List[Dict], system_instruction: str) -> str:
        """
        Single-shot chat completion.

        Args:
            messages: Ordered history of {'role', 'content'} dicts
            system_instruction: Grounding instruction

        Returns:
            The response text (a fixed apology if the backend returned nothing)
        """
        backend = await self.select()
        logger.debug(f"Generating completion with {backend.name} backend")
        if backend is self.local:
            text = await self.local.complete(messages, system_instruction)
        else:
            text = await self.controller.run(
                lambda: self.cloud.complete(messages, system_instruction),
                lambda: self.local.complete(messages, system_instruction),
            )
        return text or EMPTY_RESPONSE

    async def complete_stream(self, messages: List[Dict], system_instruction: str) -> DeltaStream:
        """
        Streaming chat completion.

        Nothing is requested until the returned stream is iterated. The caller
        concatenates deltas to rebuild the full response.
        """
        backend = await self.select()
        logger.debug(f"Streaming completion with {backend.name} backend")
        if backend is self.local:
            return DeltaStream(self.local.stream(messages, system_instruction))
        return DeltaStream(self.controller.stream(
            lambda: self.cloud.stream(messages, system_instruction),
            lambda: self.local.stream(messages, system_instruction),
        ))


# Default provider instance
_default_provider: Optional[GenerationProvider] = None


def get_generation_provider() -> GenerationProvider:
    """Get the default generation provider (singleton)."""
    global _default_provider
    if _default_provider is None:
        ollama = get_ollama_client()
        _default_provider = GenerationProvider(
            local=LocalGenerator(ollama),
            cloud=CloudGenerator(get_gemini_client()),
            availability=LocalAvailability(
                ollama.is_available, enabled=settings.USE_LOCAL_LLM, name="generation"
            ),
        )
    return _default_provider


def reset_generation_provider() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _default_provider
    _default_provider = None
