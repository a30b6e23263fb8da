"""
Ollama Client - local inference server over its native HTTP API.

Endpoints used:
- GET  /api/tags   availability probe
- POST /api/embed  batched embeddings
- POST /api/chat   chat completion (single-shot and newline-delimited JSON stream)
"""
import json
import logging
from typing import AsyncGenerator, Dict, List, Optional

import httpx

from ragchat.core.config import settings

logger = logging.getLogger(__name__)


class OllamaError(Exception):
    """Non-2xx response from the local server."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class OllamaClient:
    """Client for a local Ollama server."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        chat_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        probe_timeout: Optional[float] = None,
        embedding_timeout: Optional[float] = None,
        chat_timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = (api_base or settings.LOCAL_API_BASE).rstrip("/")
        self.chat_model = chat_model or settings.LOCAL_CHAT_MODEL
        self.embedding_model = embedding_model or settings.LOCAL_EMBEDDING_MODEL
        self.probe_timeout = probe_timeout or settings.LOCAL_PROBE_TIMEOUT
        self.embedding_timeout = embedding_timeout or settings.EMBEDDING_TIMEOUT
        self.chat_timeout = chat_timeout or settings.LLM_TIMEOUT
        self._transport = transport

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    @staticmethod
    async def _raise_for_status(resp: httpx.Response, action: str) -> None:
        if resp.is_success:
            return
        body = (await resp.aread()).decode("utf-8", errors="replace").strip()
        raise OllamaError(body or f"Ollama {action} failed: {resp.status_code}", resp.status_code)

    async def is_available(self) -> bool:
        """
        Probe the server with a short timeout.

        Returns:
            True if the tags endpoint answered with a 2xx status
        """
        try:
            async with self._client(self.probe_timeout) as client:
                resp = await client.get(f"{self.api_base}/api/tags")
            return resp.is_success
        except httpx.HTTPError as e:
            logger.debug(f"Ollama probe failed: {e}")
            return False

    async def embed(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for a list of texts in one request.

        Args:
            texts: List of text strings to embed

        Returns:
            List of embedding vectors (each is a list of floats)
        """
        if not texts:
            return []

        async with self._client(self.embedding_timeout) as client:
            resp = await client.post(
                f"{self.api_base}/api/embed",
                json={
                    "model": self.embedding_model,
                    "input": texts,
                },
            )
            await self._raise_for_status(resp, "embed")
            data = resp.json()

        if "embeddings" in data:
            return data["embeddings"] or []
        # Older servers answer a single input with "embedding"
        return [data["embedding"]] if data.get("embedding") else []

    @staticmethod
    def build_messages(messages: List[Dict], system_prompt: Optional[str]) -> List[Dict]:
        """Prepend the system prompt as a regular system-role message."""
        msgs = [{"role": m["role"], "content": m["content"]} for m in messages]
        if system_prompt:
            msgs.insert(0, {"role": "system", "content": system_prompt})
        return msgs

    async def chat(self, messages: List[Dict], system_prompt: Optional[str] = None) -> str:
        """
        Send a chat completion request and return the response content.

        Args:
            messages: List of message dicts with 'role' and 'content' keys
            system_prompt: Grounding instruction, sent as the first message

        Returns:
            The assistant's response content (may be empty)
        """
        async with self._client(self.chat_timeout) as client:
            resp = await client.post(
                f"{self.api_base}/api/chat",
                json={
                    "model": self.chat_model,
                    "messages": self.build_messages(messages, system_prompt),
                    "stream": False,
                },
            )
            await self._raise_for_status(resp, "chat")
            data = resp.json()
        return data.get("message", {}).get("content", "")

    async def chat_stream(
        self,
        messages: List[Dict],
        system_prompt: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Send a streaming chat completion request and yield content deltas.

        Args:
            messages: List of message dicts with 'role' and 'content' keys
            system_prompt: Grounding instruction, sent as the first message

        Yields:
            Response content fragments as they arrive
        """
        async with self._client(self.chat_timeout) as client:
            async with client.stream(
                "POST",
                f"{self.api_base}/api/chat",
                json={
                    "model": self.chat_model,
                    "messages": self.build_messages(messages, system_prompt),
                    "stream": True,
                },
            ) as resp:
                await self._raise_for_status(resp, "chat")
                async for line in resp.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    content = data.get("message", {}).get("content", "")
                    if content:
                        yield content
                    if data.get("done", False):
                        break

    async def health_check(self) -> Dict:
        """
        Check if the local server is reachable.

        Returns:
            Dict with 'status', 'api_base' and model names
        """
        available = await self.is_available()
        return {
            "status": "healthy" if available else "unreachable",
            "api_base": self.api_base,
            "chat_model": self.chat_model,
            "embedding_model": self.embedding_model,
        }


# Default client instance
_default_client: Optional[OllamaClient] = None


def get_ollama_client() -> OllamaClient:
    """Get the default Ollama client instance (singleton)."""
    global _default_client
    if _default_client is None:
        _default_client = OllamaClient()
    return _default_client
