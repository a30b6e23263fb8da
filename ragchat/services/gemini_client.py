"""
Gemini Client - cloud provider over the Gemini REST API.

The grounding instruction travels out-of-band in `systemInstruction`, and
model-authored turns use the `model` role.
"""
import json
import logging
from typing import AsyncGenerator, Dict, List, Optional

import httpx

from ragchat.core.config import settings
from ragchat.core.exceptions import ProviderAuthError

logger = logging.getLogger(__name__)

# Internal role -> Gemini role; anything unlisted (e.g. "system") is dropped
ROLE_MAP = {
    "user": "user",
    "assistant": "model",
}


class ProviderHTTPError(Exception):
    """Non-2xx response from the cloud provider."""

    def __init__(self, message: str, status_code: int):
        self.status_code = status_code
        super().__init__(message)


def to_gemini_contents(messages: List[Dict]) -> List[Dict]:
    """Convert role/content history into Gemini `contents`, dropping system entries."""
    contents = []
    for m in messages:
        role = ROLE_MAP.get(m["role"])
        if role is None:
            continue
        contents.append({"role": role, "parts": [{"text": m["content"]}]})
    return contents


def _candidate_text(data: Dict) -> str:
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(part.get("text", "") for part in parts)


class GeminiClient:
    """Client for the Gemini generative language API."""

    def __init__(
        self,
        api_base: Optional[str] = None,
        api_key: Optional[str] = None,
        chat_model: Optional[str] = None,
        embedding_model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = (api_base or settings.CLOUD_API_BASE).rstrip("/")
        self.api_key = settings.CLOUD_API_KEY if api_key is None else api_key
        self.chat_model = chat_model or settings.CLOUD_CHAT_MODEL
        self.embedding_model = embedding_model or settings.CLOUD_EMBEDDING_MODEL
        self.timeout = timeout or settings.CLOUD_TIMEOUT
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _client(self) -> httpx.AsyncClient:
        if not self.api_key:
            raise ProviderAuthError("CLOUD_API_KEY is not set")
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"x-goog-api-key": self.api_key},
        )

    def _url(self, model: str, method: str) -> str:
        return f"{self.api_base}/models/{model}:{method}"

    @staticmethod
    async def _raise_for_status(resp: httpx.Response) -> None:
        if resp.is_success:
            return
        body = (await resp.aread()).decode("utf-8", errors="replace").strip()
        raise ProviderHTTPError(f"{resp.status_code} {body}".strip(), resp.status_code)

    async def embed_one(self, text: str) -> List[float]:
        """Generate an embedding for a single text."""
        async with self._client() as client:
            resp = await client.post(
                self._url(self.embedding_model, "embedContent"),
                json={"content": {"parts": [{"text": text}]}},
            )
            await self._raise_for_status(resp)
            data = resp.json()

        values = (data.get("embedding") or {}).get("values")
        if not values:
            raise ProviderHTTPError("No embedding returned from cloud provider", resp.status_code)
        return values

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for several texts in one request.

        Entries without values are skipped, so the result may be shorter than
        the input; callers check the count.
        """
        if not texts:
            return []

        model_name = f"models/{self.embedding_model}"
        async with self._client() as client:
            resp = await client.post(
                self._url(self.embedding_model, "batchEmbedContents"),
                json={
                    "requests": [
                        {"model": model_name, "content": {"parts": [{"text": t}]}}
                        for t in texts
                    ],
                },
            )
            await self._raise_for_status(resp)
            data = resp.json()

        return [
            item["values"]
            for item in data.get("embeddings") or []
            if item and item.get("values")
        ]

    def _chat_body(self, messages: List[Dict], system_instruction: Optional[str]) -> Dict:
        body = {"contents": to_gemini_contents(messages)}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return body

    async def generate(self, messages: List[Dict], system_instruction: Optional[str] = None) -> str:
        """Single-shot chat completion. Returns the concatenated candidate text."""
        async with self._client() as client:
            resp = await client.post(
                self._url(self.chat_model, "generateContent"),
                json=self._chat_body(messages, system_instruction),
            )
            await self._raise_for_status(resp)
            data = resp.json()
        return _candidate_text(data)

    async def generate_stream(
        self,
        messages: List[Dict],
        system_instruction: Optional[str] = None,
    ) -> AsyncGenerator[str, None]:
        """
        Streaming chat completion over server-sent events.

        Yields:
            Text fragments as they arrive
        """
        async with self._client() as client:
            async with client.stream(
                "POST",
                self._url(self.chat_model, "streamGenerateContent"),
                params={"alt": "sse"},
                json=self._chat_body(messages, system_instruction),
            ) as resp:
                await self._raise_for_status(resp)
                async for line in resp.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    try:
                        data = json.loads(line[6:])
                    except json.JSONDecodeError:
                        continue
                    text = _candidate_text(data)
                    if text:
                        yield text

    async def health_check(self) -> Dict:
        """Report whether the cloud provider is configured (no request is made)."""
        return {
            "status": "configured" if self.configured else "missing_api_key",
            "chat_model": self.chat_model,
            "embedding_model": self.embedding_model,
        }


# Default client instance
_default_client: Optional[GeminiClient] = None


def get_gemini_client() -> GeminiClient:
    """Get the default Gemini client instance (singleton)."""
    global _default_client
    if _default_client is None:
        _default_client = GeminiClient()
    return _default_client
