"""
Tests for the local Ollama client, using an in-process HTTP transport.
"""
import asyncio
import json

import httpx
import pytest

from ragchat.services.ollama_client import OllamaClient, OllamaError


def make_client(handler) -> OllamaClient:
    return OllamaClient(
        api_base="http://ollama.test",
        chat_model="llama3.2",
        embedding_model="nomic-embed-text",
        transport=httpx.MockTransport(handler),
    )


async def collect(stream):
    return [d async for d in stream]


class TestAvailability:
    """Tests for the /api/tags probe."""

    def test_available(self):
        client = make_client(lambda request: httpx.Response(200, json={"models": []}))
        assert asyncio.run(client.is_available()) is True

    def test_error_status(self):
        client = make_client(lambda request: httpx.Response(500))
        assert asyncio.run(client.is_available()) is False

    def test_connection_refused(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = make_client(handler)
        assert asyncio.run(client.is_available()) is False

    def test_health_check(self):
        client = make_client(lambda request: httpx.Response(200, json={"models": []}))
        result = asyncio.run(client.health_check())
        assert result["status"] == "healthy"
        assert result["chat_model"] == "llama3.2"


class TestEmbed:
    """Tests for /api/embed."""

    def test_batch_request(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"embeddings": [[0.1, 0.2], [0.3, 0.4]]})

        client = make_client(handler)
        vectors = asyncio.run(client.embed(["a", "b"]))

        assert vectors == [[0.1, 0.2], [0.3, 0.4]]
        assert seen["url"] == "http://ollama.test/api/embed"
        assert seen["body"] == {"model": "nomic-embed-text", "input": ["a", "b"]}

    def test_single_embedding_field(self):
        client = make_client(lambda request: httpx.Response(200, json={"embedding": [1.0, 2.0]}))
        assert asyncio.run(client.embed(["a"])) == [[1.0, 2.0]]

    def test_error_raises(self):
        client = make_client(lambda request: httpx.Response(404, text="model not found"))
        with pytest.raises(OllamaError) as exc_info:
            asyncio.run(client.embed(["a"]))
        assert exc_info.value.status_code == 404
        assert "model not found" in str(exc_info.value)


class TestChat:
    """Tests for /api/chat."""

    def test_system_prompt_is_first_message(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"message": {"role": "assistant", "content": "Hi"}})

        client = make_client(handler)
        text = asyncio.run(client.chat([{"role": "user", "content": "Hello"}], "Be brief"))

        assert text == "Hi"
        assert seen["body"]["stream"] is False
        assert seen["body"]["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hello"},
        ]

    def test_stream_yields_deltas(self):
        lines = [
            {"message": {"content": "The "}, "done": False},
            {"message": {"content": "answer"}, "done": False},
            {"message": {"content": ""}, "done": True},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"
        client = make_client(lambda request: httpx.Response(200, text=body))

        deltas = asyncio.run(collect(client.chat_stream([{"role": "user", "content": "q"}], "sys")))

        assert deltas == ["The ", "answer"]

    def test_stream_error_status(self):
        client = make_client(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(OllamaError):
            asyncio.run(collect(client.chat_stream([{"role": "user", "content": "q"}])))
