# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Tests for the embedding and generation providers."""

import json
from unittest.mock import MagicMock, patch

import httpx
import numpy as np
import pytest

from response_cache.errors import ProviderError
from response_cache.providers import embedder as embedder_module
from response_cache.providers.embedder import EmbeddingProvider, LocalEmbedder, OpenAIEmbedder
from response_cache.providers.generator import OpenAIChatGenerator, ResponseGenerator, build_prompt
from response_cache.providers.http import OpenAIHTTPClient


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# =============================================================================
# Prompt assembly
# =============================================================================


class TestBuildPrompt:

    def test_query_only(self):
        assert build_prompt("Tell me a joke") == "Tell me a joke"

    def test_prefix_context_query(self):
        assert build_prompt("q", "prefix", "context") == "prefix\ncontext\nq"

    def test_empty_parts_skipped(self):
        assert build_prompt("q", "", None) == "q"
        assert build_prompt("q", None, "context") == "context\nq"


# =============================================================================
# HTTP client
# =============================================================================


class TestOpenAIHTTPClient:

    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            OpenAIHTTPClient("", "openai-chat")

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        http = OpenAIHTTPClient("sk-test", "openai-chat", base_url="https://llm.local/v1/", client=mock_client(handler))
        assert await http.post("/things", {"a": 1}) == {"ok": True}
        assert seen == {"url": "https://llm.local/v1/things", "auth": "Bearer sk-test", "body": {"a": 1}}

    @pytest.mark.asyncio
    async def test_http_error_mapped(self):
        http = OpenAIHTTPClient(
            "sk-test",
            "openai-chat",
            client=mock_client(lambda request: httpx.Response(429, json={"error": "rate limited"})),
        )
        with pytest.raises(ProviderError) as exc_info:
            await http.post("/chat/completions", {})
        assert exc_info.value.status_code == 429
        assert exc_info.value.provider == "openai-chat"

    @pytest.mark.asyncio
    async def test_transport_error_mapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        http = OpenAIHTTPClient("sk-test", "openai-embeddings", client=mock_client(handler))
        with pytest.raises(ProviderError) as exc_info:
            await http.post("/embeddings", {})
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_invalid_json_mapped(self):
        http = OpenAIHTTPClient(
            "sk-test",
            "openai-chat",
            client=mock_client(lambda request: httpx.Response(200, text="<html>")),
        )
        with pytest.raises(ProviderError):
            await http.post("/chat/completions", {})


# =============================================================================
# OpenAI embeddings
# =============================================================================


class TestOpenAIEmbedder:

    def test_known_model_dimension(self):
        embedder = OpenAIEmbedder("sk-test")
        assert isinstance(embedder, EmbeddingProvider)
        assert embedder.dimension == 1536
        assert OpenAIEmbedder("sk-test", model="text-embedding-3-large").dimension == 3072

    @pytest.mark.asyncio
    async def test_embed(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/v1/embeddings"
            assert body == {"input": "hello", "model": "text-embedding-ada-002"}
            return httpx.Response(200, json={"data": [{"embedding": [0.1, 0.2, 0.3]}]})

        embedder = OpenAIEmbedder("sk-test", client=mock_client(handler))
        assert await embedder.embed("hello") == [0.1, 0.2, 0.3]

    @pytest.mark.asyncio
    async def test_unknown_model_probed(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(json.loads(request.content)["input"])
            return httpx.Response(200, json={"data": [{"embedding": [0.0] * 768}]})

        embedder = OpenAIEmbedder("sk-test", model="custom-embed", client=mock_client(handler))
        assert embedder.dimension is None
        await embedder.initialize()
        assert embedder.dimension == 768
        await embedder.initialize()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_malformed_response(self):
        embedder = OpenAIEmbedder(
            "sk-test",
            client=mock_client(lambda request: httpx.Response(200, json={"data": []})),
        )
        with pytest.raises(ProviderError):
            await embedder.embed("hello")


# =============================================================================
# OpenAI chat
# =============================================================================


class TestOpenAIChatGenerator:

    @pytest.mark.asyncio
    async def test_generate(self):
        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert request.url.path == "/v1/chat/completions"
            assert body["model"] == "gpt-3.5-turbo"
            assert body["messages"] == [{"role": "user", "content": "Tell me a joke"}]
            return httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": " Knock knock. \n"}}]})

        generator = OpenAIChatGenerator("sk-test", client=mock_client(handler))
        assert isinstance(generator, ResponseGenerator)
        assert await generator.generate("Tell me a joke") == "Knock knock."

    @pytest.mark.asyncio
    async def test_no_choices(self):
        generator = OpenAIChatGenerator(
            "sk-test",
            client=mock_client(lambda request: httpx.Response(200, json={"choices": []})),
        )
        with pytest.raises(ProviderError):
            await generator.generate("hi")

    @pytest.mark.asyncio
    async def test_null_content(self):
        generator = OpenAIChatGenerator(
            "sk-test",
            client=mock_client(lambda request: httpx.Response(200, json={"choices": [{"message": {"content": None}}]})),
        )
        with pytest.raises(ProviderError):
            await generator.generate("hi")

    @pytest.mark.asyncio
    async def test_aclose(self):
        client = mock_client(lambda request: httpx.Response(200, json={}))
        generator = OpenAIChatGenerator("sk-test", client=client)
        await generator.aclose()
        assert client.is_closed


# =============================================================================
# Local sentence-transformers
# =============================================================================


class TestLocalEmbedder:

    @pytest.fixture
    def fake_model(self):
        model = MagicMock()
        model.get_sentence_embedding_dimension.return_value = 4
        model.encode.return_value = np.array([0.5, 0.5, 0.5, 0.5], dtype=np.float32)
        return model

    @pytest.mark.asyncio
    async def test_initialize_learns_dimension(self, fake_model):
        embedder = LocalEmbedder()
        with patch.object(embedder_module, "_get_model", return_value=fake_model):
            assert embedder.dimension is None
            await embedder.initialize()
        assert embedder.dimension == 4

    @pytest.mark.asyncio
    async def test_embed_normalized(self, fake_model):
        embedder = LocalEmbedder("all-MiniLM-L6-v2")
        with patch.object(embedder_module, "_get_model", return_value=fake_model):
            vector = await embedder.embed("hello")
        assert vector == [0.5, 0.5, 0.5, 0.5]
        fake_model.encode.assert_called_once_with("hello", normalize_embeddings=True)

    @pytest.mark.asyncio
    async def test_load_failure(self):
        embedder = LocalEmbedder("missing-model")
        with patch.object(embedder_module, "_get_model", side_effect=OSError("not found")):
            with pytest.raises(ProviderError) as exc_info:
                await embedder.initialize()
        assert exc_info.value.provider == "local"

    @pytest.mark.asyncio
    async def test_encode_failure(self, fake_model):
        fake_model.encode.side_effect = RuntimeError("CUDA out of memory")
        embedder = LocalEmbedder()
        with patch.object(embedder_module, "_get_model", return_value=fake_model):
            with pytest.raises(ProviderError):
                await embedder.embed("hello")

    def test_model_cache(self):
        model = MagicMock()
        embedder_module._models["cached-model"] = model
        try:
            assert embedder_module._get_model("cached-model") is model
        finally:
            embedder_module._models.pop("cached-model")
