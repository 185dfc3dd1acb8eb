import asyncio
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from chat_relay.services.chunk_store import ChunkStore, RetrievalResult
from chat_relay.services.embedding_service import EmbeddingError, OpenAIEmbeddingClient
from chat_relay.services.retrieval_service import KeywordRetriever, VectorRetriever, build_context


def _results(*texts):
    return [RetrievalResult(chunk_id=i, text=text, similarity=0.9 - i * 0.1) for i, text in enumerate(texts)]


class TestBuildContext:
    def test_numbered_blocks(self):
        context = build_context(_results("uno", "dos"), 1500)
        assert context == "[Contexto 1]\nuno\n\n[Contexto 2]\ndos"

    def test_truncated_to_budget(self):
        context = build_context(_results("x" * 1000, "y" * 1000), 1500)
        assert len(context) == 1500

    def test_empty(self):
        assert build_context([], 1500) == ""


class TestVectorRetriever:
    def test_embeds_with_corpus_model(self, corpus_path):
        store = ChunkStore(corpus_path)
        store.load()
        embedder = Mock()
        embedder.embed = AsyncMock(return_value=[0.0, 0.0, 1.0])

        results = asyncio.run(VectorRetriever(store, embedder).retrieve("¿retiros?", 1))

        assert results[0].chunk_id == 2
        embedder.embed.assert_awaited_once_with("¿retiros?", model="text-embedding-3-large")

    def test_non_positive_k_skips_embedding(self, corpus_path):
        store = ChunkStore(corpus_path)
        store.load()
        embedder = Mock()
        embedder.embed = AsyncMock()

        assert asyncio.run(VectorRetriever(store, embedder).retrieve("hola", 0)) == []
        embedder.embed.assert_not_awaited()


class TestKeywordRetriever:
    def test_ready_follows_store(self, corpus_path):
        store = ChunkStore(corpus_path)
        retriever = KeywordRetriever(store)
        assert retriever.is_ready() is False
        store.load()
        assert retriever.is_ready() is True
        assert retriever.mode == "keyword"

    def test_retrieve(self, corpus_path):
        store = ChunkStore(corpus_path)
        store.load()
        results = asyncio.run(KeywordRetriever(store).retrieve("depósitos con WebPay", 3))
        assert results[0].chunk_id == 1


class TestEmbeddingClient:
    def _client(self, handler):
        return OpenAIEmbeddingClient("sk-test", http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    def test_embed_returns_vector(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"data": [{"index": 0, "embedding": [0.1, 0.2, 0.3]}]})

        vector = asyncio.run(self._client(handler).embed("hola", model="text-embedding-3-small"))

        assert vector == [0.1, 0.2, 0.3]
        assert str(seen[0].url) == "https://api.openai.com/v1/embeddings"
        assert seen[0].headers["Authorization"] == "Bearer sk-test"

    def test_api_error_raises_embedding_error(self):
        client = self._client(lambda request: httpx.Response(429, json={"error": "rate limited"}))
        with pytest.raises(EmbeddingError):
            asyncio.run(client.embed("hola"))
