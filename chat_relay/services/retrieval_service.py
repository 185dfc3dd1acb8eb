"""Retrieval strategies over the chunk store.

The strategy is picked once at startup: embedding search when the
embeddings API is available, keyword overlap as the offline mode.
"""

from typing import Protocol, Sequence

from chat_relay.services.chunk_store import ChunkStore, RetrievalResult
from chat_relay.services.embedding_service import OpenAIEmbeddingClient

CONTEXT_SEPARATOR = "\n\n"


class Retriever(Protocol):
    mode: str

    def is_ready(self) -> bool:
        ...

    async def retrieve(self, query: str, top_k: int) -> list[RetrievalResult]:
        ...


class VectorRetriever:
    mode = "embedding"

    def __init__(self, store: ChunkStore, embedder: OpenAIEmbeddingClient) -> None:
        self.store = store
        self.embedder = embedder

    def is_ready(self) -> bool:
        return self.store.is_ready()

    async def retrieve(self, query: str, top_k: int) -> list[RetrievalResult]:
        if top_k <= 0:
            return []
        # Query must be embedded with the model the corpus was built with.
        vector = await self.embedder.embed(query, model=self.store.embedding_model)
        return self.store.search(vector, top_k)


class KeywordRetriever:
    mode = "keyword"

    def __init__(self, store: ChunkStore) -> None:
        self.store = store

    def is_ready(self) -> bool:
        return self.store.is_ready()

    async def retrieve(self, query: str, top_k: int) -> list[RetrievalResult]:
        return self.store.keyword_search(query, top_k)


def build_context(results: Sequence[RetrievalResult], char_budget: int) -> str:
    """Numbered context blocks, cut to the character budget."""
    if not results or char_budget <= 0:
        return ""
    context = CONTEXT_SEPARATOR.join(
        f"[Contexto {index}]\n{result.text}" for index, result in enumerate(results, 1)
    )
    return context[:char_budget]
