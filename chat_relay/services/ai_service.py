"""Retrieval-augmented response generation with a content-addressed cache.

Flow per query: cache lookup, retrieval, prompt assembly, model call,
cost accounting, cache write. Model failures never escape `generate`;
they come back as a canned answer with `error` set.
"""

import hashlib
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from chat_relay.logging_config import get_logger
from chat_relay.services.cache_service import ResponseCache
from chat_relay.services.chunk_store import RetrievalResult, StoreNotReadyError
from chat_relay.services.embedding_service import EmbeddingError
from chat_relay.services.llm import LLMProvider
from chat_relay.services.prompts import build_system_prompt, canned_response
from chat_relay.services.retrieval_service import Retriever, build_context

logger = get_logger("ai_service")

CACHE_KEY_PREFIX = "response:"

# USD per 1K tokens: (input, output)
MODEL_PRICES = {
    "gpt-4-turbo-preview": (0.01, 0.03),
    "gpt-4": (0.03, 0.06),
    "gpt-3.5-turbo": (0.0005, 0.0015),
}
DEFAULT_PRICE_MODEL = "gpt-4-turbo-preview"

HISTORY_ROLES = {"user", "assistant"}


def calculate_cost(tokens: int, model: str) -> float:
    input_price, output_price = MODEL_PRICES.get(model, MODEL_PRICES[DEFAULT_PRICE_MODEL])
    return (tokens / 1000) * ((input_price + output_price) / 2)


def build_cache_key(text: str, context: str = "") -> str:
    """Exact-bytes key: no case or whitespace normalization."""
    raw = text if not context else f"{text}\n{context}"
    return CACHE_KEY_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()


class UsageStats:
    """Process-lifetime counters shared by concurrent requests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self.total_requests = 0
        self.cache_hits = 0
        self.cache_misses = 0
        self.total_tokens = 0
        self.estimated_cost = 0.0

    def record_hit(self) -> None:
        with self._lock:
            self.total_requests += 1
            self.cache_hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self.total_requests += 1
            self.cache_misses += 1

    def record_generation(self, tokens: int, cost: float) -> None:
        with self._lock:
            self.total_tokens += tokens
            self.estimated_cost += cost

    def snapshot(self) -> dict:
        with self._lock:
            requests = self.total_requests
            return {
                "total_requests": requests,
                "cache_hits": self.cache_hits,
                "cache_misses": self.cache_misses,
                "total_tokens": self.total_tokens,
                "estimated_cost": round(self.estimated_cost, 6),
                "cache_hit_rate": round(self.cache_hits / requests * 100, 2) if requests else 0.0,
                "avg_tokens_per_request": round(self.total_tokens / requests) if requests else 0,
            }

    def reset(self) -> None:
        with self._lock:
            self._reset_counters()
        logger.info("Usage stats reset")


@dataclass
class GenerationResult:
    text: str
    tokens_used: int = 0
    cost: float = 0.0
    from_cache: bool = False
    retrieval_snippets: List[dict] = field(default_factory=list)
    error: Optional[str] = None
    degraded: List[str] = field(default_factory=list)


class ResponseGenerator:
    def __init__(
        self,
        cache: ResponseCache,
        llm: LLMProvider,
        retriever: Optional[Retriever] = None,
        *,
        model: str = DEFAULT_PRICE_MODEL,
        temperature: float = 0.7,
        max_tokens: int = 500,
        top_k: int = 3,
        context_char_budget: int = 1500,
        snippet_chars: int = 200,
        history_turns: int = 4,
        cache_ttl_seconds: int = 3600,
        stats: Optional[UsageStats] = None,
    ) -> None:
        self.cache = cache
        self.llm = llm
        self.retriever = retriever
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.top_k = top_k
        self.context_char_budget = context_char_budget
        self.snippet_chars = snippet_chars
        self.history_turns = history_turns
        self.cache_ttl_seconds = cache_ttl_seconds
        self.stats = stats or UsageStats()

    async def generate(self, query_text: str, history: Optional[Sequence[dict]] = None) -> GenerationResult:
        cache_key = build_cache_key(query_text)

        cached = await self.cache.get(cache_key)
        if isinstance(cached, dict) and isinstance(cached.get("response"), str):
            self.stats.record_hit()
            logger.info("Response served from cache", extra={"context": {"key": cache_key}})
            return GenerationResult(
                text=cached["response"],
                tokens_used=0,
                cost=0.0,
                from_cache=True,
                retrieval_snippets=list(cached.get("retrievalSnippets") or []),
            )

        self.stats.record_miss()
        degraded: List[str] = []

        results = await self._retrieve(query_text, degraded)
        context = build_context(results, self.context_char_budget)
        snippets = [
            {
                "chunkId": result.chunk_id,
                "text": result.text[: self.snippet_chars],
                "similarity": round(result.similarity, 4),
            }
            for result in results
        ]

        messages = [{"role": "system", "content": build_system_prompt(context)}]
        messages.extend(self._history_window(history))
        messages.append({"role": "user", "content": query_text})

        llm_start = time.monotonic()
        try:
            response = await self.llm.generate(
                messages,
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except Exception as exc:
            logger.error(
                f"Model call failed: {exc}",
                exc_info=True,
                extra={"context": {"provider": self.llm.name, "model": self.model}},
            )
            degraded.append("generation_failed")
            return GenerationResult(
                text=canned_response(query_text),
                retrieval_snippets=snippets,
                error=str(exc) or type(exc).__name__,
                degraded=degraded,
            )

        tokens = response.total_tokens
        cost = calculate_cost(tokens, self.model)
        self.stats.record_generation(tokens, cost)
        logger.info(
            "Response generated",
            extra={
                "context": {
                    "provider": self.llm.name,
                    "model": response.model,
                    "tokens": tokens,
                    "cost": round(cost, 6),
                    "context_chars": len(context),
                    "elapsed_ms": round((time.monotonic() - llm_start) * 1000, 2),
                }
            },
        )

        entry = {
            "response": response.content,
            "retrievalSnippets": snippets,
            "storedAt": datetime.now(timezone.utc).isoformat(),
            "ttlSeconds": self.cache_ttl_seconds,
        }
        await self.cache.set(cache_key, entry, self.cache_ttl_seconds)

        return GenerationResult(
            text=response.content,
            tokens_used=tokens,
            cost=cost,
            from_cache=False,
            retrieval_snippets=snippets,
            degraded=degraded,
        )

    async def _retrieve(self, query_text: str, degraded: List[str]) -> List[RetrievalResult]:
        if self.retriever is None or not self.retriever.is_ready():
            degraded.append("corpus_not_ready")
            return []
        try:
            return await self.retriever.retrieve(query_text, self.top_k)
        except (EmbeddingError, StoreNotReadyError, ValueError) as exc:
            logger.warning(
                "Retrieval failed - answering without context",
                extra={"context": {"mode": self.retriever.mode, "error": str(exc)}},
            )
            degraded.append("retrieval_failed")
            return []

    def _history_window(self, history: Optional[Sequence[dict]]) -> List[dict]:
        if not history or self.history_turns <= 0:
            return []
        turns = [
            {"role": item["role"], "content": item["content"]}
            for item in history
            if item.get("role") in HISTORY_ROLES and item.get("content")
        ]
        return turns[-self.history_turns :]
