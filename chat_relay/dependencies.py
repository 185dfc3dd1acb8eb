"""Service wiring and lifecycle.

`ServiceContainer.build` constructs every service from settings,
`open()` connects what needs connecting and `close()` releases it.
Routers reach services through `get_container` and friends, so tests
can swap in a container built from fakes.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError

from chat_relay.config import Settings
from chat_relay.database import Database
from chat_relay.logging_config import get_logger
from chat_relay.services.ai_service import ResponseGenerator, UsageStats
from chat_relay.services.analytics_repository import AnalyticsRepository
from chat_relay.services.cache_service import ResponseCache
from chat_relay.services.chunk_store import ChunkStore
from chat_relay.services.conversation_service import ConversationStore
from chat_relay.services.embedding_service import OpenAIEmbeddingClient
from chat_relay.services.llm import CannedResponseProvider, LLMProvider, OpenAIProvider
from chat_relay.services.payload_service import PayloadNormalizer
from chat_relay.services.pipeline_service import WebhookPipeline
from chat_relay.services.retrieval_service import KeywordRetriever, Retriever, VectorRetriever
from chat_relay.services.safety_service import SafetyClassifier
from chat_relay.services.signature_service import SignatureVerifier
from chat_relay.services.tawk_service import TawkClient
from chat_relay.services.telemetry_service import DatabaseEventWriter, LogEventWriter, TelemetrySink

logger = get_logger("dependencies")


class StartupError(RuntimeError):
    """Misconfiguration that must stop the process at startup."""


@dataclass
class ServiceContainer:
    settings: Settings
    database: Database
    cache: ResponseCache
    store: ChunkStore
    llm: LLMProvider
    retriever: Retriever
    generator: ResponseGenerator
    telemetry: TelemetrySink
    tawk: TawkClient
    pipeline: WebhookPipeline
    conversations: Optional[ConversationStore] = None
    analytics: Optional[AnalyticsRepository] = None
    embedder: Optional[OpenAIEmbeddingClient] = None
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def build(
        cls,
        settings: Settings,
        *,
        llm: Optional[LLMProvider] = None,
        tawk: Optional[TawkClient] = None,
    ) -> "ServiceContainer":
        """Wire services from settings; `llm` and `tawk` replace the configured clients."""
        if settings.require_webhook_signature and not settings.tawk_webhook_secret:
            raise StartupError("REQUIRE_WEBHOOK_SIGNATURE is set but TAWK_WEBHOOK_SECRET is empty")

        database = Database(settings.database_url, pool_size=settings.database_pool_size)
        cache = ResponseCache(settings.redis_url, socket_timeout_seconds=settings.redis_socket_timeout_seconds)
        store = ChunkStore(settings.corpus_path)

        embedder: Optional[OpenAIEmbeddingClient] = None
        retriever: Retriever
        if settings.use_embeddings and settings.openai_api_key:
            embedder = OpenAIEmbeddingClient(
                settings.openai_api_key,
                model=settings.embedding_model,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.embedding_timeout_seconds,
            )
            retriever = VectorRetriever(store, embedder)
        else:
            retriever = KeywordRetriever(store)

        if llm is None and settings.use_mock_llm:
            llm = CannedResponseProvider()
        elif llm is None:
            llm = OpenAIProvider(
                settings.openai_api_key,
                default_model=settings.model,
                base_url=settings.openai_base_url,
                timeout_seconds=settings.llm_timeout_seconds,
            )

        generator = ResponseGenerator(
            cache,
            llm,
            retriever,
            model=settings.model,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            top_k=settings.retrieval_top_k,
            context_char_budget=settings.context_char_budget,
            snippet_chars=settings.snippet_chars,
            history_turns=settings.history_turns,
            cache_ttl_seconds=settings.response_cache_ttl_seconds,
            stats=UsageStats(),
        )

        analytics = AnalyticsRepository(database) if database.is_configured else None
        conversations = ConversationStore(database) if database.is_configured else None
        writer = DatabaseEventWriter(analytics) if analytics else LogEventWriter()
        telemetry = TelemetrySink(
            writer,
            cache,
            flush_interval_seconds=settings.telemetry_flush_interval_seconds,
            batch_threshold=settings.telemetry_batch_threshold,
            max_queue_size=settings.telemetry_max_queue_size,
            counter_ttl_seconds=settings.telemetry_counter_ttl_seconds,
        )

        if tawk is None:
            tawk = TawkClient(
                settings.tawk_api_key,
                settings.tawk_property_id,
                base_url=settings.tawk_base_url,
                timeout_seconds=settings.tawk_timeout_seconds,
            )

        pipeline = WebhookPipeline(
            SignatureVerifier(settings.tawk_webhook_secret),
            PayloadNormalizer(settings.system_message_marker),
            SafetyClassifier(settings.safety_phrase_list),
            generator,
            telemetry,
            tawk,
            conversations,
        )

        return cls(
            settings=settings,
            database=database,
            cache=cache,
            store=store,
            llm=llm,
            retriever=retriever,
            generator=generator,
            telemetry=telemetry,
            tawk=tawk,
            pipeline=pipeline,
            conversations=conversations,
            analytics=analytics,
            embedder=embedder,
        )

    async def open(self) -> None:
        if not self.settings.tawk_webhook_secret:
            logger.warning("TAWK_WEBHOOK_SECRET not configured - webhook signatures are not verified")

        if self.database.is_configured:
            try:
                self.database.open()
            except SQLAlchemyError as exc:
                logger.warning(
                    "Database unreachable - conversation and analytics persistence disabled",
                    extra={"context": {"error": str(exc)}},
                )

        await self.cache.open()

        loaded = self.store.load()
        if not loaded.ok:
            logger.warning(
                "Retrieval corpus not loaded - answering without context",
                extra={"context": {"error": loaded.error, "code": loaded.error_code}},
            )

        self.telemetry.start()
        logger.info(
            "Services ready",
            extra={
                "context": {
                    "database": self.database.is_connected,
                    "cache": self.cache.backend_name,
                    "corpus": self.store.is_ready(),
                    "retrieval": self.retriever.mode,
                    "llm": self.llm.name,
                }
            },
        )

    async def close(self) -> None:
        await self.telemetry.stop()
        await self.llm.aclose()
        if self.embedder is not None:
            await self.embedder.aclose()
        await self.tawk.aclose()
        await self.cache.close()
        self.database.close()
        logger.info("Services closed")

    def uptime_seconds(self) -> float:
        return round(time.monotonic() - self.started_at, 3)


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_pipeline(request: Request) -> WebhookPipeline:
    return get_container(request).pipeline
