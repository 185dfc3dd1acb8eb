"""Batched analytics events with real-time cache counters.

Events are queued in memory and written in batches by a background
worker, every `flush_interval_seconds` or as soon as the queue reaches
`batch_threshold`. The queue is bounded; when full the oldest events are
dropped. A failed batch write puts every event of the batch back on the
queue. Per-type counters in the cache are updated for every `track`
regardless of the durable path, in background tasks so a slow cache never
delays the caller; `stop()` waits for them.
"""

import asyncio
import traceback
from abc import ABC, abstractmethod
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Deque, List, Optional, Set

from chat_relay.logging_config import get_logger
from chat_relay.services.analytics_repository import MESSAGE_PROCESSED, AnalyticsRepository
from chat_relay.services.cache_service import ResponseCache

logger = get_logger("telemetry_service")

ERROR_EVENT = "error"
COUNTER_PATTERN = "analytics:*:count"


def counter_key(event_type: str) -> str:
    return f"analytics:{event_type}:count"


class EventWriter(ABC):
    @abstractmethod
    async def write(self, batch: List[dict]) -> None:
        """Persist the whole batch or raise."""


class DatabaseEventWriter(EventWriter):
    def __init__(self, repository: AnalyticsRepository) -> None:
        self.repository = repository

    async def write(self, batch: List[dict]) -> None:
        await asyncio.to_thread(self.repository.insert_events, batch)


class LogEventWriter(EventWriter):
    """Used when no database is configured: the batch is logged and dropped."""

    async def write(self, batch: List[dict]) -> None:
        types = Counter(event["event_type"] for event in batch)
        logger.info("Telemetry batch discarded (no database)", extra={"context": {"events": dict(types)}})


class TelemetrySink:
    def __init__(
        self,
        writer: EventWriter,
        cache: Optional[ResponseCache] = None,
        *,
        flush_interval_seconds: float = 5.0,
        batch_threshold: int = 50,
        max_queue_size: int = 5000,
        counter_ttl_seconds: int = 86400,
    ) -> None:
        self.writer = writer
        self.cache = cache
        self.flush_interval_seconds = flush_interval_seconds
        self.batch_threshold = batch_threshold
        self.max_queue_size = max_queue_size
        self.counter_ttl_seconds = counter_ttl_seconds
        self.dropped_events = 0
        self._queue: Deque[dict] = deque()
        self._wake = asyncio.Event()
        self._worker: Optional[asyncio.Task] = None
        self._counter_tasks: Set[asyncio.Task] = set()
        self._stopping = False

    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping = False
        self._wake = asyncio.Event()
        self._worker = asyncio.create_task(self._run(), name="telemetry-flush")
        logger.info(
            "Telemetry worker started",
            extra={"context": {"interval_s": self.flush_interval_seconds, "threshold": self.batch_threshold}},
        )

    async def stop(self) -> None:
        self._stopping = True
        self._wake.set()
        if self._worker is not None:
            await self._worker
            self._worker = None
        await self.wait_for_counters()
        await self.flush()
        if self._queue:
            logger.warning("Telemetry events left unflushed at shutdown", extra={"context": {"count": len(self._queue)}})

    async def _run(self) -> None:
        while not self._stopping:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.flush_interval_seconds)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopping:
                break
            await self.flush()

    async def track(self, event_type: str, data: Optional[dict] = None, metadata: Optional[dict] = None) -> None:
        metadata = metadata or {}
        self._enqueue(
            {
                "event_type": event_type,
                "event_data": data or {},
                "user_id": metadata.get("user_id"),
                "session_id": metadata.get("session_id"),
                "ip_address": metadata.get("ip_address"),
                "user_agent": metadata.get("user_agent"),
                "created_at": datetime.now(timezone.utc),
            }
        )
        if len(self._queue) >= self.batch_threshold:
            self._wake.set()
        self._schedule_counter(event_type)

    async def track_message(
        self,
        *,
        conversation_id: Optional[str],
        message_text: str,
        response_text: str,
        processing_time_ms: int,
        tokens_used: int,
        from_cache: bool = False,
        safety_triggered: bool = False,
        metadata: Optional[dict] = None,
    ) -> None:
        await self.track(
            MESSAGE_PROCESSED,
            {
                "conversationId": conversation_id,
                "messageLength": len(message_text or ""),
                "responseLength": len(response_text or ""),
                "processingTime": processing_time_ms,
                "tokensUsed": tokens_used,
                "fromCache": from_cache,
                "gamblingProblemDetected": safety_triggered,
            },
            metadata,
        )

    async def track_error(self, error, context: Optional[dict] = None, metadata: Optional[dict] = None) -> None:
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
            stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        else:
            message, stack = str(error), None
        await self.track(ERROR_EVENT, {"message": message, "stack": stack, "context": context or {}}, metadata)

    async def flush(self) -> int:
        if not self._queue:
            return 0
        # Swap before the first await so concurrent flushes never share events.
        batch = list(self._queue)
        self._queue = deque()
        try:
            await self.writer.write(batch)
        except Exception as exc:
            logger.error(
                "Telemetry batch write failed - requeueing",
                extra={"context": {"count": len(batch), "error": str(exc)}},
            )
            self._requeue(batch)
            return 0
        logger.info("Telemetry batch written", extra={"context": {"count": len(batch)}})
        return len(batch)

    async def realtime_counters(self) -> dict:
        if self.cache is None:
            return {}
        await self.wait_for_counters()
        stats = {}
        for key in sorted(await self.cache.scan_counters(COUNTER_PATTERN)):
            event_type = key[len("analytics:") : -len(":count")]
            stats[event_type] = await self.cache.get_counter(key)
        return stats

    def _enqueue(self, event: dict) -> None:
        self._queue.append(event)
        self._enforce_bound()

    def _requeue(self, batch: List[dict]) -> None:
        self._queue.extendleft(reversed(batch))
        self._enforce_bound()

    def _enforce_bound(self) -> None:
        overflow = len(self._queue) - self.max_queue_size
        if overflow <= 0:
            return
        for _ in range(overflow):
            self._queue.popleft()
        self.dropped_events += overflow
        logger.warning(
            "Telemetry queue full - dropped oldest events",
            extra={"context": {"dropped": overflow, "total_dropped": self.dropped_events}},
        )

    def _schedule_counter(self, event_type: str) -> None:
        if self.cache is None or self.cache.backend is None:
            return
        task = asyncio.create_task(self._bump_counter(event_type), name=f"telemetry-counter-{event_type}")
        self._counter_tasks.add(task)
        task.add_done_callback(self._counter_tasks.discard)

    async def wait_for_counters(self) -> None:
        """Wait until every scheduled counter update has been applied."""
        while self._counter_tasks:
            await asyncio.gather(*list(self._counter_tasks), return_exceptions=True)

    async def _bump_counter(self, event_type: str) -> None:
        if self.cache is None or self.cache.backend is None:
            return
        key = counter_key(event_type)
        if await self.cache.increment(key) is None:
            return
        await self.cache.expire(key, self.counter_ttl_seconds)
