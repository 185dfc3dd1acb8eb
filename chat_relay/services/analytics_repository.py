"""Durable analytics storage and report queries (sync SQLAlchemy)."""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional

from sqlalchemy import func

from chat_relay.database import Database
from chat_relay.logging_config import get_logger
from chat_relay.models import AnalyticsEvent

logger = get_logger("analytics_repository")

MESSAGE_PROCESSED = "message_processed"


def _as_int(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class AnalyticsRepository:
    def __init__(self, database: Database) -> None:
        self.database = database

    def insert_events(self, events: Iterable[dict]) -> int:
        """Insert a batch in one transaction. Raises on failure so the caller can requeue."""
        rows = [
            AnalyticsEvent(
                event_type=event["event_type"],
                event_data=event.get("event_data") or {},
                user_id=event.get("user_id"),
                session_id=event.get("session_id"),
                ip_address=event.get("ip_address"),
                user_agent=event.get("user_agent"),
                created_at=event.get("created_at") or datetime.now(timezone.utc),
            )
            for event in events
        ]
        if not rows:
            return 0
        with self.database.session() as db:
            db.add_all(rows)
        return len(rows)

    def top_events(self, limit: int = 10, days: int = 7) -> List[dict]:
        since = datetime.now(timezone.utc) - timedelta(days=days)
        count = func.count(AnalyticsEvent.id).label("count")
        with self.database.session() as db:
            rows = (
                db.query(
                    AnalyticsEvent.event_type,
                    count,
                    func.count(func.distinct(AnalyticsEvent.user_id)).label("unique_users"),
                )
                .filter(AnalyticsEvent.created_at >= since)
                .group_by(AnalyticsEvent.event_type)
                .order_by(count.desc(), AnalyticsEvent.event_type)
                .limit(limit)
                .all()
            )
        return [
            {"event_type": row.event_type, "count": row.count, "unique_users": row.unique_users} for row in rows
        ]

    def daily_report(self, day: Optional[date] = None) -> List[dict]:
        day = day or datetime.now(timezone.utc).date()
        start = datetime.combine(day, time.min, tzinfo=timezone.utc)
        end = start + timedelta(days=1)
        count = func.count(AnalyticsEvent.id).label("count")
        with self.database.session() as db:
            rows = (
                db.query(
                    AnalyticsEvent.event_type,
                    count,
                    func.count(func.distinct(AnalyticsEvent.user_id)).label("unique_users"),
                    func.count(func.distinct(AnalyticsEvent.session_id)).label("unique_sessions"),
                )
                .filter(AnalyticsEvent.created_at >= start, AnalyticsEvent.created_at < end)
                .group_by(AnalyticsEvent.event_type)
                .order_by(count.desc(), AnalyticsEvent.event_type)
                .all()
            )
        return [
            {
                "event_type": row.event_type,
                "count": row.count,
                "unique_users": row.unique_users,
                "unique_sessions": row.unique_sessions,
            }
            for row in rows
        ]

    def performance_metrics(self, hours: int = 24) -> dict:
        """Processing time and token aggregates over recent message_processed events."""
        since = datetime.now(timezone.utc) - timedelta(hours=hours)
        with self.database.session() as db:
            payloads = [
                row.event_data or {}
                for row in db.query(AnalyticsEvent.event_data)
                .filter(AnalyticsEvent.event_type == MESSAGE_PROCESSED, AnalyticsEvent.created_at >= since)
                .all()
            ]

        processing_times = [t for t in (_as_int(p.get("processingTime")) for p in payloads) if t is not None]
        tokens = [t for t in (_as_int(p.get("tokensUsed")) for p in payloads) if t is not None]
        return {
            "avg_processing_time": round(sum(processing_times) / len(processing_times), 2) if processing_times else None,
            "max_processing_time": max(processing_times) if processing_times else None,
            "min_processing_time": min(processing_times) if processing_times else None,
            "avg_tokens": round(sum(tokens) / len(tokens), 2) if tokens else None,
            "cache_hits": sum(1 for p in payloads if p.get("fromCache") is True),
            "total_requests": len(payloads),
        }
