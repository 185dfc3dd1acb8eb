from datetime import datetime, timedelta, timezone

import pytest

from chat_relay.services.analytics_repository import AnalyticsRepository


@pytest.fixture
def repository(sqlite_database):
    return AnalyticsRepository(sqlite_database)


def _event(event_type, data=None, *, user_id=None, session_id=None, age=timedelta(0)):
    return {
        "event_type": event_type,
        "event_data": data or {},
        "user_id": user_id,
        "session_id": session_id,
        "created_at": datetime.now(timezone.utc) - age,
    }


def test_insert_events(repository):
    assert repository.insert_events([_event("a"), _event("b")]) == 2
    assert repository.insert_events([]) == 0


def test_top_events_ordered_and_windowed(repository):
    repository.insert_events(
        [
            _event("message_processed", user_id="v1"),
            _event("message_processed", user_id="v2"),
            _event("message_processed", user_id="v1"),
            _event("error"),
            _event("old_event", age=timedelta(days=30)),
        ]
    )

    top = repository.top_events(limit=10, days=7)

    assert [row["event_type"] for row in top] == ["message_processed", "error"]
    assert top[0]["count"] == 3
    assert top[0]["unique_users"] == 2
    assert repository.top_events(limit=1, days=7) == top[:1]


def test_daily_report(repository):
    repository.insert_events(
        [
            _event("message_processed", user_id="v1", session_id="c1"),
            _event("message_processed", user_id="v1", session_id="c2"),
            _event("message_processed", age=timedelta(days=3)),
        ]
    )

    report = repository.daily_report()

    assert report == [{"event_type": "message_processed", "count": 2, "unique_users": 1, "unique_sessions": 2}]


def test_performance_metrics(repository):
    repository.insert_events(
        [
            _event("message_processed", {"processingTime": 100, "tokensUsed": 200, "fromCache": False}),
            _event("message_processed", {"processingTime": 300, "tokensUsed": 0, "fromCache": True}),
            _event("message_processed", {"processingTime": 999, "tokensUsed": 999}, age=timedelta(hours=30)),
            _event("error", {"processingTime": 5000}),
        ]
    )

    metrics = repository.performance_metrics()

    assert metrics == {
        "avg_processing_time": 200.0,
        "max_processing_time": 300,
        "min_processing_time": 100,
        "avg_tokens": 100.0,
        "cache_hits": 1,
        "total_requests": 2,
    }


def test_performance_metrics_empty(repository):
    metrics = repository.performance_metrics()
    assert metrics["total_requests"] == 0
    assert metrics["avg_processing_time"] is None
