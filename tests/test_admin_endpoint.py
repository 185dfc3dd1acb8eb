from fastapi.testclient import TestClient

from chat_relay.dependencies import ServiceContainer
from chat_relay.main import create_app

ADMIN_HEADERS = {"X-Admin-Token": "admin-token"}


def test_missing_token_is_401(client):
    response = client.post("/admin/corpus/reload")
    assert response.status_code == 401


def test_wrong_token_is_401(client):
    response = client.post("/admin/stats/reset", headers={"X-Admin-Token": "nope"})
    assert response.status_code == 401


def test_unconfigured_token_is_500(make_settings, fake_llm, tawk_client):
    container = ServiceContainer.build(make_settings(admin_token=None), llm=fake_llm, tawk=tawk_client)
    with TestClient(create_app(container)) as client:
        response = client.post("/admin/cache/flush", headers=ADMIN_HEADERS)

    assert response.status_code == 500


def test_reload_corpus(client):
    response = client.post("/admin/corpus/reload", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["info"]["totalChunks"] == 3


def test_failed_reload_keeps_previous_corpus(client, container, corpus_path):
    corpus_path.write_text("{broken", encoding="utf-8")

    response = client.post("/admin/corpus/reload", headers=ADMIN_HEADERS)

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "corpus_malformed"
    assert response.json()["detail"]["ready"] is True
    assert container.store.info()["totalChunks"] == 3


def test_reset_stats_returns_previous_counters(client, container):
    client.post("/api/test", json={"message": "¿Cuáles son los juegos más populares?"})

    response = client.post("/admin/stats/reset", headers=ADMIN_HEADERS)

    assert response.status_code == 200
    assert response.json()["previous"]["total_requests"] == 1
    assert container.generator.stats.snapshot()["total_requests"] == 0


def test_flush_cache_forgets_responses(client, fake_llm):
    client.post("/api/test", json={"message": "¿Cuáles son los juegos más populares?"})

    response = client.post("/admin/cache/flush", headers=ADMIN_HEADERS)
    again = client.post("/api/test", json={"message": "¿Cuáles son los juegos más populares?"})

    assert response.json() == {"success": True, "backend": "memory"}
    assert again.json()["fromCache"] is False
    assert len(fake_llm.calls) == 2
