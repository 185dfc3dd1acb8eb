import json
from typing import List, Optional

import httpx
import pytest

from chat_relay.config import Settings
from chat_relay.services.llm import LLMProvider, LLMResponse
from chat_relay.services.tawk_service import TawkClient

WEBHOOK_SECRET = "test-secret"
ADMIN_TOKEN = "admin-token"

CORPUS = {
    "metadata": {
        "model": "text-embedding-3-large",
        "embeddingDimension": 3,
        "chunkSize": 1000,
        "chunkOverlap": 200,
        "totalChunks": 3,
        "generatedAt": "2024-01-01T00:00:00+00:00",
    },
    "chunks": [
        {
            "id": 0,
            "text": "Los juegos más populares son Book of Dead, Starburst y Sweet Bonanza.",
            "vector": [1.0, 0.0, 0.0],
            "metadata": {"length": 70, "index": 0},
        },
        {
            "id": 1,
            "text": "Los depósitos se realizan con WebPay, Khipu, Mercado Pago o transferencia.",
            "vector": [0.0, 1.0, 0.0],
            "metadata": {"length": 73, "index": 1},
        },
        {
            "id": 2,
            "text": "Los retiros se procesan en 24 a 48 horas hábiles tras la verificación.",
            "vector": [0.0, 0.0, 1.0],
            "metadata": {"length": 71, "index": 2},
        },
    ],
}


class FakeLLM(LLMProvider):
    """Records every call; answers with fixed content or raises `error`."""

    name = "fake"

    def __init__(
        self,
        content: str = "Respuesta de prueba para jugar en jugarenchile.com",
        tokens: int = 120,
        error: Optional[Exception] = None,
    ):
        self.content = content
        self.tokens = tokens
        self.error = error
        self.calls: List[List[dict]] = []

    async def generate(self, messages, model=None, temperature=0.7, max_tokens=500):
        self.calls.append(messages)
        if self.error is not None:
            raise self.error
        return LLMResponse(
            content=self.content,
            model=model or "gpt-4-turbo-preview",
            usage={"prompt_tokens": self.tokens - 20, "completion_tokens": 20, "total_tokens": self.tokens},
        )


class ChatApiRecorder:
    """MockTransport handler standing in for the live-chat REST API."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": self.status_code < 400})

    def sent_messages(self) -> List[dict]:
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def corpus_path(tmp_path):
    path = tmp_path / "embeddings.json"
    path.write_text(json.dumps(CORPUS), encoding="utf-8")
    return path


@pytest.fixture
def make_settings(corpus_path):
    def _make(**overrides) -> Settings:
        values = {
            "environment": "test",
            "database_url": None,
            "redis_url": None,
            "openai_api_key": None,
            "llm_mock_mode": True,
            "corpus_path": str(corpus_path),
            "retrieval_mode": "keyword",
            "tawk_api_key": "tawk-key",
            "tawk_property_id": "property-1",
            "tawk_webhook_secret": WEBHOOK_SECRET,
            "require_webhook_signature": False,
            "admin_token": ADMIN_TOKEN,
            "telemetry_flush_interval_seconds": 3600.0,
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def chat_api():
    return ChatApiRecorder()


@pytest.fixture
def tawk_client(chat_api):
    return TawkClient(
        "tawk-key",
        "property-1",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(chat_api)),
    )


@pytest.fixture
def llm_factory():
    return FakeLLM


@pytest.fixture
def sqlite_database(tmp_path):
    from chat_relay.database import Database

    database = Database(f"sqlite:///{tmp_path / 'relay.db'}")
    database.open()
    database.create_all()
    yield database
    database.close()


@pytest.fixture
def container(make_settings, fake_llm, tawk_client):
    from chat_relay.dependencies import ServiceContainer

    return ServiceContainer.build(make_settings(), llm=fake_llm, tawk=tawk_client)


@pytest.fixture
def client(container):
    from fastapi.testclient import TestClient

    from chat_relay.main import create_app

    with TestClient(create_app(container)) as test_client:
        yield test_client


@pytest.fixture
def post_webhook(client):
    """POST a payload to the webhook, signed with the test secret unless `signature` is given."""
    from chat_relay.services.signature_service import SIGNATURE_HEADER, compute_signature

    def _post(payload, *, signature=None, secret=WEBHOOK_SECRET):
        body = json.dumps(payload).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            SIGNATURE_HEADER: signature if signature is not None else compute_signature(body, secret),
        }
        return client.post("/api/webhook", content=body, headers=headers)

    return _post
