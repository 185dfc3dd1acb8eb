from typing import List, Optional

import httpx

from chat_relay.logging_config import get_logger

logger = get_logger("embedding_service")


class EmbeddingError(Exception):
    pass


class OpenAIEmbeddingClient:
    """Query embeddings from the OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = "text-embedding-3-large",
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/embeddings"
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def embed(self, text: str, model: Optional[str] = None) -> List[float]:
        model = model or self.model
        try:
            response = await self._client.post(
                self.url,
                headers={"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"},
                json={"model": model, "input": text},
            )
        except httpx.HTTPError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error(f"Embedding error: {response.status_code} - {response.text[:200]}")
            raise EmbeddingError(f"Embedding API error: {response.status_code}")

        data = response.json()
        try:
            return [float(value) for value in data["data"][0]["embedding"]]
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise EmbeddingError(f"Unexpected embedding response: {exc}") from exc

    async def aclose(self) -> None:
        await self._client.aclose()
