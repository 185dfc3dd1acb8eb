from typing import List, Optional

import httpx

from chat_relay.logging_config import get_logger
from chat_relay.services.llm.base import LLMProvider, LLMProviderError, LLMResponse

logger = get_logger("llm.openai")


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions over httpx."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        default_model: str = "gpt-4-turbo-preview",
        *,
        base_url: str = "https://api.openai.com/v1",
        timeout_seconds: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = f"{base_url.rstrip('/')}/chat/completions"
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> LLMResponse:
        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        logger.debug(f"OpenAI request: model={model}, messages_count={len(messages)}")

        try:
            response = await self._client.post(
                self.base_url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json=payload,
            )
        except httpx.HTTPError as exc:
            raise LLMProviderError(f"OpenAI request failed: {exc}") from exc

        logger.debug(f"OpenAI response status: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"OpenAI error: {response.text[:500]}")
            raise LLMProviderError(f"OpenAI API error: {response.status_code}")

        data = response.json()
        content = ""
        if data.get("choices"):
            message = data["choices"][0].get("message", {})
            content = message.get("content") or ""
        if not content:
            raise LLMProviderError("OpenAI returned an empty completion")

        return LLMResponse(
            content=content,
            model=data.get("model", model),
            usage=data.get("usage"),
        )

    async def aclose(self) -> None:
        await self._client.aclose()
