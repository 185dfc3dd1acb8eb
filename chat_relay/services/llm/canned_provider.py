from typing import List, Optional

from chat_relay.services.llm.base import LLMProvider, LLMResponse
from chat_relay.services.prompts import canned_response


class CannedResponseProvider(LLMProvider):
    """Offline provider: keyword-selected canned answers, zero tokens."""

    name = "canned"

    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> LLMResponse:
        user_text = next((m.get("content", "") for m in reversed(messages) if m.get("role") == "user"), "")
        return LLMResponse(content=canned_response(user_text), model="canned", usage={"total_tokens": 0})
