from chat_relay.services.llm.base import LLMProvider, LLMProviderError, LLMResponse
from chat_relay.services.llm.canned_provider import CannedResponseProvider
from chat_relay.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMProviderError", "LLMResponse", "CannedResponseProvider", "OpenAIProvider"]
