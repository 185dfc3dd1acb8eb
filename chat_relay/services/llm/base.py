from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


class LLMProviderError(Exception):
    pass


@dataclass
class LLMResponse:
    content: str
    model: str
    usage: Optional[dict] = None

    @property
    def total_tokens(self) -> int:
        if not self.usage:
            return 0
        return int(self.usage.get("total_tokens") or 0)


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    name: str = "abstract"

    @abstractmethod
    async def generate(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 500,
    ) -> LLMResponse:
        """Generate response from LLM."""

    async def aclose(self) -> None:
        return None
