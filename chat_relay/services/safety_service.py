from typing import Iterable

from chat_relay.config import DEFAULT_SAFETY_PHRASES


class SafetyClassifier:
    """Keyword detector for crisis / problem-gambling messages.

    A hit routes the message to the fixed support reply; misses are
    expected and acceptable.
    """

    def __init__(self, phrases: Iterable[str] | None = None) -> None:
        if phrases is None:
            phrases = DEFAULT_SAFETY_PHRASES.split(",")
        self.phrases = tuple(phrase.strip().lower() for phrase in phrases if phrase and phrase.strip())

    def detect(self, text: str) -> bool:
        if not text:
            return False
        lowered = text.lower()
        return any(phrase in lowered for phrase in self.phrases)
