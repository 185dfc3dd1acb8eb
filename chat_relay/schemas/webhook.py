from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Optional payload fields with an unexpected type count as missing.


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _id_or_none(value: Any) -> Optional[Union[str, int]]:
    if isinstance(value, bool):
        return None
    return value if isinstance(value, (str, int)) else None


class TawkSender(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: Optional[str] = None
    name: Optional[str] = None

    @field_validator("type", "name", mode="before")
    @classmethod
    def drop_non_text(cls, value: Any) -> Optional[str]:
        return _str_or_none(value)


class TawkMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    text: Optional[str] = None
    id: Optional[Union[str, int]] = None
    type: Optional[str] = None
    # Plain tag ("visitor") or an object carrying `type`.
    sender: Optional[Union[str, TawkSender]] = None

    @field_validator("type", mode="before")
    @classmethod
    def drop_non_text(cls, value: Any) -> Optional[str]:
        return _str_or_none(value)

    @field_validator("id", mode="before")
    @classmethod
    def drop_bad_id(cls, value: Any) -> Optional[Union[str, int]]:
        return _id_or_none(value)

    @field_validator("sender", mode="before")
    @classmethod
    def drop_unknown_sender(cls, value: Any) -> Any:
        return value if isinstance(value, (str, dict)) else None


class TawkVisitor(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = None
    name: Optional[str] = None
    email: Optional[str] = None

    @field_validator("name", "email", mode="before")
    @classmethod
    def drop_non_text(cls, value: Any) -> Optional[str]:
        return _str_or_none(value)

    @field_validator("id", mode="before")
    @classmethod
    def drop_bad_id(cls, value: Any) -> Optional[Union[str, int]]:
        return _id_or_none(value)


class TawkProperty(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[Union[str, int]] = None

    @field_validator("id", mode="before")
    @classmethod
    def drop_bad_id(cls, value: Any) -> Optional[Union[str, int]]:
        return _id_or_none(value)


class WebhookPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    message: TawkMessage
    visitor: TawkVisitor
    chatId: Optional[Union[str, int]] = None
    time: Optional[Union[str, int]] = None
    property: Optional[TawkProperty] = None

    @field_validator("chatId", "time", mode="before")
    @classmethod
    def drop_bad_scalar(cls, value: Any) -> Optional[Union[str, int]]:
        return _id_or_none(value)

    @field_validator("property", mode="before")
    @classmethod
    def drop_bad_property(cls, value: Any) -> Any:
        return value if isinstance(value, dict) else None


class InboundMessage(BaseModel):
    """Canonical visitor message, validated once at the webhook boundary."""

    model_config = ConfigDict(frozen=True)

    text: str
    visitor_id: Optional[str] = None
    visitor_name: str = "Visitante"
    visitor_email: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    property_id: Optional[str] = None
    received_at: str


class DebugRequest(BaseModel):
    message: Optional[str] = None


class RetrievalSnippet(BaseModel):
    chunkId: Optional[int] = None
    text: str
    similarity: float


class DebugResponse(BaseModel):
    success: bool
    userMessage: str
    aiResponse: str
    relevantChunks: list[RetrievalSnippet] = Field(default_factory=list)
    usage: dict[str, Any]
    cost: float
    fromCache: bool
    error: Optional[str] = None
    timestamp: datetime
