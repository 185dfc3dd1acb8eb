"""Validation and extraction of inbound live-chat webhook payloads."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import ValidationError

from chat_relay.schemas.webhook import InboundMessage, WebhookPayload

DEFAULT_VISITOR_NAME = "Visitante"
DEFAULT_SYSTEM_MARKER = "[Sistema]"

ERROR_EMPTY_PAYLOAD = "Payload vacío"
ERROR_MISSING_MESSAGE = 'Campo "message" faltante'
ERROR_MISSING_TEXT = 'Campo "message.text" faltante'
ERROR_MISSING_VISITOR = 'Campo "visitor" faltante'

REASON_NOT_VISITOR = "Mensaje no es del visitante"
REASON_EMPTY = "Mensaje vacío"
REASON_SYSTEM = "Mensaje del sistema"

VISITOR_TAG = "visitor"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    field: Optional[str] = None


@dataclass(frozen=True)
class ProcessDecision:
    process: bool
    reason: Optional[str] = None


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PayloadNormalizer:
    def __init__(self, system_marker: str = DEFAULT_SYSTEM_MARKER) -> None:
        self.system_marker = system_marker

    def validate(self, payload: Any) -> ValidationResult:
        """Report the first missing required field, each with its own reason."""
        if not payload or not isinstance(payload, dict):
            return ValidationResult(valid=False, error=ERROR_EMPTY_PAYLOAD, field="payload")

        message = payload.get("message")
        if not message or not isinstance(message, dict):
            return ValidationResult(valid=False, error=ERROR_MISSING_MESSAGE, field="message")

        text = message.get("text")
        if not text or not isinstance(text, str):
            return ValidationResult(valid=False, error=ERROR_MISSING_TEXT, field="message.text")

        visitor = payload.get("visitor")
        if not visitor or not isinstance(visitor, dict):
            return ValidationResult(valid=False, error=ERROR_MISSING_VISITOR, field="visitor")

        try:
            WebhookPayload.model_validate(payload)
        except ValidationError as exc:
            first = exc.errors()[0]
            location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
            return ValidationResult(valid=False, error=f'Campo "{location}" inválido', field=location)

        return ValidationResult(valid=True)

    @staticmethod
    def is_visitor_message(payload: dict) -> bool:
        """Sender inference.

        A `visitor` tag in `type` or `sender` means visitor. Without a
        sender tag the message also counts as visitor, whatever its `type`
        (Tawk sends `type: "msg"` on ordinary chat lines). Any other sender
        marks it as agent/system authored.
        """
        message = payload.get("message") or {}
        sender = message.get("sender")
        if isinstance(sender, dict):
            sender = sender.get("type")
        sender_tag = sender.strip().lower() if isinstance(sender, str) else ""
        type_tag = message.get("type")
        type_tag = type_tag.strip().lower() if isinstance(type_tag, str) else ""
        return VISITOR_TAG in (type_tag, sender_tag) or not sender_tag

    def should_process(self, payload: dict) -> ProcessDecision:
        if not self.is_visitor_message(payload):
            return ProcessDecision(process=False, reason=REASON_NOT_VISITOR)

        text = (payload.get("message") or {}).get("text") or ""
        if not text.strip():
            return ProcessDecision(process=False, reason=REASON_EMPTY)

        if self.system_marker and text.startswith(self.system_marker):
            return ProcessDecision(process=False, reason=REASON_SYSTEM)

        return ProcessDecision(process=True)

    def extract(self, payload: dict) -> InboundMessage:
        """Build the typed record. Call only after `validate` succeeded."""
        parsed = WebhookPayload.model_validate(payload)
        return InboundMessage(
            text=parsed.message.text or "",
            message_id=_as_optional_str(parsed.message.id),
            visitor_id=_as_optional_str(parsed.visitor.id),
            visitor_name=parsed.visitor.name or DEFAULT_VISITOR_NAME,
            visitor_email=_as_optional_str(parsed.visitor.email),
            conversation_id=_as_optional_str(parsed.chatId),
            property_id=_as_optional_str(parsed.property.id) if parsed.property else None,
            received_at=_as_optional_str(parsed.time) or _now_iso(),
        )
