"""Webhook request lifecycle.

Received -> SignatureChecked -> PayloadValidated -> FilterChecked ->
{safety branch | generation} -> Delivered -> TelemetryRecorded -> Responded.

Only a bad signature (401) and a bad payload (400) end the request with
an error. Persistence, delivery and telemetry degrade without failing
the acknowledgement.
"""

import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from chat_relay.logging_config import LoggerAdapter, bind, get_logger
from chat_relay.schemas.webhook import InboundMessage
from chat_relay.services.ai_service import GenerationResult, ResponseGenerator
from chat_relay.services.conversation_service import ConversationStore
from chat_relay.services.payload_service import PayloadNormalizer
from chat_relay.services.prompts import SUPPORT_MESSAGE
from chat_relay.services.safety_service import SafetyClassifier
from chat_relay.services.signature_service import SignatureVerifier
from chat_relay.services.tawk_service import TawkClient
from chat_relay.services.telemetry_service import TelemetrySink

logger = get_logger("pipeline_service")

MSG_INVALID_SIGNATURE = "Firma inválida"
MSG_INVALID_JSON = "JSON inválido"
MSG_IGNORED = "Webhook recibido pero no procesado"
MSG_PROCESSED = "Webhook procesado exitosamente"
MSG_INTERNAL_ERROR = "Error interno procesando webhook"
MSG_TEST_MISSING_MESSAGE = 'Campo "message" requerido'
MSG_TEST_ERROR = "Error generando respuesta"

DELIVERY_FAILED_EVENT = "delivery_failed"
SAFETY_EVENT = "safety_triggered"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PipelineResponse:
    status_code: int
    body: dict


@dataclass
class _Outcome:
    text: str
    tokens_used: int = 0
    cost: float = 0.0
    from_cache: bool = False
    safety_triggered: bool = False
    degraded: List[str] = field(default_factory=list)


class WebhookPipeline:
    def __init__(
        self,
        verifier: SignatureVerifier,
        normalizer: PayloadNormalizer,
        safety: SafetyClassifier,
        generator: ResponseGenerator,
        telemetry: TelemetrySink,
        delivery: TawkClient,
        conversations: Optional[ConversationStore] = None,
        *,
        support_message: str = SUPPORT_MESSAGE,
    ) -> None:
        self.verifier = verifier
        self.normalizer = normalizer
        self.safety = safety
        self.generator = generator
        self.telemetry = telemetry
        self.delivery = delivery
        self.conversations = conversations
        self.support_message = support_message

    async def handle(
        self, raw_body: bytes, signature: Optional[str], client_meta: Optional[dict] = None
    ) -> PipelineResponse:
        client_meta = client_meta or {}
        log = bind(logger, uuid.uuid4().hex[:12])
        started = time.monotonic()
        try:
            return await self._handle(raw_body, signature, client_meta, log, started)
        except Exception as exc:
            log.error(f"Webhook processing failed: {exc}", exc_info=True)
            await self.telemetry.track_error(exc, {"stage": "webhook"}, self._telemetry_meta(None, client_meta))
            return PipelineResponse(
                500,
                {"error": MSG_INTERNAL_ERROR, "message": str(exc), "timestamp": _timestamp()},
            )

    async def _handle(
        self,
        raw_body: bytes,
        signature: Optional[str],
        client_meta: dict,
        log: LoggerAdapter,
        started: float,
    ) -> PipelineResponse:
        degraded: List[str] = []

        if not self.verifier.verify(raw_body, signature):
            log.warning("Invalid webhook signature")
            return PipelineResponse(401, {"error": MSG_INVALID_SIGNATURE, "timestamp": _timestamp()})
        if not self.verifier.enabled:
            log.warning("Webhook secret not configured - signature not verified")
            degraded.append("signature_unverified")

        try:
            payload = json.loads(raw_body)
        except (ValueError, UnicodeDecodeError):
            log.warning("Webhook body is not valid JSON")
            return PipelineResponse(400, {"error": MSG_INVALID_JSON, "timestamp": _timestamp()})

        validation = self.normalizer.validate(payload)
        if not validation.valid:
            log.warning("Invalid webhook payload", context={"error": validation.error, "field": validation.field})
            return PipelineResponse(
                400,
                {"error": validation.error, "field": validation.field, "timestamp": _timestamp()},
            )

        decision = self.normalizer.should_process(payload)
        if not decision.process:
            log.info("Webhook ignored", context={"reason": decision.reason})
            return PipelineResponse(
                200,
                {"success": True, "message": MSG_IGNORED, "reason": decision.reason, "timestamp": _timestamp()},
            )

        message = self.normalizer.extract(payload)
        log.info(
            "Webhook accepted",
            context={"conversation_id": message.conversation_id, "visitor_id": message.visitor_id},
        )

        history = await self._record_inbound(message, degraded, log)

        if self.safety.detect(message.text):
            log.warning("Safety phrase detected - sending support message")
            outcome = _Outcome(text=self.support_message, safety_triggered=True)
            await self.telemetry.track(
                SAFETY_EVENT,
                {"conversationId": message.conversation_id},
                self._telemetry_meta(message, client_meta),
            )
        else:
            generation = await self.generator.generate(message.text, history)
            outcome = self._from_generation(generation)
            if generation.error:
                await self.telemetry.track_error(
                    generation.error,
                    {"stage": "generation", "conversationId": message.conversation_id},
                    self._telemetry_meta(message, client_meta),
                )
        degraded.extend(outcome.degraded)

        await self._record_reply(message, outcome, degraded, log)

        response_sent = False
        if message.conversation_id:
            delivery = await self.delivery.send_message(message.conversation_id, outcome.text)
            response_sent = delivery.success
            if not delivery.success:
                log.warning("Reply delivery failed", context={"error": delivery.error, "status": delivery.status_code})
                degraded.append("delivery_failed")
                await self.telemetry.track(
                    DELIVERY_FAILED_EVENT,
                    {
                        "conversationId": message.conversation_id,
                        "error": delivery.error,
                        "statusCode": delivery.status_code,
                    },
                    self._telemetry_meta(message, client_meta),
                )

        processing_time = int((time.monotonic() - started) * 1000)
        await self.telemetry.track_message(
            conversation_id=message.conversation_id,
            message_text=message.text,
            response_text=outcome.text,
            processing_time_ms=processing_time,
            tokens_used=outcome.tokens_used,
            from_cache=outcome.from_cache,
            safety_triggered=outcome.safety_triggered,
            metadata=self._telemetry_meta(message, client_meta),
        )

        log.info(
            "Webhook processed",
            context={
                "processing_ms": processing_time,
                "tokens": outcome.tokens_used,
                "from_cache": outcome.from_cache,
                "degraded": degraded,
            },
        )
        return PipelineResponse(
            200,
            {
                "success": True,
                "message": MSG_PROCESSED,
                "visitor": message.visitor_name,
                "responseSent": response_sent,
                "processingTime": processing_time,
                "tokensUsed": outcome.tokens_used,
                "cost": round(outcome.cost, 6),
                "fromCache": outcome.from_cache,
                "safetyTriggered": outcome.safety_triggered,
                "degraded": degraded,
                "timestamp": _timestamp(),
            },
        )

    async def handle_test(self, message: Optional[str]) -> PipelineResponse:
        """Generation only: no signature, no persistence, no delivery."""
        if not message or not message.strip():
            return PipelineResponse(400, {"error": MSG_TEST_MISSING_MESSAGE, "timestamp": _timestamp()})
        try:
            generation = await self.generator.generate(message)
        except Exception as exc:
            logger.error(f"Test generation failed: {exc}", exc_info=True)
            return PipelineResponse(500, {"error": MSG_TEST_ERROR, "message": str(exc), "timestamp": _timestamp()})

        return PipelineResponse(
            200,
            {
                "success": True,
                "userMessage": message,
                "aiResponse": generation.text,
                "relevantChunks": generation.retrieval_snippets,
                "usage": {"total_tokens": generation.tokens_used},
                "cost": round(generation.cost, 6),
                "fromCache": generation.from_cache,
                "error": generation.error,
                "timestamp": _timestamp(),
            },
        )

    async def _record_inbound(self, message: InboundMessage, degraded: List[str], log: LoggerAdapter) -> List[dict]:
        if self.conversations is None:
            return []
        result = await self.conversations.record_inbound(message)
        if not result.ok:
            log.warning("Conversation persistence skipped", context={"error": result.error, "code": result.error_code})
            degraded.append("database")
            return []
        return result.value or []

    async def _record_reply(
        self, message: InboundMessage, outcome: _Outcome, degraded: List[str], log: LoggerAdapter
    ) -> None:
        if self.conversations is None or "database" in degraded:
            return
        result = await self.conversations.record_reply(
            message,
            outcome.text,
            tokens_used=outcome.tokens_used,
            cost=outcome.cost,
            from_cache=outcome.from_cache,
            metadata={"safetyTriggered": outcome.safety_triggered},
        )
        if not result.ok:
            log.warning("Reply persistence skipped", context={"error": result.error, "code": result.error_code})
            degraded.append("database")

    @staticmethod
    def _from_generation(generation: GenerationResult) -> _Outcome:
        return _Outcome(
            text=generation.text,
            tokens_used=generation.tokens_used,
            cost=generation.cost,
            from_cache=generation.from_cache,
            degraded=list(generation.degraded),
        )

    @staticmethod
    def _telemetry_meta(message: Optional[InboundMessage], client_meta: dict) -> dict:
        return {
            "user_id": message.visitor_id if message else None,
            "session_id": message.conversation_id if message else None,
            "ip_address": client_meta.get("ip_address"),
            "user_agent": client_meta.get("user_agent"),
        }
