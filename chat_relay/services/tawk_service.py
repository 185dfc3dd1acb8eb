from dataclasses import dataclass
from typing import Any, Optional

import httpx

from chat_relay.logging_config import get_logger

logger = get_logger("tawk_service")

NOT_CONFIGURED_ERROR = "Credenciales no configuradas"


@dataclass
class DeliveryResult:
    success: bool
    error: Optional[str] = None
    status_code: Optional[int] = None
    data: Any = None


class TawkClient:
    """Sends agent replies back to the live-chat property."""

    def __init__(
        self,
        api_key: Optional[str],
        property_id: Optional[str],
        *,
        base_url: str = "https://api.tawk.to/v3",
        timeout_seconds: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.property_id = property_id
        self.base_url = base_url.rstrip("/")
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    def is_configured(self) -> bool:
        return bool(self.api_key and self.property_id)

    def config_status(self) -> dict:
        return {
            "apiKeyConfigured": bool(self.api_key),
            "propertyIdConfigured": bool(self.property_id),
            "fullyConfigured": self.is_configured(),
        }

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    async def send_message(self, chat_id: str, text: str) -> DeliveryResult:
        """Post `text` to the chat as an agent message. Never raises."""
        if not self.is_configured():
            logger.warning("Chat credentials not configured - message not sent", extra={"context": {"chat_id": chat_id}})
            return DeliveryResult(success=False, error=NOT_CONFIGURED_ERROR)

        url = f"{self.base_url}/chats/{chat_id}/messages"
        try:
            response = await self._client.post(url, headers=self._headers(), json={"message": text, "type": "agent"})
        except httpx.HTTPError as exc:
            logger.error(f"Chat API request failed: {exc}", extra={"context": {"chat_id": chat_id}})
            return DeliveryResult(success=False, error=str(exc) or type(exc).__name__)

        if response.status_code >= 400:
            logger.error(
                "Chat API error",
                extra={"context": {"chat_id": chat_id, "status": response.status_code, "body": response.text[:500]}},
            )
            return DeliveryResult(
                success=False,
                error=f"Chat API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        logger.info("Reply delivered", extra={"context": {"chat_id": chat_id}})
        return DeliveryResult(success=True, status_code=response.status_code, data=data)

    async def aclose(self) -> None:
        await self._client.aclose()
