"""Webhook signature verification (HMAC-SHA256)."""

import hashlib
import hmac
import json
from typing import Any, Mapping, Optional, Union

from chat_relay.logging_config import get_logger

logger = get_logger("signature_service")

SIGNATURE_HEADER = "X-Tawk-Signature"

RawPayload = Union[bytes, str, Mapping[str, Any]]


def canonical_payload(raw_payload: RawPayload) -> bytes:
    """Bytes the signature is computed over.

    Raw bodies are signed as received. Parsed mappings are serialized
    compactly, the same way the widget serializes them before signing.
    """
    if isinstance(raw_payload, bytes):
        return raw_payload
    if isinstance(raw_payload, str):
        return raw_payload.encode("utf-8")
    return json.dumps(raw_payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def compute_signature(raw_payload: RawPayload, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), canonical_payload(raw_payload), hashlib.sha256).hexdigest()


def verify(raw_payload: RawPayload, signature_header: Optional[str], secret: Optional[str]) -> bool:
    """Check a webhook signature.

    Without a secret every payload is accepted (development mode); the
    caller is responsible for reporting that as degraded security.
    """
    if not secret:
        return True

    if not signature_header:
        logger.warning("Webhook signature header missing")
        return False

    provided = signature_header.strip()
    if provided.lower().startswith("sha256="):
        provided = provided[len("sha256=") :]

    try:
        provided_bytes = provided.lower().encode("ascii")
    except UnicodeEncodeError:
        logger.warning("Webhook signature is not valid hex")
        return False

    expected = compute_signature(raw_payload, secret).encode("ascii")
    return hmac.compare_digest(expected, provided_bytes)


class SignatureVerifier:
    """Binds the configured secret so the pipeline does not carry it around."""

    def __init__(self, secret: Optional[str]) -> None:
        self.secret = secret

    @property
    def enabled(self) -> bool:
        return bool(self.secret)

    def verify(self, raw_payload: RawPayload, signature_header: Optional[str]) -> bool:
        return verify(raw_payload, signature_header, self.secret)
