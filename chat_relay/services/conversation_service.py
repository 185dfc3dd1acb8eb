"""Conversation and message persistence.

Best effort: callers get a `Result` and carry on without enrichment
when the database is missing or failing.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chat_relay.database import Database
from chat_relay.logging_config import get_logger
from chat_relay.models import Conversation, Message
from chat_relay.schemas.webhook import InboundMessage
from chat_relay.services.result import Result

logger = get_logger("conversation_service")

HISTORY_LIMIT = 10


def get_or_create_conversation(db: Session, message: InboundMessage) -> Conversation:
    """Find conversation by external chat id or create new one."""
    conversation = db.query(Conversation).filter(Conversation.external_chat_id == message.conversation_id).first()

    if not conversation:
        conversation = Conversation(
            external_chat_id=message.conversation_id,
            property_id=message.property_id,
            visitor_id=message.visitor_id,
            visitor_name=message.visitor_name,
            visitor_email=message.visitor_email,
            started_at=datetime.now(timezone.utc),
        )
        db.add(conversation)
        db.flush()
    elif message.visitor_email and not conversation.visitor_email:
        conversation.visitor_email = message.visitor_email

    return conversation


def get_recent_history(db: Session, conversation: Conversation, limit: int = HISTORY_LIMIT) -> List[dict]:
    """Oldest-first list of the last `limit` turns as chat messages."""
    rows = (
        db.query(Message)
        .filter(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc())
        .limit(limit)
        .all()
    )
    return [{"role": row.role, "content": row.content} for row in reversed(rows)]


class ConversationStore:
    def __init__(self, database: Database, *, history_limit: int = HISTORY_LIMIT) -> None:
        self.database = database
        self.history_limit = history_limit

    @property
    def available(self) -> bool:
        return self.database.is_connected

    async def record_inbound(self, message: InboundMessage) -> Result[List[dict]]:
        """Store the visitor message and return the turns that preceded it."""
        if not self.available:
            return Result.failure("Database not connected", "db_unavailable")
        if not message.conversation_id:
            return Result.failure("Message has no conversation id", "no_conversation")
        try:
            history = await asyncio.to_thread(self._record_inbound, message)
        except SQLAlchemyError as exc:
            return Result.from_exception(exc, "db_error")
        return Result.success(history)

    async def record_reply(
        self,
        message: InboundMessage,
        reply: str,
        *,
        tokens_used: int = 0,
        cost: float = 0.0,
        from_cache: bool = False,
        metadata: Optional[dict] = None,
    ) -> Result[None]:
        if not self.available:
            return Result.failure("Database not connected", "db_unavailable")
        if not message.conversation_id:
            return Result.failure("Message has no conversation id", "no_conversation")
        try:
            await asyncio.to_thread(
                self._record_reply, message, reply, tokens_used, cost, from_cache, metadata or {}
            )
        except SQLAlchemyError as exc:
            return Result.from_exception(exc, "db_error")
        return Result.success()

    def _record_inbound(self, message: InboundMessage) -> List[dict]:
        now = datetime.now(timezone.utc)
        with self.database.session() as db:
            conversation = get_or_create_conversation(db, message)
            history = get_recent_history(db, conversation, self.history_limit)
            db.add(
                Message(
                    conversation_id=conversation.id,
                    role="user",
                    content=message.text,
                    external_message_id=message.message_id,
                    message_metadata={"visitorName": message.visitor_name},
                    created_at=now,
                )
            )
            conversation.last_message_at = now
        return history

    def _record_reply(
        self,
        message: InboundMessage,
        reply: str,
        tokens_used: int,
        cost: float,
        from_cache: bool,
        metadata: dict,
    ) -> None:
        now = datetime.now(timezone.utc)
        with self.database.session() as db:
            conversation = get_or_create_conversation(db, message)
            db.add(
                Message(
                    conversation_id=conversation.id,
                    role="assistant",
                    content=reply,
                    tokens_used=tokens_used,
                    cost=cost,
                    from_cache=from_cache,
                    message_metadata=metadata,
                    created_at=now,
                )
            )
            conversation.last_message_at = now
