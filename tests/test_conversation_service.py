import asyncio

from chat_relay.database import Database
from chat_relay.models import Conversation, Message
from chat_relay.schemas.webhook import InboundMessage
from chat_relay.services.conversation_service import ConversationStore


def _message(text, conversation_id="c1"):
    return InboundMessage(
        text=text,
        visitor_id="v1",
        visitor_name="Ana",
        conversation_id=conversation_id,
        message_id="m-" + text,
        received_at="2024-05-01T10:00:00Z",
    )


def test_record_inbound_returns_previous_turns(sqlite_database):
    store = ConversationStore(sqlite_database)

    async def scenario():
        first = await store.record_inbound(_message("hola"))
        await store.record_reply(_message("hola"), "¡Hola! ¿En qué te ayudo?", tokens_used=30, cost=0.0006)
        second = await store.record_inbound(_message("¿y los bonos?"))
        return first, second

    first, second = asyncio.run(scenario())

    assert first.ok and first.value == []
    assert second.ok
    assert second.value == [
        {"role": "user", "content": "hola"},
        {"role": "assistant", "content": "¡Hola! ¿En qué te ayudo?"},
    ]

    with sqlite_database.session() as db:
        assert db.query(Conversation).count() == 1
        assert db.query(Message).count() == 3
        reply = db.query(Message).filter(Message.role == "assistant").one()
        assert reply.tokens_used == 30


def test_conversations_are_keyed_by_chat_id(sqlite_database):
    store = ConversationStore(sqlite_database)

    async def scenario():
        await store.record_inbound(_message("hola", "c1"))
        return await store.record_inbound(_message("hola", "c2"))

    assert asyncio.run(scenario()).value == []
    with sqlite_database.session() as db:
        assert db.query(Conversation).count() == 2


def test_unconnected_database_is_failure_result():
    store = ConversationStore(Database(None))
    result = asyncio.run(store.record_inbound(_message("hola")))
    assert result.ok is False
    assert result.error_code == "db_unavailable"


def test_message_without_conversation_id(sqlite_database):
    store = ConversationStore(sqlite_database)
    result = asyncio.run(store.record_inbound(_message("hola", None)))
    assert result.error_code == "no_conversation"
