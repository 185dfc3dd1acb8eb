from chat_relay.models.analytics_event import AnalyticsEvent
from chat_relay.models.conversation import Conversation
from chat_relay.models.message import Message

__all__ = [
    "AnalyticsEvent",
    "Conversation",
    "Message",
]
