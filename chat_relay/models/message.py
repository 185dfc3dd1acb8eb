import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, Text, Uuid
from sqlalchemy.orm import relationship

from chat_relay.database import Base
from chat_relay.models.types import JSONType


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id = Column(Uuid, ForeignKey("conversations.id"), nullable=False, index=True)
    role = Column(Text, nullable=False)  # user, assistant
    content = Column(Text, nullable=False)
    external_message_id = Column(Text)
    tokens_used = Column(Integer, nullable=False, default=0)
    cost = Column(Numeric(12, 6), nullable=False, default=0)
    from_cache = Column(Boolean, nullable=False, default=False)
    message_metadata = Column("metadata", JSONType, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)

    conversation = relationship("Conversation", back_populates="messages")
