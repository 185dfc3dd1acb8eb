import uuid

from sqlalchemy import Column, DateTime, Text, Uuid
from sqlalchemy.orm import relationship

from chat_relay.database import Base


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    external_chat_id = Column(Text, nullable=False, unique=True)
    property_id = Column(Text)
    visitor_id = Column(Text)
    visitor_name = Column(Text)
    visitor_email = Column(Text)
    started_at = Column(DateTime(timezone=True), nullable=False)
    last_message_at = Column(DateTime(timezone=True))

    messages = relationship("Message", back_populates="conversation")
