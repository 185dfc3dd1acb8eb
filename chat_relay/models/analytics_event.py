from sqlalchemy import Column, DateTime, Text
from sqlalchemy.sql import func

from chat_relay.database import Base
from chat_relay.models.types import BigIntPK, JSONType


class AnalyticsEvent(Base):
    __tablename__ = "analytics"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    event_type = Column(Text, nullable=False, index=True)
    event_data = Column(JSONType, nullable=False, default=dict)
    user_id = Column(Text)
    session_id = Column(Text)
    ip_address = Column(Text)
    user_agent = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
