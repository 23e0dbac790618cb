from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, Enum, ForeignKey
from sqlalchemy.orm import relationship

from supportdesk.core.database import Base, new_id, utcnow


class ChatRole(str, PyEnum):
    USER = "USER"
    ASSISTANT = "ASSISTANT"


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    session_id = Column(String(36), ForeignKey("chat_sessions.id", ondelete="CASCADE"), index=True, nullable=False)
    # 1-based order within the session; regeneration keeps it
    position = Column(Integer, nullable=False)

    role = Column(Enum(ChatRole, name="chat_role", native_enum=False), nullable=False)
    content = Column(Text, nullable=False)
    # None = awaiting feedback; only meaningful on ASSISTANT messages
    was_helpful = Column(Boolean, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    session = relationship("ChatSession", back_populates="messages")
