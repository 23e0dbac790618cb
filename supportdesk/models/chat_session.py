from enum import Enum as PyEnum

from sqlalchemy import Column, String, DateTime, Boolean, Enum, ForeignKey
from sqlalchemy.orm import relationship

from supportdesk.core.database import Base, new_id, utcnow


class ChatSessionStatus(str, PyEnum):
    ACTIVE = "ACTIVE"
    ENDED = "ENDED"


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    # NULL for anonymous widget visitors
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=True)

    status = Column(Enum(ChatSessionStatus, name="chat_session_status", native_enum=False), default=ChatSessionStatus.ACTIVE, nullable=False, index=True)
    resolved = Column(Boolean, default=False, nullable=False)
    # Set when the conversation was handed off to a ticket
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    messages = relationship(
        "ChatMessage",
        back_populates="session",
        order_by="ChatMessage.position",
        cascade="all, delete-orphan",
    )
