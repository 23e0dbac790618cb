from enum import Enum as PyEnum

from sqlalchemy import Column, String, Text, DateTime, Boolean, Enum, ForeignKey
from sqlalchemy.orm import relationship

from supportdesk.core.database import Base, new_id, utcnow


class CommentChannel(str, PyEnum):
    WEB = "WEB"
    EMAIL = "EMAIL"
    API = "API"
    CHAT = "CHAT"
    SYSTEM = "SYSTEM"


class Comment(Base):
    """A reply on a ticket. Written once, never edited."""

    __tablename__ = "comments"

    id = Column(String(36), primary_key=True, default=new_id)
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), index=True, nullable=False)
    author_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    body = Column(Text, nullable=False)
    body_plain = Column(Text, nullable=False)
    is_internal = Column(Boolean, default=False, nullable=False)
    is_system = Column(Boolean, default=False, nullable=False)
    channel = Column(Enum(CommentChannel, name="comment_channel", native_enum=False), default=CommentChannel.WEB, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    author = relationship("User")
