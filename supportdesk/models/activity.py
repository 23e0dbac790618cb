from sqlalchemy import Column, String, DateTime, ForeignKey, JSON

from supportdesk.core.database import Base, new_id, utcnow


class Activity(Base):
    """Append-only audit record. Rows are inserted, never updated or deleted."""

    __tablename__ = "activities"

    id = Column(String(36), primary_key=True, default=new_id)
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), index=True, nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=True)

    # e.g. "comment_added", "ticket_created", "session_started"
    action = Column(String(64), index=True, nullable=False)
    details = Column(JSON, nullable=False, default=dict)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
