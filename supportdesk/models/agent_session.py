from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from supportdesk.core.database import Base, new_id, utcnow


class AgentSession(Base):
    __tablename__ = "agent_sessions"

    id = Column(String(36), primary_key=True, default=new_id)
    agent_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)

    login_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    # NULL while the session is open
    logout_at = Column(DateTime(timezone=True), nullable=True, index=True)
    duration = Column(Integer, nullable=True)  # seconds, set once on close
    reply_count = Column(Integer, default=0, nullable=False)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
