from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey
from sqlalchemy.orm import relationship

from supportdesk.core.database import Base, new_id, utcnow


class TicketStatus(str, PyEnum):
    NEW = "NEW"
    OPEN = "OPEN"
    PENDING = "PENDING"
    ON_HOLD = "ON_HOLD"
    SOLVED = "SOLVED"


class TicketPriority(str, PyEnum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TicketChannel(str, PyEnum):
    EMAIL = "EMAIL"
    WEB = "WEB"
    API = "API"
    CHAT = "CHAT"
    INTERNAL = "INTERNAL"


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=new_id)
    # Human-facing "#123" number, assigned at intake
    ticket_number = Column(Integer, unique=True, index=True, nullable=False)
    subject = Column(String(500), nullable=False)

    status = Column(Enum(TicketStatus, name="ticket_status", native_enum=False), default=TicketStatus.NEW, nullable=False, index=True)
    priority = Column(Enum(TicketPriority, name="ticket_priority", native_enum=False), default=TicketPriority.NORMAL, nullable=False)
    channel = Column(Enum(TicketChannel, name="ticket_channel", native_enum=False), default=TicketChannel.WEB, nullable=False)

    requester_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=False)
    assignee_id = Column(String(36), ForeignKey("users.id"), index=True, nullable=True)
    form_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    first_response_at = Column(DateTime(timezone=True), nullable=True)
    solved_at = Column(DateTime(timezone=True), nullable=True)

    requester = relationship("User", foreign_keys=[requester_id])
    assignee = relationship("User", foreign_keys=[assignee_id])
