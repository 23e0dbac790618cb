import logging
from typing import List, Optional

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from supportdesk.core.database import utcnow
from supportdesk.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from supportdesk.core.roles import Principal, can_access_ticket
from supportdesk.models.chat_session import ChatSession
from supportdesk.models.comment import Comment, CommentChannel
from supportdesk.models.ticket import Ticket, TicketChannel, TicketPriority, TicketStatus
from supportdesk.schemas.activity_schema import TicketCreated
from supportdesk.services.activity_log import ActivityLog

logger = logging.getLogger(__name__)


class TicketService:
    """Ticket intake and reads. Status changes live in TicketStateMachine."""

    def __init__(self, db: Session, activity_log: Optional[ActivityLog] = None):
        self.db = db
        self.activity_log = activity_log or ActivityLog(db)

    def create_ticket(
        self,
        requester: Principal,
        *,
        subject: str,
        description: str,
        priority: TicketPriority = TicketPriority.NORMAL,
        channel: TicketChannel = TicketChannel.WEB,
        form_id: Optional[str] = None,
        chat_session_id: Optional[str] = None,
    ) -> Ticket:
        """Create a NEW ticket whose first comment is the description.

        Ticket row, opening comment, the ticket_created activity and, when
        `chat_session_id` is given, the link on that chat session are
        committed together. A chat session links to at most one ticket.
        """
        if chat_session_id is not None:
            self._check_chat_session(chat_session_id, requester)

        now = utcnow()
        try:
            next_number = (self.db.query(func.max(Ticket.ticket_number)).scalar() or 0) + 1
            ticket = Ticket(
                ticket_number=next_number,
                subject=subject,
                status=TicketStatus.NEW,
                priority=priority,
                channel=channel,
                requester_id=requester.user_id,
                form_id=form_id,
                created_at=now,
                updated_at=now,
            )
            self.db.add(ticket)
            self.db.flush()

            self.db.add(
                Comment(
                    ticket_id=ticket.id,
                    author_id=requester.user_id,
                    body=description,
                    body_plain=description,
                    is_internal=False,
                    is_system=False,
                    channel=CommentChannel.CHAT if channel == TicketChannel.CHAT else CommentChannel.WEB,
                    created_at=now,
                )
            )
            self.activity_log.record(
                TicketCreated(subject=subject, channel=channel.value, chat_session_id=chat_session_id),
                ticket_id=ticket.id,
                user_id=requester.user_id,
            )
            if chat_session_id is not None:
                self._link_chat_session(chat_session_id, ticket.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ticket)
        logger.info("ticket #%s created by %s via %s", ticket.ticket_number, requester.user_id, channel.value)
        return ticket

    def get_ticket(self, ticket_id: str, viewer: Principal) -> Ticket:
        ticket = self.db.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        if not can_access_ticket(viewer, ticket.requester_id):
            raise ForbiddenError()
        return ticket

    def list_tickets(self, viewer: Principal, status: Optional[TicketStatus] = None, limit: int = 100) -> List[Ticket]:
        q = self.db.query(Ticket)
        if not viewer.is_staff:
            q = q.filter(Ticket.requester_id == viewer.user_id)
        if status is not None:
            q = q.filter(Ticket.status == status)
        return q.order_by(Ticket.ticket_number.desc()).limit(limit).all()

    def _check_chat_session(self, chat_session_id: str, requester: Principal) -> None:
        chat = self.db.get(ChatSession, chat_session_id)
        # Another requester's session reads as missing.
        if chat is None or (chat.user_id is not None and chat.user_id != requester.user_id):
            raise ValidationError(
                "Chat session not found",
                [{"field": "chatSessionId", "msg": "Chat session not found"}],
            )

    def _link_chat_session(self, chat_session_id: str, ticket_id: str) -> None:
        result = self.db.execute(
            update(ChatSession)
            .where(ChatSession.id == chat_session_id, ChatSession.ticket_id.is_(None))
            .values(ticket_id=ticket_id)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConflictError("Chat session is already linked to a ticket")
