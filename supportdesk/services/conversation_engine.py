"""
Chat sessions between a requester and the assistant.

A session is ACTIVE until ended (by the requester or by hand-off to a
ticket); ENDED is terminal and every mutating call on it is a Conflict.
Messages keep their 1-based position for life, so regenerating an
assistant reply replaces its content in place.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlalchemy import exists, func, update
from sqlalchemy.orm import Session

from supportdesk.core.config import settings
from supportdesk.core.database import utcnow
from supportdesk.core.exceptions import (
    ConflictError,
    ForbiddenError,
    GenerationError,
    InternalError,
    NotFoundError,
    ValidationError,
)
from supportdesk.core.roles import Principal, Role
from supportdesk.models.chat_message import ChatMessage, ChatRole
from supportdesk.models.chat_session import ChatSession, ChatSessionStatus
from supportdesk.models.ticket import Ticket, TicketChannel
from supportdesk.schemas.activity_schema import (
    ChatFeedback,
    ChatHandedOff,
    ChatResponseRegenerated,
    ChatSessionEnded,
    ChatSessionStarted,
)
from supportdesk.services.activity_log import ActivityLog
from supportdesk.services.escalation import HandoffPayload, compose_handoff
from supportdesk.services.response_generator import ResponseGenerator
from supportdesk.services.ticket_service import TicketService

logger = logging.getLogger(__name__)


@dataclass
class ChatReply:
    session_id: str
    message_id: Optional[str]
    response: str
    # False when the generator failed and `response` is the fallback text
    generated: bool = True


class ConversationEngine:
    def __init__(
        self,
        db: Session,
        generator: ResponseGenerator,
        activity_log: Optional[ActivityLog] = None,
    ):
        self.db = db
        self.generator = generator
        self.activity_log = activity_log or ActivityLog(db)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _load_session(self, session_id: str, requester: Optional[Principal]) -> ChatSession:
        """Fetch a session the caller may act on.

        Sessions owned by someone else read as missing. Anonymous sessions
        belong to whoever holds the id.
        """
        chat = self.db.get(ChatSession, session_id)
        if chat is None:
            raise NotFoundError("Session not found")
        if chat.user_id is not None and (requester is None or requester.user_id != chat.user_id):
            raise NotFoundError("Session not found")
        return chat

    def _load_active_session(self, session_id: str, requester: Optional[Principal]) -> ChatSession:
        chat = self._load_session(session_id, requester)
        if chat.status == ChatSessionStatus.ENDED:
            raise ConflictError("Chat session has ended")
        return chat

    def _load_message(self, chat: ChatSession, message_id: str) -> ChatMessage:
        message = self.db.get(ChatMessage, message_id)
        if message is None or message.session_id != chat.id:
            raise NotFoundError("Message not found")
        return message

    def _history(self, session_id: str, before_position: Optional[int] = None) -> List[ChatMessage]:
        q = self.db.query(ChatMessage).filter(ChatMessage.session_id == session_id)
        if before_position is not None:
            q = q.filter(ChatMessage.position < before_position)
        return q.order_by(ChatMessage.position.asc()).all()

    def _append(self, session_id: str, role: ChatRole, content: str) -> ChatMessage:
        last = (
            self.db.query(func.max(ChatMessage.position))
            .filter(ChatMessage.session_id == session_id)
            .scalar()
        )
        now = utcnow()
        message = ChatMessage(
            session_id=session_id,
            position=(last or 0) + 1,
            role=role,
            content=content,
            created_at=now,
        )
        self.db.add(message)
        self.db.execute(update(ChatSession).where(ChatSession.id == session_id).values(updated_at=now))
        self.db.flush()
        return message

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def send_message(
        self,
        text: str,
        requester: Optional[Principal] = None,
        session_id: Optional[str] = None,
    ) -> ChatReply:
        if not settings.CHAT_ENABLED:
            raise ForbiddenError("Chat is currently disabled")

        try:
            if session_id is None:
                chat = ChatSession(
                    user_id=requester.user_id if requester else None,
                    status=ChatSessionStatus.ACTIVE,
                )
                self.db.add(chat)
                self.db.flush()
                self.activity_log.record(
                    ChatSessionStarted(chat_session_id=chat.id),
                    user_id=requester.user_id if requester else None,
                )
            else:
                chat = self._load_active_session(session_id, requester)

            self._append(chat.id, ChatRole.USER, text)
            # The requester's message is kept whatever happens to the reply.
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        chat_id = chat.id
        history = self._history(chat_id)
        try:
            reply = self.generator.generate(history)
        except GenerationError:
            logger.warning("chat reply generation failed for session %s", chat_id, exc_info=True)
            return ChatReply(
                session_id=chat_id,
                message_id=None,
                response=settings.CHAT_FALLBACK_MESSAGE,
                generated=False,
            )

        try:
            # The session may have been ended while the model was thinking.
            self.db.refresh(chat)
            if chat.status == ChatSessionStatus.ENDED:
                raise ConflictError("Chat session has ended")
            message = self._append(chat_id, ChatRole.ASSISTANT, reply)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return ChatReply(session_id=chat_id, message_id=message.id, response=reply)

    def give_feedback(
        self,
        session_id: str,
        message_id: str,
        was_helpful: bool,
        requester: Optional[Principal] = None,
    ) -> ChatMessage:
        chat = self._load_active_session(session_id, requester)
        message = self._load_message(chat, message_id)
        if message.role != ChatRole.ASSISTANT:
            raise ValidationError(
                "Feedback can only be given on assistant messages",
                [{"field": "messageId", "msg": "Not an assistant message"}],
            )

        try:
            message.was_helpful = was_helpful
            self.activity_log.record(
                ChatFeedback(chat_session_id=chat.id, message_id=message.id, was_helpful=was_helpful),
                user_id=chat.user_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(message)
        return message

    def regenerate(
        self,
        session_id: str,
        message_id: str,
        requester: Optional[Principal] = None,
    ) -> ChatMessage:
        chat = self._load_active_session(session_id, requester)
        message = self._load_message(chat, message_id)
        if message.role != ChatRole.ASSISTANT:
            raise NotFoundError("Message not found")

        history = self._history(chat.id, before_position=message.position)
        try:
            content = self.generator.generate(history, regenerating=True)
        except GenerationError:
            logger.warning("regeneration failed for message %s in session %s", message.id, chat.id, exc_info=True)
            raise InternalError("Failed to regenerate response")

        try:
            # Content and the feedback reset land in one statement, and only while the session is open.
            result = self.db.execute(
                update(ChatMessage)
                .where(
                    ChatMessage.id == message.id,
                    exists().where(
                        ChatSession.id == chat.id,
                        ChatSession.status == ChatSessionStatus.ACTIVE,
                    ),
                )
                .values(content=content, was_helpful=None)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise ConflictError("Chat session has ended")
            self.activity_log.record(
                ChatResponseRegenerated(chat_session_id=chat.id, message_id=message.id),
                user_id=chat.user_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(message)
        return message

    def end_session(
        self,
        session_id: str,
        resolved: bool,
        requester: Optional[Principal] = None,
    ) -> ChatSession:
        chat = self._load_active_session(session_id, requester)
        try:
            self._close(chat, resolved=resolved)
            self.activity_log.record(
                ChatSessionEnded(chat_session_id=chat.id, resolved=resolved),
                user_id=chat.user_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(chat)
        return chat

    def _close(self, chat: ChatSession, *, resolved: bool, ticket_id: Optional[str] = None) -> None:
        now = utcnow()
        values = dict(status=ChatSessionStatus.ENDED, resolved=resolved, ended_at=now, updated_at=now)
        if ticket_id is not None:
            values["ticket_id"] = ticket_id
        result = self.db.execute(
            update(ChatSession)
            .where(ChatSession.id == chat.id, ChatSession.status == ChatSessionStatus.ACTIVE)
            .values(**values)
        )
        if result.rowcount == 0:
            raise ConflictError("Chat session has ended")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_session(self, session_id: str, viewer: Optional[Principal]) -> ChatSession:
        """Owner or admin read access."""
        chat = self.db.get(ChatSession, session_id)
        if chat is None:
            raise NotFoundError("Session not found")
        if chat.user_id is None:
            return chat
        if viewer is not None and (viewer.role == Role.ADMIN or viewer.user_id == chat.user_id):
            return chat
        raise ForbiddenError()

    def list_sessions(
        self,
        status: Optional[ChatSessionStatus] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Tuple[ChatSession, int]], int]:
        """Admin listing: (session, message count) pairs plus the total."""
        base = self.db.query(ChatSession)
        if status is not None:
            base = base.filter(ChatSession.status == status)
        total = base.count()

        counts = (
            self.db.query(ChatMessage.session_id, func.count(ChatMessage.id).label("n"))
            .group_by(ChatMessage.session_id)
            .subquery()
        )
        q = self.db.query(ChatSession, func.coalesce(counts.c.n, 0)).outerjoin(
            counts, counts.c.session_id == ChatSession.id
        )
        if status is not None:
            q = q.filter(ChatSession.status == status)
        rows = (
            q.order_by(ChatSession.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return [(chat, int(n)) for chat, n in rows], total

    # ------------------------------------------------------------------
    # Hand-off
    # ------------------------------------------------------------------

    def handoff_payload(self, session_id: str, requester: Optional[Principal]) -> HandoffPayload:
        chat = self._load_session(session_id, requester)
        return compose_handoff(chat.messages, session_id=chat.id)

    def hand_off(
        self,
        session_id: str,
        requester: Principal,
        ticket_service: TicketService,
    ) -> Tuple[Ticket, HandoffPayload]:
        """Open a ticket from the transcript and end the chat unresolved."""
        chat = self._load_active_session(session_id, requester)
        payload = compose_handoff(chat.messages, session_id=chat.id)

        ticket = ticket_service.create_ticket(
            requester,
            subject=payload.subject,
            description=payload.description,
            channel=TicketChannel.CHAT,
            chat_session_id=chat.id,
        )

        try:
            self._close(chat, resolved=False, ticket_id=ticket.id)
            self.activity_log.record(
                ChatHandedOff(chat_session_id=chat.id, ticket_id=ticket.id),
                ticket_id=ticket.id,
                user_id=requester.user_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.exception("ticket #%s created but chat session %s not ended", ticket.ticket_number, chat.id)
            raise
        logger.info("chat session %s handed off to ticket #%s", chat.id, ticket.ticket_number)
        return ticket, payload
