"""
Ticket status rules.

NEW -> OPEN happens on the first agent/admin reply; a requester reply moves
a PENDING ticket back to OPEN. Beyond that any agent or admin may move a
ticket between any two states. ``solved_at`` is non-null exactly while the
ticket is SOLVED, and ``first_response_at`` is written at most once.

System-driven transitions are conditional UPDATEs (set-if-null /
set-if-status) so two agents replying at once cannot clobber each other.
"""
import logging
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from supportdesk.core.database import utcnow
from supportdesk.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from supportdesk.core.roles import (
    Principal,
    Role,
    can_access_ticket,
    can_post_internal,
    can_set_status,
    can_view_internal,
    is_staff,
)
from supportdesk.models.comment import Comment, CommentChannel
from supportdesk.models.ticket import Ticket, TicketPriority, TicketStatus
from supportdesk.models.user import User
from supportdesk.schemas.activity_schema import (
    Assigned,
    CommentAdded,
    PriorityChanged,
    StatusChanged,
    SubjectChanged,
)
from supportdesk.services.activity_log import ActivityLog
from supportdesk.services.agent_session_tracker import AgentSessionTracker

logger = logging.getLogger(__name__)

# Distinguishes "leave the assignee alone" from "unassign" (None).
UNSET = object()


class TicketStateMachine:
    def __init__(
        self,
        db: Session,
        activity_log: Optional[ActivityLog] = None,
        session_tracker: Optional[AgentSessionTracker] = None,
    ):
        self.db = db
        self.activity_log = activity_log or ActivityLog(db)
        self.session_tracker = session_tracker or AgentSessionTracker(db, self.activity_log)

    def _get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.db.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket not found")
        return ticket

    def add_comment(
        self,
        ticket_id: str,
        author: Principal,
        body: str,
        body_plain: str,
        is_internal: bool = False,
        channel: CommentChannel = CommentChannel.WEB,
    ) -> Comment:
        ticket = self._get_ticket(ticket_id)
        if author.role == Role.USER and ticket.requester_id != author.user_id:
            raise ForbiddenError()

        internal = bool(is_internal) and can_post_internal(author.role)
        staff = is_staff(author.role)
        now = utcnow()

        try:
            comment = Comment(
                ticket_id=ticket.id,
                author_id=author.user_id,
                body=body,
                body_plain=body_plain,
                is_internal=internal,
                is_system=False,
                channel=channel,
                created_at=now,
            )
            self.db.add(comment)
            self.db.flush()

            self.db.execute(update(Ticket).where(Ticket.id == ticket.id).values(updated_at=now))
            if staff:
                self.db.execute(
                    update(Ticket)
                    .where(Ticket.id == ticket.id, Ticket.first_response_at.is_(None))
                    .values(first_response_at=now)
                )
                self.db.execute(
                    update(Ticket)
                    .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.NEW)
                    .values(status=TicketStatus.OPEN)
                )
            else:
                # Requester answered while we were waiting on them.
                self.db.execute(
                    update(Ticket)
                    .where(Ticket.id == ticket.id, Ticket.status == TicketStatus.PENDING)
                    .values(status=TicketStatus.OPEN)
                )

            self.activity_log.record(
                CommentAdded(comment_id=comment.id, is_internal=internal),
                ticket_id=ticket.id,
                user_id=author.user_id,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(comment)

        if staff:
            self._count_reply(author.user_id)
        return comment

    def _count_reply(self, agent_id: str) -> None:
        # Outside the comment transaction: a lost increment only skews productivity stats.
        try:
            self.session_tracker.increment_reply(agent_id)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("reply count not recorded for agent %s", agent_id, exc_info=True)

    def read_comments(self, ticket_id: str, requester: Principal) -> List[Comment]:
        ticket = self._get_ticket(ticket_id)
        if not can_access_ticket(requester, ticket.requester_id):
            raise ForbiddenError()

        q = self.db.query(Comment).filter(Comment.ticket_id == ticket.id)
        if not can_view_internal(requester.role):
            q = q.filter(Comment.is_internal.is_(False))
        return q.order_by(Comment.created_at.asc()).all()

    def update_ticket(
        self,
        ticket_id: str,
        actor: Principal,
        *,
        status: Optional[TicketStatus] = None,
        priority: Optional[TicketPriority] = None,
        subject: Optional[str] = None,
        assignee_id=UNSET,
    ) -> Ticket:
        if not can_set_status(actor.role):
            raise ForbiddenError("Agent or admin access required")
        ticket = self._get_ticket(ticket_id)
        now = utcnow()

        try:
            if assignee_id is not UNSET:
                if assignee_id is not None:
                    assignee = self.db.get(User, assignee_id)
                    if assignee is None:
                        raise ValidationError(
                            "Assignee not found",
                            [{"field": "assigneeId", "msg": "Assignee not found"}],
                        )
                    if not is_staff(assignee.role):
                        raise ValidationError(
                            "Can only assign tickets to agents or admins",
                            [{"field": "assigneeId", "msg": "Assignee must be an agent or admin"}],
                        )
                ticket.assignee_id = assignee_id
                self.activity_log.record(Assigned(assignee_id=assignee_id), ticket_id=ticket.id, user_id=actor.user_id)

                if assignee_id is not None and status is None and ticket.status == TicketStatus.NEW:
                    self._set_status(ticket, TicketStatus.OPEN, actor, now, reason="auto_on_assign")

            if status is not None:
                self._set_status(ticket, status, actor, now)

            if priority is not None:
                ticket.priority = priority
                self.activity_log.record(PriorityChanged(new_priority=priority.value), ticket_id=ticket.id, user_id=actor.user_id)

            if subject is not None:
                ticket.subject = subject
                self.activity_log.record(SubjectChanged(new_subject=subject), ticket_id=ticket.id, user_id=actor.user_id)

            ticket.updated_at = now
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(ticket)
        return ticket

    def _set_status(self, ticket: Ticket, new_status: TicketStatus, actor: Principal, now, reason: Optional[str] = None) -> None:
        previous = ticket.status
        ticket.status = new_status
        if new_status == TicketStatus.SOLVED:
            if previous != TicketStatus.SOLVED:
                ticket.solved_at = now
        else:
            ticket.solved_at = None

        self.activity_log.record(
            StatusChanged(previous_status=previous.value, new_status=new_status.value, reason=reason),
            ticket_id=ticket.id,
            user_id=actor.user_id,
        )
        logger.info("ticket #%s %s -> %s by %s", ticket.ticket_number, previous.value, new_status.value, actor.user_id)
