from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from supportdesk.core.database import SessionLocal
from supportdesk.services.activity_log import ActivityLog
from supportdesk.services.agent_session_tracker import AgentSessionTracker
from supportdesk.services.conversation_engine import ConversationEngine
from supportdesk.services.response_generator import ResponseGenerator, get_response_generator
from supportdesk.services.ticket_service import TicketService
from supportdesk.services.ticket_state_machine import TicketStateMachine


def get_db() -> Generator:
    """
    Dependency Injection function to get a database session.
    It ensures the database connection is closed after the request is finished.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_activity_log(db: Session = Depends(get_db)) -> ActivityLog:
    return ActivityLog(db)


def get_session_tracker(
    db: Session = Depends(get_db),
    activity_log: ActivityLog = Depends(get_activity_log),
) -> AgentSessionTracker:
    return AgentSessionTracker(db, activity_log)


def get_ticket_state_machine(
    db: Session = Depends(get_db),
    activity_log: ActivityLog = Depends(get_activity_log),
    tracker: AgentSessionTracker = Depends(get_session_tracker),
) -> TicketStateMachine:
    return TicketStateMachine(db, activity_log, tracker)


def get_ticket_service(
    db: Session = Depends(get_db),
    activity_log: ActivityLog = Depends(get_activity_log),
) -> TicketService:
    return TicketService(db, activity_log)


def get_conversation_engine(
    db: Session = Depends(get_db),
    activity_log: ActivityLog = Depends(get_activity_log),
    generator: ResponseGenerator = Depends(get_response_generator),
) -> ConversationEngine:
    return ConversationEngine(db, generator, activity_log)
