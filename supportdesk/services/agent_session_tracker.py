"""
Agent work sessions: login/logout windows with a running reply count.

An agent is expected to hold at most one open session (logout_at IS NULL).
With AGENT_SESSION_CLOSE_PREVIOUS enabled, starting a session closes any
earlier open ones; two concurrent starts can still both succeed, in which
case CurrentSession picks the most recent.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from supportdesk.core.config import settings
from supportdesk.core.database import as_utc, utcnow
from supportdesk.core.exceptions import ForbiddenError, NotFoundError
from supportdesk.models.agent_session import AgentSession
from supportdesk.schemas.activity_schema import SessionEnded, SessionStarted
from supportdesk.services.activity_log import ActivityLog

logger = logging.getLogger(__name__)


def session_duration(login_at: datetime, logout_at: datetime) -> int:
    """Whole seconds between login and logout."""
    return max(0, int((as_utc(logout_at) - as_utc(login_at)).total_seconds()))


class AgentSessionTracker:
    def __init__(
        self,
        db: Session,
        activity_log: Optional[ActivityLog] = None,
        *,
        close_previous: Optional[bool] = None,
    ):
        self.db = db
        self.activity_log = activity_log or ActivityLog(db)
        self.close_previous = settings.AGENT_SESSION_CLOSE_PREVIOUS if close_previous is None else close_previous

    def start_session(
        self,
        agent_id: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AgentSession:
        now = utcnow()
        try:
            if self.close_previous:
                stale = (
                    self.db.query(AgentSession)
                    .filter(AgentSession.agent_id == agent_id, AgentSession.logout_at.is_(None))
                    .all()
                )
                for previous in stale:
                    self._close(previous, now, user_id=agent_id, reason="superseded")

            session = AgentSession(
                agent_id=agent_id,
                login_at=now,
                reply_count=0,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            self.db.add(session)
            self.db.flush()
            self.activity_log.record(SessionStarted(session_id=session.id), user_id=agent_id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(session)
        logger.info("agent session %s started for %s", session.id, agent_id)
        return session

    def end_session(self, session_id: str, agent_id: str) -> AgentSession:
        session = self.db.get(AgentSession, session_id)
        if session is None:
            raise NotFoundError("Session not found")
        if session.agent_id != agent_id:
            raise ForbiddenError()

        # Duration is computed once; a second logout leaves the row untouched.
        if session.logout_at is not None:
            return session

        try:
            self._close(session, utcnow(), user_id=agent_id, reason="logout")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(session)
        return session

    def current_session(self, agent_id: str) -> Optional[AgentSession]:
        return (
            self.db.query(AgentSession)
            .filter(AgentSession.agent_id == agent_id, AgentSession.logout_at.is_(None))
            .order_by(AgentSession.login_at.desc())
            .first()
        )

    def increment_reply(self, agent_id: str) -> bool:
        """Bump the reply counter on the agent's open session.

        Returns False (and changes nothing) when the agent has no open session.
        """
        session = self.current_session(agent_id)
        if session is None:
            return False

        self.db.execute(
            update(AgentSession)
            .where(AgentSession.id == session.id)
            .values(reply_count=AgentSession.reply_count + 1)
        )
        self.db.commit()
        return True

    def cleanup_stale(self, max_age_hours: Optional[int] = None) -> List[AgentSession]:
        """Close every session left open longer than the configured age."""
        hours = max_age_hours or settings.AGENT_SESSION_STALE_HOURS
        now = utcnow()
        cutoff = now - timedelta(hours=hours)
        stale = (
            self.db.query(AgentSession)
            .filter(AgentSession.logout_at.is_(None), AgentSession.login_at < cutoff)
            .all()
        )
        if not stale:
            return []

        try:
            for session in stale:
                self._close(session, now, user_id=session.agent_id, reason="stale")
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("closed %d stale agent session(s)", len(stale))
        for session in stale:
            self.db.refresh(session)
        return stale

    def _close(self, session: AgentSession, now: datetime, *, user_id: str, reason: str) -> None:
        duration = session_duration(session.login_at, now)
        # Guarded on logout_at IS NULL so a concurrent close cannot overwrite the first one.
        result = self.db.execute(
            update(AgentSession)
            .where(AgentSession.id == session.id, AgentSession.logout_at.is_(None))
            .values(logout_at=now, duration=duration)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return
        self.activity_log.record(
            SessionEnded(session_id=session.id, duration=duration, reason=reason),
            user_id=user_id,
        )
