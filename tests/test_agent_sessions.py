from datetime import timedelta

import pytest

from supportdesk.core.database import as_utc, utcnow
from supportdesk.core.exceptions import ForbiddenError, NotFoundError
from supportdesk.models.activity import Activity
from supportdesk.models.agent_session import AgentSession
from supportdesk.services.agent_session_tracker import AgentSessionTracker, session_duration
from supportdesk.services.ticket_state_machine import TicketStateMachine


def test_session_duration_whole_seconds():
    start = utcnow()
    assert session_duration(start, start + timedelta(seconds=90, milliseconds=700)) == 90
    assert session_duration(start, start) == 0


def test_start_session_begins_with_zero_replies(db_session, agent):
    session = AgentSessionTracker(db_session).start_session(agent.id, ip_address="10.0.0.1", user_agent="pytest")

    assert session.reply_count == 0
    assert session.logout_at is None
    assert session.ip_address == "10.0.0.1"
    assert db_session.query(Activity).filter(Activity.action == "session_started").count() == 1


def test_end_session_computes_duration_once(db_session, agent):
    tracker = AgentSessionTracker(db_session)
    session = tracker.start_session(agent.id)
    # Pretend the agent logged in an hour ago.
    session.login_at = utcnow() - timedelta(hours=1)
    db_session.commit()

    ended = tracker.end_session(session.id, agent.id)
    duration = ended.duration
    logout_at = ended.logout_at

    assert duration == session_duration(ended.login_at, ended.logout_at)
    assert 3599 <= duration <= 3601

    again = tracker.end_session(session.id, agent.id)
    assert again.duration == duration
    assert again.logout_at == logout_at


def test_end_session_of_another_agent_is_forbidden(db_session, agent, second_agent):
    tracker = AgentSessionTracker(db_session)
    session = tracker.start_session(agent.id)

    with pytest.raises(ForbiddenError):
        tracker.end_session(session.id, second_agent.id)


def test_end_missing_session(db_session, agent):
    with pytest.raises(NotFoundError):
        AgentSessionTracker(db_session).end_session("00000000-0000-0000-0000-000000000000", agent.id)


def test_start_closes_previous_open_session(db_session, agent):
    tracker = AgentSessionTracker(db_session)
    first = tracker.start_session(agent.id)
    second = tracker.start_session(agent.id)

    db_session.refresh(first)
    assert first.logout_at is not None
    assert tracker.current_session(agent.id).id == second.id

    ended = db_session.query(Activity).filter(Activity.action == "session_ended").one()
    assert ended.details["reason"] == "superseded"


def test_multiple_open_sessions_allowed_when_configured(db_session, agent):
    tracker = AgentSessionTracker(db_session, close_previous=False)
    first = tracker.start_session(agent.id)
    first.login_at = utcnow() - timedelta(minutes=5)
    db_session.commit()
    second = tracker.start_session(agent.id)

    open_count = db_session.query(AgentSession).filter(AgentSession.logout_at.is_(None)).count()
    assert open_count == 2
    assert tracker.current_session(agent.id).id == second.id


def test_current_session_none_after_logout(db_session, agent):
    tracker = AgentSessionTracker(db_session)
    session = tracker.start_session(agent.id)
    tracker.end_session(session.id, agent.id)

    assert tracker.current_session(agent.id) is None


def test_increment_reply_without_session_is_noop(db_session, agent):
    assert AgentSessionTracker(db_session).increment_reply(agent.id) is False
    assert db_session.query(AgentSession).count() == 0


def test_three_replies_on_three_tickets(db_session, requester, agent, make_ticket, principal_of):
    tracker = AgentSessionTracker(db_session)
    session = tracker.start_session(agent.id)
    machine = TicketStateMachine(db_session, session_tracker=tracker)

    for n in range(3):
        ticket = make_ticket(requester, subject=f"Issue {n}")
        machine.add_comment(ticket.id, principal_of(agent), f"reply {n}", f"reply {n}")

    db_session.refresh(session)
    assert session.reply_count == 3


def test_cleanup_stale_closes_old_sessions_only(db_session, agent, second_agent):
    tracker = AgentSessionTracker(db_session)
    old = tracker.start_session(agent.id)
    old.login_at = utcnow() - timedelta(hours=30)
    db_session.commit()
    fresh = tracker.start_session(second_agent.id)

    closed = tracker.cleanup_stale(max_age_hours=24)

    assert [s.id for s in closed] == [old.id]
    assert as_utc(closed[0].logout_at) > as_utc(closed[0].login_at)
    assert closed[0].duration >= 30 * 3600
    db_session.refresh(fresh)
    assert fresh.logout_at is None
