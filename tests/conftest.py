import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Set env before importing app components
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["CHAT_ESCALATION_THRESHOLD"] = "3"

from fastapi.testclient import TestClient

from supportdesk.api.dependencies import get_db
from supportdesk.core.database import Base
from supportdesk.core.exceptions import GenerationError
from supportdesk.core.roles import Principal, Role
from supportdesk.main import app
from supportdesk.services.response_generator import get_response_generator

# SQLite in-memory database shared by every connection
engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeGenerator:
    """Deterministic stand-in for the LLM. Numbered replies make regeneration visible."""

    def __init__(self):
        self.calls = []
        self.fail = False

    def generate(self, history, *, regenerating=False):
        self.calls.append({"history": [(m.role.value, m.content) for m in history], "regenerating": regenerating})
        if self.fail:
            raise GenerationError("provider down")
        prefix = "Let me try again" if regenerating else "Happy to help"
        return f"{prefix} (#{len(self.calls)})"


@pytest.fixture(scope="function")
def db_session():
    """Fresh schema per test; services commit, so the tables are dropped afterwards."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def generator():
    return FakeGenerator()


def _make_user(db_session, email, role):
    from supportdesk.models.user import User
    from supportdesk.services.auth_service import hash_password

    user = User(
        email=email,
        password_hash=hash_password("Password123!"),
        first_name=email.split("@")[0].title(),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def requester(db_session):
    return _make_user(db_session, "customer@example.com", Role.USER)


@pytest.fixture(scope="function")
def other_requester(db_session):
    return _make_user(db_session, "someone.else@example.com", Role.USER)


@pytest.fixture(scope="function")
def agent(db_session):
    return _make_user(db_session, "agent@example.com", Role.AGENT)


@pytest.fixture(scope="function")
def second_agent(db_session):
    return _make_user(db_session, "agent2@example.com", Role.AGENT)


@pytest.fixture(scope="function")
def admin(db_session):
    return _make_user(db_session, "admin@example.com", Role.ADMIN)


@pytest.fixture(scope="function")
def principal_of():
    def _principal_of(user):
        return Principal(user_id=user.id, role=Role(user.role))
    return _principal_of


@pytest.fixture(scope="function")
def auth_headers():
    """Helper fixture to build bearer headers for a user."""
    from supportdesk.services.auth_service import create_access_token

    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_access_token(subject=user.id)}"}
    return _auth_headers


@pytest.fixture(scope="function")
def make_ticket(db_session, principal_of):
    from supportdesk.services.ticket_service import TicketService

    def _make_ticket(user, subject="Cannot log in", description="The login page keeps spinning."):
        return TicketService(db_session).create_ticket(principal_of(user), subject=subject, description=description)
    return _make_ticket


@pytest.fixture(scope="function")
def client(db_session, generator):
    """TestClient on the test session with the fake generator injected."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_response_generator] = lambda: generator
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
