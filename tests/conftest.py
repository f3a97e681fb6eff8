"""
Test configuration and fixtures.

Settings are read from the environment when src.config is imported, so the
environment is prepared here before anything from src is imported.
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["INGEST_MODE"] = "direct"
os.environ["ANALYTICS_API_KEY"] = "test-api-key"
os.environ["ANALYTICS_OWNER_ID"] = "owner-default"
os.environ["IP_HASH_SECRET"] = "test-ip-secret"
os.environ["TRACK_ENDPOINT_RATELIMIT"] = "1000/second"
os.environ["OWNER_RATELIMIT_PER_MINUTE"] = "0"
os.environ["WORKER_HEALTHCHECK_FILE_PATH"] = os.path.join(tempfile.gettempdir(), "analytics_worker_test_healthy")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

from src.api.security import issue_dashboard_session
from src.config import settings
from src.db import get_session
from src.main import app
from src.models import AnalyticsEvent

API_KEY = "test-api-key"
SESSION_OWNER = "owner-session"


@pytest.fixture(scope="function")
def engine():
    """
    A fresh in-memory database per test, shared by every connection.
    """
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(engine):
    """
    Test client with the database dependency pointed at the test engine.
    """
    def override_get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def session_cookie(db_session):
    """Cookie header for a live first-party dashboard session."""
    token = issue_dashboard_session(db_session, SESSION_OWNER)
    return {"Cookie": f"{settings.SESSION_COOKIE_NAME}={token}"}


@pytest.fixture
def stored_events(db_session):
    """Callable returning every event currently in the store."""
    def _stored():
        db_session.expire_all()
        return db_session.exec(select(AnalyticsEvent)).all()
    return _stored
