from datetime import datetime, timedelta

from sqlalchemy import DateTime
from sqlmodel import Session, select

from src.api.security import get_session_owner, issue_dashboard_session
from src.config import settings
from src.models import AnalyticsEvent, DashboardSession, utcnow


class FakeRequest:
    def __init__(self, cookies):
        self.cookies = cookies


def test_timestamp_columns_are_naive_datetimes():
    """Every stored timestamp is a plain DATETIME holding naive UTC."""
    columns = [
        AnalyticsEvent.__table__.c.created_at,
        DashboardSession.__table__.c.created_at,
        DashboardSession.__table__.c.expires_at,
    ]
    for column in columns:
        assert type(column.type) is DateTime
        assert column.type.timezone is False


def test_event_primary_key_includes_created_at():
    assert [c.name for c in AnalyticsEvent.__table__.primary_key.columns] == ["id", "created_at"]


def test_naive_timestamp_round_trip(engine):
    created_at = datetime(2026, 3, 1, 12, 30, 15, 250000)
    with Session(engine) as session:
        session.add(AnalyticsEvent(owner_id="owner-1", domain="www.example.com", path="/", created_at=created_at))
        session.commit()

    with Session(engine) as session:
        stored = session.exec(select(AnalyticsEvent)).one()

    assert stored.created_at == created_at
    assert stored.created_at.tzinfo is None


def test_default_created_at_is_stored(engine):
    before = utcnow()
    with Session(engine) as session:
        session.add(AnalyticsEvent(owner_id="owner-1", domain="www.example.com", path="/"))
        session.commit()
        stored = session.exec(select(AnalyticsEvent)).one()

    assert before <= stored.created_at <= utcnow()


def test_dashboard_session_expiry_round_trip(db_session):
    live = issue_dashboard_session(db_session, "owner-1")
    expired = issue_dashboard_session(db_session, "owner-2", ttl=timedelta(seconds=-1))
    db_session.expire_all()

    cookie = settings.SESSION_COOKIE_NAME
    assert get_session_owner(FakeRequest({cookie: live}), db_session) == "owner-1"
    assert get_session_owner(FakeRequest({cookie: expired}), db_session) is None
