from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime
from sqlmodel import Column, Field, SQLModel

from src.models.event import utcnow


class DashboardSession(SQLModel, table=True):
    """
    A first-party login session for the CMS dashboard.
    The cookie carries the raw token; only its SHA-256 digest is stored.
    Timestamps are naive UTC, compared against utcnow().
    """

    __tablename__ = "dashboard_session"

    token_hash: str = Field(primary_key=True, nullable=False)
    owner_id: str = Field(index=True)
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), nullable=False)
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=False), index=True)
    )
