import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict
from pydantic import Field as PydanticField
from pydantic.alias_generators import to_camel
from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Column, Field, SQLModel

EventType = Literal["pageview", "click", "custom"]
DeviceType = Literal["desktop", "mobile", "tablet"]

# JSONB on Postgres, plain JSON everywhere else (SQLite in tests)
MetadataJSON = JSON().with_variant(JSONB(), "postgresql")

# Largest value the INTEGER screen columns hold
MAX_SCREEN_PIXELS = 2**31 - 1


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class EventRecord(SQLModel):
    """
    A fully enriched event, as built by the gateway.
    This is also the message format on the Kafka topic.
    """
    id: uuid.UUID = Field(
        default_factory=uuid.uuid4,
        primary_key=True,
        index=True,
        nullable=False
    )

    owner_id: str = Field(index=True)

    event_type: str = Field(index=True, default="pageview")
    domain: str = Field(index=True)
    path: str = Field(index=True)
    referrer: Optional[str] = None
    user_agent: Optional[str] = None

    # Anonymized address, never the raw IP
    ip_token: Optional[str] = Field(default=None, index=True)

    country: Optional[str] = None
    city: Optional[str] = None
    device_type: Optional[str] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    screen_width: Optional[int] = None
    screen_height: Optional[int] = None

    session_id: Optional[str] = Field(default=None, index=True)
    event_metadata: Optional[Dict[str, Any]] = None

    created_at: datetime = Field(default_factory=utcnow)


class AnalyticsEvent(EventRecord, table=True):
    """
    Represents a single tracked event.
    Append-only: rows are never updated or deleted by this service.
    On Postgres this is converted to a TimescaleDB Hypertable, which needs
    the partitioning column in the primary key: (id, created_at).
    """
    event_metadata: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(MetadataJSON)
    )

    # Stored as naive UTC
    created_at: datetime = Field(
        default_factory=utcnow,
        sa_column=Column(DateTime(timezone=False), primary_key=True, nullable=False, index=True)
    )


class EventCreate(BaseModel):
    """
    The payload a client sends to the /track endpoint.
    Field names are camelCase on the wire (eventType, sessionId, ...).
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    event_type: EventType
    domain: str = PydanticField(min_length=1)
    path: str = PydanticField(min_length=1)

    referrer: Optional[str] = None
    user_agent: Optional[str] = None
    device_type: Optional[DeviceType] = None
    browser: Optional[str] = None
    os: Optional[str] = None
    screen_width: Optional[int] = PydanticField(default=None, ge=0, le=MAX_SCREEN_PIXELS)
    screen_height: Optional[int] = PydanticField(default=None, ge=0, le=MAX_SCREEN_PIXELS)
    session_id: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    # Only honoured in API-key mode
    user_id: Optional[str] = None
