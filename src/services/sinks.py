import logging

from fastapi import Depends
from kafka import KafkaProducer
from kafka.errors import KafkaError
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from src.config import settings
from src.db import get_session
from src.errors import StoreError
from src.kafka_producer import get_kafka_producer
from src.models import AnalyticsEvent

logger = logging.getLogger("AnalyticsAPI.Sinks")


class EventSink:
    """Appends exactly one enriched event, or raises StoreError."""

    def append(self, event: AnalyticsEvent) -> None:
        raise NotImplementedError


class DatabaseSink(EventSink):
    """Writes the row in the request's own DB session."""

    def __init__(self, session: Session):
        self.session = session

    def append(self, event: AnalyticsEvent) -> None:
        try:
            self.session.add(event)
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error(f"Analytics insert error: {e}")
            raise StoreError("Failed to track event")


class KafkaSink(EventSink):
    """
    Publishes the event to the events topic; the worker persists it.
    Waits for the broker ack so failures reach the caller.
    """

    def __init__(self, producer: KafkaProducer, topic: str = None, timeout: float = None):
        self.producer = producer
        self.topic = topic or settings.KAFKA_EVENTS_TOPIC
        self.timeout = timeout or settings.STORE_TIMEOUT_SECONDS

    def append(self, event: AnalyticsEvent) -> None:
        message = event.model_dump(mode="json")
        try:
            future = self.producer.send(self.topic, key=event.owner_id, value=message)
            future.get(timeout=self.timeout)
        except KafkaError as e:
            logger.error(f"CRITICAL: Failed to send event to Kafka: {e}")
            raise StoreError("Failed to track event")


def get_event_sink(session: Session = Depends(get_session)) -> EventSink:
    """FastAPI dependency choosing the sink from INGEST_MODE."""
    if settings.INGEST_MODE == "kafka":
        return KafkaSink(get_kafka_producer())
    return DatabaseSink(session)
