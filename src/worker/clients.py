import logging
from typing import Callable, Optional, TypeVar

from kafka import KafkaConsumer, KafkaProducer
from kafka.errors import NoBrokersAvailable

from src.config import settings
from src.worker.utils import is_shutdown_requested, wait_for_shutdown

logger = logging.getLogger("AnalyticsWorker.Clients")

RETRY_DELAY_SECONDS = 5

Client = TypeVar("Client")


def connect_until_shutdown(connect: Callable[[], Client], name: str) -> Optional[Client]:
    """
    Call connect() until the brokers answer. Returns None if a shutdown
    is requested first; the retry wait is cut short by the signal.
    """
    logger.info(f"Attempting to connect Kafka {name}...")
    while not is_shutdown_requested():
        try:
            client = connect()
            logger.info(f"Kafka {name} connection ESTABLISHED.")
            return client
        except NoBrokersAvailable:
            logger.warning(f"Kafka brokers not available for {name}. Retrying in {RETRY_DELAY_SECONDS}s...")
            wait_for_shutdown(RETRY_DELAY_SECONDS)

    logger.info(f"Shutdown requested during {name} creation.")
    return None


def create_consumer(topic: Optional[str] = None) -> Optional[KafkaConsumer]:
    """Consumer on the events topic; offsets are committed by the main loop after the DB write."""
    return connect_until_shutdown(
        lambda: KafkaConsumer(
            topic or settings.KAFKA_EVENTS_TOPIC,
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            group_id=settings.KAFKA_CONSUMER_GROUP_ID,
            enable_auto_commit=False,
            value_deserializer=lambda v: v.decode('utf-8'),
            auto_offset_reset='earliest',
            max_poll_records=settings.WORKER_MAX_POLL_RECORDS,
            client_id="analytics-worker-consumer"
        ),
        "consumer",
    )


def create_dlq_producer() -> Optional[KafkaProducer]:
    """Producer for poison messages; values are forwarded as the raw text that failed."""
    return connect_until_shutdown(
        lambda: KafkaProducer(
            bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS,
            value_serializer=lambda v: v.encode('utf-8') if isinstance(v, str) else v,
            retries=5,
            acks='all',
            client_id="analytics-worker-dlq-producer"
        ),
        "DLQ producer",
    )
