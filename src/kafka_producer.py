import logging
import json
import time
from typing import Any, Dict, Optional

from kafka import KafkaProducer
from kafka.errors import NoBrokersAvailable

from src.config import settings

logger =  logging.getLogger("KafkaProducer")

# Singleton instance of the producer used globally
_producer_instance = {"producer": None}


def serialize_owner_key(owner_id: Optional[str]) -> Optional[bytes]:
    """Events are keyed by owner so one owner's events stay on one partition, in order."""
    return owner_id.encode('utf-8') if owner_id is not None else None


def serialize_event(record: Dict[str, Any]) -> bytes:
    return json.dumps(record).encode('utf-8')


def create_kafka_producer(
    bootstrap_servers: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    max_attempts: int = 0
) -> KafkaProducer:
    """
    Producer for the gateway's queued mode.
    Broker requests are bounded by STORE_TIMEOUT_SECONDS, the same budget a
    direct database write gets. Retries while the brokers start up;
    max_attempts=0 retries forever.
    """
    timeout_seconds = timeout_seconds or settings.STORE_TIMEOUT_SECONDS
    logger.info("Attempting to create KafkaProducer...")
    attempts = 0
    while True:
        attempts += 1
        try:
            producer = KafkaProducer(
                bootstrap_servers = bootstrap_servers or settings.KAFKA_BOOTSTRAP_SERVERS,
                key_serializer = serialize_owner_key,
                value_serializer = serialize_event,
                acks = 'all',
                request_timeout_ms = int(timeout_seconds * 1000),
                client_id = 'analytics-api-producer'
            )
            logger.info("KafkaProducer connection ESTABLISHED")
            return producer
        except NoBrokersAvailable:
            if max_attempts and attempts >= max_attempts:
                raise
            logger.warning("Kafka brokers are not available. Retrying in 5s...")
            time.sleep(5)


def get_kafka_producer() -> KafkaProducer:
    """
    Return the singleton KafkaProducer instance.
    """

    # Normally created in the app lifespan; this covers direct use.
    if _producer_instance["producer"] is None:
        logger.warning("KafkaProducer not initialized. Initializing now...")
        _producer_instance["producer"] = create_kafka_producer()

    return _producer_instance["producer"]

def set_kafka_producer(producer: KafkaProducer):
    """Sets the global producer instance"""
    _producer_instance["producer"] = producer


def close_kafka_producer():
    """
    Flush and closes the singleton KafkaProducer connection.
    """

    producer = _producer_instance["producer"]
    if producer:
        logger.info("Flushing and closing KafkaProducer...")
        producer.flush()
        producer.close()
        _producer_instance["producer"] = None
        logger.info("KafkaProducer Closed.")
