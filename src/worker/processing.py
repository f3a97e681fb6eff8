import json
import logging
from typing import Dict, List, Tuple

from kafka import KafkaProducer
from kafka.errors import KafkaError
from kafka.structs import TopicPartition, OffsetAndMetadata
from pydantic import ValidationError

from src.config import settings
from src.models import AnalyticsEvent, EventRecord

logger = logging.getLogger("AnalyticsWorker.Processing")


def parse_event_message(raw: str) -> AnalyticsEvent:
    """
    Rebuild the row the gateway enriched.
    Raises ValueError/ValidationError for anything that is not a complete record.
    """
    message = json.loads(raw)
    if not isinstance(message, dict):
        raise ValueError("Message is not a JSON object")

    record = EventRecord.model_validate(message)
    if not record.owner_id or not record.domain or not record.path:
        raise ValueError("Missing owner_id, domain or path")

    return AnalyticsEvent.model_validate(record)


def send_to_dlq(dlq_producer: KafkaProducer, topic: str, value):
    """Sends a single raw message to the Dead Letter Queue."""
    try:
        dlq_producer.send(topic, value=value)
    except KafkaError as ke:
        logger.error(f"CRITICAL: Failed to send to DLQ: {ke}")


def process_message_batch(
    batch: Dict[TopicPartition, List],
    dlq_producer: KafkaProducer
) -> Tuple[List[AnalyticsEvent], Dict[TopicPartition, OffsetAndMetadata]]:
    """
    Processes a batch of messages from Kafka.
    Returns a list of events to insert and a dict of offsets to commit.
    """
    events_to_insert: List[AnalyticsEvent] = []
    offsets_to_commit: Dict[TopicPartition, OffsetAndMetadata] = {}

    for tp, messages in batch.items():
        for msg in messages:
            try:
                events_to_insert.append(parse_event_message(msg.value))

            except (json.JSONDecodeError, ValidationError, ValueError, TypeError) as e:
                # "Poison Pill" messages go to the DLQ
                logger.error(f"Failed to parse or validate message (Offset {msg.offset}): {e}. Sending to DLQ.")
                send_to_dlq(dlq_producer, settings.KAFKA_DLQ_TOPIC, msg.value)

            # Always commit the offset, even for dropped messages, so the loop never gets stuck
            offsets_to_commit[tp] = OffsetAndMetadata(msg.offset + 1, None, None)

    return events_to_insert, offsets_to_commit
