import logging
import time

from kafka import KafkaConsumer, KafkaProducer
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session

from src.config import settings
from src.db import engine as db_engine, create_db_and_tables
from src.worker.clients import create_consumer, create_dlq_producer
from src.worker.processing import process_message_batch
from src.worker.utils import setup_signal_handlers, is_shutdown_requested, touch_healthcheck_file

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger("AnalyticsWorker.Main")


def insert_events(session: Session, events) -> int:
    """
    Insert a batch in one transaction. A batch holding a key (id, created_at)
    that is already stored (a redelivered message) falls back to row-by-row
    inserts that skip the duplicates. Returns the number of rows written.
    """
    try:
        session.add_all(events)
        session.commit()
        return len(events)
    except IntegrityError:
        session.rollback()

    written = 0
    for event in events:
        if session.get(type(event), (event.id, event.created_at)) is not None:
            logger.info(f"Skipping already stored event {event.id}")
            continue
        session.add(event)
        session.commit()
        written += 1
    return written


def main_loop(
    consumer: KafkaConsumer,
    dlq_producer: KafkaProducer,
    db_engine: Engine,
):
    """The consumer main loop: poll, process, insert into DB, commit offsets."""

    while not is_shutdown_requested():
        try:
            # Poll for a batch of messages with a timeout
            batch = consumer.poll(timeout_ms=settings.WORKER_POLL_TIMEOUT * 1000)

            if not batch:
                touch_healthcheck_file() # Confirm liveness
                continue # No messages, loop again

            logger.info(f"Processing batch with {sum(len(m) for m in batch.values())} messages...")

            # Store the starting offsets in case we need to rewind
            start_offsets = {tp: messages[0].offset for tp, messages in batch.items()}

            events, offsets_to_commit = process_message_batch(batch, dlq_producer)

            if events:
                with Session(db_engine) as session:
                    try:
                        written = insert_events(session, events)
                        logger.info(f"Successfully inserted {written} events into DB.")

                    except OperationalError as e:
                        logger.error(f"Database connection error: {e}. Rewinding batch and retrying...")
                        session.rollback() # Rollback any partial work
                        # Rewind consumer to start offsets of current batch
                        for tp, offset in start_offsets.items():
                            consumer.seek(tp, offset)
                        time.sleep(10) # Wait for DB to recover
                        continue # Skip commit and healthcheck

                    except Exception as e:
                        logger.error(f"Failed to insert batch into DB (non-retryable): {e}")
                        session.rollback()
                        # Commit the offsets anyway, this batch can never succeed

            # Commit offsets after the DB write
            if offsets_to_commit:
                consumer.commit(offsets_to_commit)
                logger.debug("Offsets committed to Kafka.")

            # Signal liveness
            touch_healthcheck_file()

        except Exception as e:
            logger.error(f"Unexpected error in main loop: {e}. Sleeping for 5s...")
            time.sleep(5)


# Entry Point
def main():
    logger.info("Starting Analytics Worker...")
    setup_signal_handlers()
    create_db_and_tables()

    consumer = create_consumer()
    dlq_producer = create_dlq_producer()
    if consumer is None or dlq_producer is None:
        logger.info("Shutdown requested before the worker connected.")
        return

    try:
        main_loop(consumer, dlq_producer, db_engine)
    except Exception as e:
        logger.error(f"CRITICAL: Main loop exited unexpectedly: {e}")
    finally:
        logger.info("Shutting down worker...")
        consumer.close()
        dlq_producer.close()
        logger.info("Worker shutdown complete.")

if __name__ == "__main__":
    main()
