import logging

from sqlmodel import create_engine, SQLModel, Session
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from src.models import *
from src.config import settings

logger = logging.getLogger("AnalyticsAPI.DB")

# Get the DATABASE_URL from our centralized settings
DATABASE_URL = settings.DATABASE_URL
if not DATABASE_URL:
    raise ValueError("DATABASE_URL environment variable is not set")


def _connect_args(url: str) -> dict:
    """
    Driver options that bound every statement by STORE_TIMEOUT_SECONDS,
    so a stuck store surfaces as an error instead of a hung request.
    """
    if url.startswith("sqlite"):
        return {"check_same_thread": False, "timeout": settings.STORE_TIMEOUT_SECONDS}
    if url.startswith("postgresql"):
        timeout_ms = int(settings.STORE_TIMEOUT_SECONDS * 1000)
        return {
            "connect_timeout": max(1, int(settings.STORE_TIMEOUT_SECONDS)),
            "options": f"-c statement_timeout={timeout_ms}",
        }
    return {}


engine = create_engine(DATABASE_URL, connect_args=_connect_args(DATABASE_URL))

def create_db_and_tables():
    logger.info("Creating database and tables...")
    SQLModel.metadata.create_all(engine)

    if engine.dialect.name != "postgresql":
        return

    with Session(engine) as session:
        try:
            session.exec(
                text("SELECT create_hypertable('analyticsevent', 'created_at', if_not_exists => TRUE, migrate_data => TRUE);")
            )
            session.commit()
            logger.info("Hypertable 'analyticsevent' created or already exists.")
        except SQLAlchemyError as e:
            logger.warning(f"Error creating hypertable: {e}")
            logger.warning("Please ensure the TimescaleDB extension is enabled in your database.")
            session.rollback()

def get_session():
    """
    FastAPI Dependency that provides a database session per request.
    """
    with Session(engine) as session:
        yield session
