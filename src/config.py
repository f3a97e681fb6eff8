from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List, Optional

DEFAULT_IP_HASH_SECRET = "change-me-in-production"

class Settings(BaseSettings):
    """Configuration settings for the application, loaded from .env file."""

    # Application Settings
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Database configuration
    DATABASE_URL: str = "sqlite:///./analytics.db"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Ingestion: "direct" writes to the database, "kafka" queues for the worker
    INGEST_MODE: str = "direct"

    # API-key authentication for third-party sites
    ANALYTICS_API_KEY: Optional[str] = None
    ANALYTICS_OWNER_ID: Optional[str] = None

    # Anonymization
    IP_HASH_SECRET: str = DEFAULT_IP_HASH_SECRET
    IP_TOKEN_LENGTH: int = 32

    # First-party dashboard sessions
    SESSION_COOKIE_NAME: str = "analytics_session"
    DASHBOARD_SESSION_TTL_HOURS: int = 168

    # CORS
    CORS_ALLOW_ORIGINS: List[str] = ["*"]

    # Rate limiting
    DEFAULT_RATELIMIT: str = "1000/minute"
    TRACK_ENDPOINT_RATELIMIT: str = "10/second"
    RATELIMIT_STORAGE_URI: str = "memory://"
    OWNER_RATELIMIT_PER_MINUTE: int = 600

    # Aggregation
    SUMMARY_DEFAULT_DAYS: int = 30
    SUMMARY_TOP_N: int = 10

    # Kafka Settings
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:29092"
    KAFKA_EVENTS_TOPIC: str = "analytics_events"
    KAFKA_DLQ_TOPIC: str = "analytics_events_dlq"
    KAFKA_CONSUMER_GROUP_ID: str = "analytics_worker_group"

    # Worker Settings
    WORKER_POLL_TIMEOUT: float = 1.0
    WORKER_MAX_POLL_RECORDS: int = 100
    WORKER_HEALTHCHECK_FILE_PATH: str = "/tmp/worker_healthy"

    # Redis Settings
    REDIS_URL: str = "redis://localhost:6379/0"

    class Config:
        env_file = Path(__file__).resolve().parent.parent / ".env"
        env_file_encoding = 'utf-8'
        extra = "ignore" # Ignore extra fields from .env

# Create a single, globally importable settings instance
settings = Settings()
