import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, JSONResponse
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from src.config import settings
from src.limiter import limiter
from src.db import create_db_and_tables
from src.enrichment import default_secret_in_use
from src.errors import AnalyticsError
from src.api import events
from src.kafka_producer import (
    create_kafka_producer,
    close_kafka_producer,
    set_kafka_producer
)

logging.basicConfig(level=settings.LOG_LEVEL.upper())
logger = logging.getLogger("AnalyticsAPI.Main")

CLIENT_SCRIPT = Path(__file__).resolve().parent / "static" / "analytics.js"

@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup...")

    # Initialize db
    logger.info("Initializing database...")
    create_db_and_tables()
    logger.info("Database initialization completed.")

    if default_secret_in_use():
        logger.warning("IP_HASH_SECRET is still the public default. Visitor tokens can be matched across deployments that kept it.")

    # Queued mode only: direct mode never talks to Kafka
    if settings.INGEST_MODE == "kafka":
        logger.info("Initializing Kafka Producer...")
        set_kafka_producer(create_kafka_producer())
        logger.info("Kafka initialized.")
    yield
    logger.info("Application shutdown.")

    if settings.INGEST_MODE == "kafka":
        close_kafka_producer()

app = FastAPI(
    title="Analytics API",
    lifespan=lifespan
)

# Initialize the limiter with app
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(AnalyticsError)
async def analytics_error_handler(request: Request, exc: AnalyticsError):
    """
    Every ingestion/aggregation failure becomes {"error": message}.
    Runs inside the CORS middleware, so errors stay readable cross-origin.
    """
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


# Set up CORS middleware; third-party pages call /track with credentials
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "X-API-Key"],
)

# Registered after CORSMiddleware so it runs first: OPTIONS on the track
# route is always answered here, never refused by the CORS checks
TRACK_URL = events.router.prefix + events.TRACK_PATH

@app.middleware("http")
async def answer_track_preflight(request: Request, call_next):
    if request.method == "OPTIONS" and request.url.path == TRACK_URL:
        return events.preflight_response(request)
    return await call_next(request)

# Routers
app.include_router(events.router)

@app.get("/")
def read_root():
    return {"message": "Welcome to the Analytics API"}

@app.get("/analytics.js", include_in_schema=False)
def client_script():
    """The browser instrumentation script third-party pages load."""
    return FileResponse(CLIENT_SCRIPT, media_type="application/javascript")
