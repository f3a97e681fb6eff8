import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import (
    APIRouter,
    Depends,
    Query,
    Request,
    Response,
    status,
)
from sqlmodel import Session

from src.api.security import raise_for_rejection, require_dashboard_owner, resolve_owner
from src.config import settings
from src.db import get_session
from src.enrichment import RequestMeta
from src.errors import AnalyticsError, EventValidationError, IngestionError, RateLimitedError
from src.limiter import limiter
from src.models import AggregationSummary
from src.services.aggregation import resolve_window, summarize
from src.services.ingestion import build_event, parse_event_payload
from src.services.sinks import EventSink, get_event_sink
from src.services.throttle import OwnerThrottle, get_owner_throttle

# Create an APIRouter
router = APIRouter(
    prefix="/api/analytics",
    tags=["Analytics"]
)

logger = logging.getLogger("AnalyticsAPI.Events")

TRACK_PATH = "/track"
PREFLIGHT_ALLOW_HEADERS = "Content-Type, X-API-Key"


def preflight_response(request: Request) -> Response:
    """
    200 with no body for any OPTIONS on the track route, never a refusal.
    Echoes an allowed caller origin and the requested headers, as credentialed
    cross-origin POSTs from third-party pages need. A disallowed origin still
    gets 200, just without Access-Control-Allow-Origin.
    """
    origin = request.headers.get("origin")
    requested = request.headers.get("access-control-request-headers")
    headers = {
        "Access-Control-Allow-Methods": "POST, OPTIONS",
        "Access-Control-Allow-Headers": requested or PREFLIGHT_ALLOW_HEADERS,
        "Access-Control-Allow-Credentials": "true",
    }
    if not origin:
        headers["Access-Control-Allow-Origin"] = "*"
    elif "*" in settings.CORS_ALLOW_ORIGINS or origin in settings.CORS_ALLOW_ORIGINS:
        headers["Access-Control-Allow-Origin"] = origin
        headers["Vary"] = "Origin"
    return Response(status_code=status.HTTP_200_OK, headers=headers)


async def read_json_body(request: Request) -> Optional[Dict[str, Any]]:
    """
    The raw body as a dict, or None if it is not a JSON object.
    Parsed by hand so authentication runs before any validation.
    """
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


# API Endpoints

@router.options(TRACK_PATH, status_code=status.HTTP_200_OK)
def track_preflight(request: Request):
    return preflight_response(request)


@router.post(TRACK_PATH, status_code=status.HTTP_200_OK)
@limiter.limit(settings.TRACK_ENDPOINT_RATELIMIT)
def track_event(
    request: Request,
    body: Optional[Dict[str, Any]] = Depends(read_json_body),
    session: Session = Depends(get_session),
    sink: EventSink = Depends(get_event_sink),
    throttle: Optional[OwnerThrottle] = Depends(get_owner_throttle)
):
    """
    Record one analytics event.

    Order matters: authenticate, throttle, validate, enrich, then write
    exactly one row. Every failure before the write leaves the store untouched.
    """
    try:
        user_id = (body or {}).get("userId")
        auth = raise_for_rejection(
            resolve_owner(request, session, str(user_id) if user_id else None)
        )

        if throttle is not None and not throttle.allow(auth.owner_id):
            raise RateLimitedError("Too many events for this owner. Please slow down.")

        payload = parse_event_payload(body)
        event = build_event(auth.owner_id, payload, RequestMeta.from_request(request))
        sink.append(event)
    except AnalyticsError:
        raise
    except Exception as e:
        logger.exception(f"Analytics tracking error: {e}")
        raise IngestionError("Failed to track event")

    logger.debug(f"Tracked {event.event_type} {event.domain}{event.path} for owner {auth.owner_id} ({auth.mode})")
    return {"success": True}


@router.get("/summary", response_model=AggregationSummary)
def get_summary(
    owner_id: str = Depends(require_dashboard_owner),
    start_date: Optional[datetime] = Query(None, description="Start of the window (inclusive)"),
    end_date: Optional[datetime] = Query(None, description="End of the window (exclusive)"),
    limit: int = Query(settings.SUMMARY_TOP_N, ge=1, le=100, description="Length of the top pages/domains lists"),
    session: Session = Depends(get_session)
):
    """
    Dashboard rollups for the signed-in owner.
    Defaults to the last SUMMARY_DEFAULT_DAYS days. No data is a zeroed summary, not an error.
    """
    start, end = resolve_window(start_date, end_date)
    if start >= end:
        raise EventValidationError("start_date must be before end_date")

    return summarize(session, owner_id, start, end, limit=limit)
