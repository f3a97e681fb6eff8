"""
Validation and enrichment for the ingestion gateway.

Turns an untrusted JSON body plus what the request itself reveals into one
complete AnalyticsEvent. Nothing here touches the store.
"""
import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError

from src.enrichment import RequestMeta, anonymize_ip, classify
from src.errors import EventValidationError
from src.models import AnalyticsEvent, EventCreate

logger = logging.getLogger("AnalyticsAPI.Ingestion")

REQUIRED_FIELDS = ("eventType", "domain", "path")


def parse_event_payload(body: Optional[Dict[str, Any]]) -> EventCreate:
    """
    Validate a track request body.
    Raises EventValidationError; a rejected payload is never partially stored.
    """
    if body is None:
        raise EventValidationError("Request body must be a JSON object")

    try:
        return EventCreate.model_validate(body)
    except ValidationError as e:
        bad_fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        if any(field in REQUIRED_FIELDS for field in bad_fields):
            message = f"Missing required fields: {', '.join(REQUIRED_FIELDS)}"
        else:
            message = f"Invalid fields: {', '.join(bad_fields)}"
        logger.info(f"Rejected event payload: {message}")
        raise EventValidationError(message)


def build_event(owner_id: str, payload: EventCreate, meta: RequestMeta) -> AnalyticsEvent:
    """
    Enrich a validated payload into the record we store.
    Client-supplied device/browser/os win over what we detect.
    """
    user_agent = meta.user_agent or payload.user_agent
    detected = classify(user_agent)

    return AnalyticsEvent(
        owner_id=owner_id,
        event_type=payload.event_type,
        domain=payload.domain,
        path=payload.path,
        referrer=payload.referrer or None,
        user_agent=user_agent,
        ip_token=anonymize_ip(meta.client_ip),
        country=payload.country or None,
        city=payload.city or None,
        device_type=payload.device_type or (detected.device_type if detected else None),
        browser=payload.browser or (detected.browser if detected else None),
        os=payload.os or (detected.os if detected else None),
        screen_width=payload.screen_width or None,
        screen_height=payload.screen_height or None,
        session_id=payload.session_id or None,
        event_metadata=payload.metadata or None,
    )
