from slowapi import Limiter
from starlette.requests import Request

from src.config import settings
from src.enrichment import resolve_client_ip


def origin_or_client_ip(request: Request) -> str:
    """Per-origin key for third-party pages, caller address otherwise."""
    origin = request.headers.get("origin")
    if origin:
        return f"origin:{origin}"
    return f"ip:{resolve_client_ip(request.headers)}"


limiter = Limiter(
    key_func=origin_or_client_ip,
    default_limits=[settings.DEFAULT_RATELIMIT],
    storage_uri=settings.RATELIMIT_STORAGE_URI,
)
