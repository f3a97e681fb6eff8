import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional, Union

from fastapi import Depends, Request, status
from sqlmodel import Session, select

from src.config import settings
from src.db import get_session
from src.errors import AuthorizationError, OwnerResolutionError
from src.models import DashboardSession, utcnow

logger = logging.getLogger("AnalyticsAPI.Security")

API_KEY_HEADER = "x-api-key"


@dataclass(frozen=True)
class Authenticated:
    owner_id: str
    mode: str  # "session" or "api_key"


@dataclass(frozen=True)
class Rejected:
    reason: str
    status_code: int = status.HTTP_401_UNAUTHORIZED


AuthResult = Union[Authenticated, Rejected]


def hash_session_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def issue_dashboard_session(
    session: Session,
    owner_id: str,
    ttl: Optional[timedelta] = None
) -> str:
    """
    Create a first-party session for an owner and return the raw cookie token.
    """
    token = secrets.token_urlsafe(32)
    ttl = ttl if ttl is not None else timedelta(hours=settings.DASHBOARD_SESSION_TTL_HOURS)
    record = DashboardSession(
        token_hash=hash_session_token(token),
        owner_id=owner_id,
        expires_at=utcnow() + ttl,
    )
    session.add(record)
    session.commit()
    logger.info(f"Issued dashboard session for owner {owner_id}")
    return token


def get_session_owner(request: Request, session: Session) -> Optional[str]:
    """Owner behind the request's first-party session cookie, if it is live."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        return None

    record = session.exec(
        select(DashboardSession).where(DashboardSession.token_hash == hash_session_token(token))
    ).first()

    if not record:
        return None
    if record.expires_at is not None and record.expires_at <= utcnow():
        logger.debug(f"Expired dashboard session for owner {record.owner_id}")
        return None
    return record.owner_id


def _api_key_matches(provided: Optional[str]) -> bool:
    expected = settings.ANALYTICS_API_KEY
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def resolve_owner(
    request: Request,
    session: Session,
    body_user_id: Optional[str] = None
) -> AuthResult:
    """
    Decide who an ingested event belongs to. Evaluated once per request:
    1. a live first-party session wins, the API key is not consulted;
    2. otherwise the x-api-key header must match ANALYTICS_API_KEY, and the
       owner is the body's userId or ANALYTICS_OWNER_ID;
    3. anything else is rejected.
    """
    owner_id = get_session_owner(request, session)
    if owner_id:
        return Authenticated(owner_id=owner_id, mode="session")

    if not _api_key_matches(request.headers.get(API_KEY_HEADER)):
        return Rejected(reason="Unauthorized - Invalid API key")

    owner_id = body_user_id or settings.ANALYTICS_OWNER_ID
    if not owner_id:
        return Rejected(
            reason="User ID required. Set ANALYTICS_OWNER_ID or pass userId in request",
            status_code=status.HTTP_400_BAD_REQUEST,
        )
    return Authenticated(owner_id=owner_id, mode="api_key")


def raise_for_rejection(result: AuthResult) -> Authenticated:
    if isinstance(result, Rejected):
        if result.status_code == status.HTTP_400_BAD_REQUEST:
            raise OwnerResolutionError(result.reason)
        raise AuthorizationError(result.reason)
    return result


def require_dashboard_owner(
    request: Request,
    session: Session = Depends(get_session)
) -> str:
    """
    Dependency for dashboard reads: only a first-party session may read.
    """
    owner_id = get_session_owner(request, session)
    if not owner_id:
        raise AuthorizationError("Unauthorized")
    return owner_id
