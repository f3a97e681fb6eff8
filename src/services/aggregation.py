"""
Read path for the dashboard.

summarize() answers "for owner X over [start, end), what happened" with a
handful of grouped SELECTs. It never writes, so it can run alongside
ingestion and alongside itself without coordination.

Conventions:
- the window is half-open: start inclusive, end exclusive
- days are UTC calendar days
- dailyViews only lists days that had at least one pageview
- top lists break ties by first-seen, then by name
"""
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy import case, distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from src.config import settings
from src.errors import StoreError
from src.models import (
    AggregationSummary,
    AnalyticsEvent,
    DailyViews,
    DeviceCount,
    DomainViews,
    PageViews,
)

logger = logging.getLogger("AnalyticsAPI.Aggregation")

UNKNOWN_DEVICE = "unknown"


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def resolve_window(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Tuple[datetime, datetime]:
    """Fill in the default window: SUMMARY_DEFAULT_DAYS ago until now."""
    now = now or datetime.now(timezone.utc)
    end = _to_naive_utc(end_date or now)
    start = _to_naive_utc(start_date) if start_date else end - timedelta(days=settings.SUMMARY_DEFAULT_DAYS)
    return start, end


def _day_label(value) -> str:
    # SQLite's date() gives a string, Postgres gives a date
    if isinstance(value, (date, datetime)):
        return value.strftime("%Y-%m-%d")
    return str(value)


def summarize(
    session: Session,
    owner_id: str,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> AggregationSummary:
    """
    Compute the AggregationSummary for one owner.
    No matching events is not an error: the zeroed summary is returned.
    Raises StoreError if the database read fails.
    """
    start, end = resolve_window(start_date, end_date)
    limit = limit or settings.SUMMARY_TOP_N

    if start >= end:
        return AggregationSummary()

    in_window = (
        AnalyticsEvent.owner_id == owner_id,
        AnalyticsEvent.created_at >= start,
        AnalyticsEvent.created_at < end,
    )
    is_pageview = AnalyticsEvent.event_type == "pageview"

    try:
        total_events, total_pageviews, unique_visitors, unique_sessions = session.exec(
            select(
                func.count(),
                func.count(case((is_pageview, 1))),
                func.count(distinct(AnalyticsEvent.ip_token)),
                func.count(distinct(AnalyticsEvent.session_id)),
            ).where(*in_window)
        ).one()

        if not total_events:
            return AggregationSummary()

        page_views = func.count().label("views")
        top_pages = session.exec(
            select(AnalyticsEvent.path, page_views)
            .where(*in_window, is_pageview)
            .group_by(AnalyticsEvent.path)
            .order_by(page_views.desc(), func.min(AnalyticsEvent.created_at), AnalyticsEvent.path)
            .limit(limit)
        ).all()

        domain_views = func.count().label("views")
        top_domains = session.exec(
            select(AnalyticsEvent.domain, domain_views)
            .where(*in_window, is_pageview)
            .group_by(AnalyticsEvent.domain)
            .order_by(domain_views.desc(), func.min(AnalyticsEvent.created_at), AnalyticsEvent.domain)
            .limit(limit)
        ).all()

        device = func.coalesce(AnalyticsEvent.device_type, UNKNOWN_DEVICE).label("device")
        device_count = func.count().label("count")
        devices = session.exec(
            select(device, device_count)
            .where(*in_window)
            .group_by(device)
            .order_by(device_count.desc(), device)
        ).all()

        day = func.date(AnalyticsEvent.created_at).label("day")
        day_views = func.count().label("views")
        daily = session.exec(
            select(day, day_views)
            .where(*in_window, is_pageview)
            .group_by(day)
            .order_by(day)
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Analytics summary error for owner {owner_id}: {e}")
        raise StoreError("Failed to fetch analytics")

    return AggregationSummary(
        total_pageviews=total_pageviews or 0,
        unique_visitors=unique_visitors or 0,
        unique_sessions=unique_sessions or 0,
        top_pages=[PageViews(path=path, views=views) for path, views in top_pages],
        top_domains=[DomainViews(domain=domain, views=views) for domain, views in top_domains],
        device_breakdown=[DeviceCount(device=name, count=count) for name, count in devices],
        daily_views=[DailyViews(date=_day_label(d), views=views) for d, views in daily],
    )
