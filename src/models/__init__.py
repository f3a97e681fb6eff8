from src.models.event import (
    AnalyticsEvent,
    DeviceType,
    EventCreate,
    EventRecord,
    EventType,
    utcnow,
)
from src.models.dashboard_session import DashboardSession
from src.models.summary import (
    AggregationSummary,
    DailyViews,
    DeviceCount,
    DomainViews,
    PageViews,
)
