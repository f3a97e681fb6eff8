from typing import List

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageViews(_CamelModel):
    path: str
    views: int


class DomainViews(_CamelModel):
    domain: str
    views: int


class DeviceCount(_CamelModel):
    device: str
    count: int


class DailyViews(_CamelModel):
    date: str  # YYYY-MM-DD, UTC
    views: int


class AggregationSummary(_CamelModel):
    """
    Rollups for one owner over one time window.
    Recomputed on every request and never stored.
    The default instance is the valid "no data" answer.
    """
    total_pageviews: int = 0
    unique_visitors: int = 0
    unique_sessions: int = 0
    top_pages: List[PageViews] = []
    top_domains: List[DomainViews] = []
    device_breakdown: List[DeviceCount] = []
    daily_views: List[DailyViews] = []
