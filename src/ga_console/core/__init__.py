"""
Core dashboard module.

Contains the data models, query layer, reducers and the caching store.
"""

from .aggregate import reduce_kpi, reduce_mix, reduce_top_geo, reduce_trend
from .cache import FileSessionStorage, MemoryStorage, SessionStorage, make_cache_key, should_refetch
from .client import QueryError, QueryResult, SupabaseClient
from .models import (
    KPI,
    CacheEntry,
    DashboardSnapshot,
    EventRow,
    FilterState,
    FilterUpdate,
    GeoLevel,
    GeoRankRow,
    LoadStatus,
    Mix,
    MixSlice,
    MixStackRow,
    SiteRow,
    TopGeo,
    Trend,
    TrendPoint,
)
from .query import AUTO_EVENTS, EventQuery, build_event_query, resolve_enabled_groups
from .store import DashboardStore

__all__ = [
    "EventRow", "SiteRow", "FilterState", "FilterUpdate", "GeoLevel", "LoadStatus",
    "KPI", "Trend", "TrendPoint", "TopGeo", "GeoRankRow", "Mix", "MixSlice", "MixStackRow",
    "CacheEntry", "DashboardSnapshot",
    "SupabaseClient", "QueryError", "QueryResult",
    "AUTO_EVENTS", "EventQuery", "build_event_query", "resolve_enabled_groups",
    "reduce_kpi", "reduce_trend", "reduce_top_geo", "reduce_mix",
    "make_cache_key", "should_refetch", "SessionStorage", "MemoryStorage", "FileSessionStorage",
    "DashboardStore",
]
