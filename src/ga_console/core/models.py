"""
Pydantic models for GA event data and dashboard view models.
"""
import math
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_TOP_GEO_TITLE = "Top 10 regions (latest day)"


def coerce_count(value: Any) -> int:
    """Coerce a raw count (int, float, numeric string, None) to an int.

    Anything that isn't a finite number becomes 0 so it can never poison a sum.
    """
    if value is None or isinstance(value, bool):
        return int(value or 0)
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number):
        return 0
    return int(number)


def is_flag_on(value: Any) -> bool:
    """Permissive boolean: True, 1, "1" and "true" are on, everything else off."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value in ("1", "true")
    return False


class GeoLevel(str, Enum):
    """Granularity of the geo dimension."""
    COUNTRY = "country"
    REGION = "region"
    CITY = "city"
    CONTINENT = "continent"
    SUB_CONTINENT = "subContinent"


class LoadStatus(str, Enum):
    """Store lifecycle: idle -> loading -> ready | error."""
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


# =============================================================================
# Raw Data Models
# =============================================================================

class EventRow(BaseModel):
    """One pre-aggregated row of the daily events table."""
    event_date: date
    event_name: str
    event_count: int = 0
    property_id: str

    # Geography (only present when requested)
    geo_level: str | None = None
    geo_value: str | None = None

    @field_validator("event_count", mode="before")
    @classmethod
    def _coerce_count(cls, value: Any) -> int:
        return coerce_count(value)

    @field_validator("event_name", "property_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str:
        return "" if value is None else str(value)


class SiteRow(BaseModel):
    """A row of the site registry, reduced to what the group filter needs."""
    property_id: str | None = None
    is_enabled: Any = None
    is_enable: Any = None  # legacy column name

    @field_validator("property_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        return None if value is None else str(value)

    @property
    def enabled(self) -> bool:
        return is_flag_on(self.is_enabled) or is_flag_on(self.is_enable)


# =============================================================================
# Filters
# =============================================================================

class FilterState(BaseModel):
    """Dashboard filter controls. Fully determines the query scope."""
    model_config = ConfigDict(frozen=True, use_enum_values=True, validate_default=True, extra="forbid")

    only_auto: bool = True
    only_enabled: bool = False
    geo_level: GeoLevel = GeoLevel.COUNTRY

    def cache_key(self) -> str:
        """Deterministic key over all filter fields, in sorted field order."""
        parts = []
        for name, value in sorted(self.model_dump(mode="json").items()):
            if isinstance(value, bool):
                value = int(value)
            parts.append(f"{name}:{value}")
        return "|".join(parts)


class FilterUpdate(BaseModel):
    """Partial filter change; unset fields keep their current value."""
    only_auto: bool | None = None
    only_enabled: bool | None = None
    geo_level: GeoLevel | None = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


# =============================================================================
# View Models
# =============================================================================

class PanelState(BaseModel):
    """Loading/error flags shared by every dashboard panel."""
    loading: bool = False
    error: str | None = None


class KPI(PanelState):
    """Headline numbers."""
    yesterday_total: int = 0
    last7_total: int = 0
    week_over_week_percent: float = 0.0

    @property
    def direction(self) -> str:
        if self.week_over_week_percent > 0:
            return "up"
        if self.week_over_week_percent < 0:
            return "down"
        return "same"


class TrendPoint(BaseModel):
    """Daily total for the trend chart."""
    day: date
    total: int = 0

    @property
    def label(self) -> str:
        return self.day.strftime("%m-%d")


class Trend(PanelState):
    series: list[TrendPoint] = Field(default_factory=list)


class GeoRankRow(BaseModel):
    label: str
    total: int


class TopGeo(PanelState):
    title: str = DEFAULT_TOP_GEO_TITLE
    ranking: list[GeoRankRow] = Field(default_factory=list)


class MixSlice(BaseModel):
    """Pie slice: one event name and its window total."""
    event_name: str
    total: int


class MixStackRow(BaseModel):
    """One day of the stacked event-mix chart (top events + other)."""
    day: date
    events: dict[str, int] = Field(default_factory=dict)
    other: int = 0

    @property
    def total(self) -> int:
        return sum(self.events.values()) + self.other

    @property
    def label(self) -> str:
        return self.day.strftime("%m-%d")


class Mix(PanelState):
    pie: list[MixSlice] = Field(default_factory=list)
    stack: list[MixStackRow] = Field(default_factory=list)


# =============================================================================
# Cache
# =============================================================================

class CacheEntry(BaseModel):
    """The four view models plus the key and time they were fetched for."""
    key: str = ""
    fetched_at: float = 0.0  # unix seconds; 0 means never fetched
    kpi: KPI = Field(default_factory=KPI)
    trend: Trend = Field(default_factory=Trend)
    top_geo: TopGeo = Field(default_factory=TopGeo)
    mix: Mix = Field(default_factory=Mix)


class DashboardSnapshot(BaseModel):
    """Everything the store persists and serves to the UI."""
    filters: FilterState = Field(default_factory=FilterState)
    cache: CacheEntry = Field(default_factory=CacheEntry)
    status: LoadStatus = LoadStatus.IDLE
