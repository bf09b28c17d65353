"""
Reducers from raw EventRow lists to the dashboard view models.

All functions are pure; dates are passed in so callers control "today".
"""
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable

from .models import (
    DEFAULT_TOP_GEO_TITLE,
    KPI,
    EventRow,
    GeoRankRow,
    Mix,
    MixSlice,
    MixStackRow,
    TopGeo,
    Trend,
    TrendPoint,
)

KPI_WINDOW_DAYS = 14
TREND_WINDOW_DAYS = 30
TOP_GEO_WINDOW_DAYS = 14
MIX_WINDOW_DAYS = 7


def window_start(today: date, days: int) -> date:
    """First day of a window of `days` days ending on (and including) today."""
    return today - timedelta(days=days - 1)


def date_range(start: date, end: date) -> list[date]:
    """Every calendar day from start to end, inclusive."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def daily_totals(rows: Iterable[EventRow]) -> dict[date, int]:
    """Sum event counts per day."""
    totals: dict[date, int] = defaultdict(int)
    for row in rows:
        totals[row.event_date] += row.event_count
    return totals


def _ranked(totals: dict[str, int]) -> list[tuple[str, int]]:
    # sorted() is stable, so equal totals keep encounter order
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def reduce_kpi(rows: Iterable[EventRow], today: date) -> KPI:
    """Yesterday's total, last-7-day total and week-over-week change."""
    by_day = daily_totals(rows)
    days = date_range(window_start(today, KPI_WINDOW_DAYS), today)
    totals = [by_day.get(day, 0) for day in days]

    last7 = sum(totals[-7:])
    prev7 = sum(totals[:-7])
    # No prior activity counts as flat, not infinite growth
    wow = 0.0 if prev7 == 0 else (last7 - prev7) / prev7 * 100

    return KPI(
        yesterday_total=by_day.get(today - timedelta(days=1), 0),
        last7_total=last7,
        week_over_week_percent=wow,
    )


def reduce_trend(rows: Iterable[EventRow], start: date, end: date) -> Trend:
    """Zero-filled daily series from start to end, oldest first."""
    by_day = daily_totals(rows)
    return Trend(series=[TrendPoint(day=day, total=by_day.get(day, 0)) for day in date_range(start, end)])


def reduce_top_geo(rows: Iterable[EventRow], geo_level: str, limit: int = 10) -> TopGeo:
    """Rank geo values for the most recent day present in the rows."""
    rows = list(rows)
    if not rows:
        return TopGeo()

    latest = max(row.event_date for row in rows)
    level = geo_level.lower()

    totals: dict[str, int] = {}
    for row in rows:
        if row.event_date != latest or (row.geo_level or "").lower() != level:
            continue
        label = row.geo_value if row.geo_value is not None else "Unknown"
        totals[label] = totals.get(label, 0) + row.event_count

    if not totals:
        return TopGeo()

    ranking = [GeoRankRow(label=label, total=total) for label, total in _ranked(totals)[:limit]]
    return TopGeo(
        title=f"Top {limit} {geo_level} by events ({latest.isoformat()})",
        ranking=ranking,
    )


def reduce_mix(rows: Iterable[EventRow], start: date, end: date, top_events: int = 4) -> Mix:
    """Event-name pie over the window and a per-day stack of top events + other."""
    by_event: dict[str, int] = {}
    by_day_event: dict[date, dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for row in rows:
        by_event[row.event_name] = by_event.get(row.event_name, 0) + row.event_count
        by_day_event[row.event_date][row.event_name] += row.event_count

    pie = [MixSlice(event_name=name, total=total) for name, total in _ranked(by_event)]
    top = [slice_.event_name for slice_ in pie[:top_events]]

    stack = []
    for day in date_range(start, end):
        day_counts = by_day_event.get(day, {})
        events = {name: day_counts.get(name, 0) for name in top}
        other = sum(count for name, count in day_counts.items() if name not in events)
        stack.append(MixStackRow(day=day, events=events, other=other))

    return Mix(pie=pie, stack=stack)


def empty_views(today: date) -> tuple[KPI, Trend, TopGeo, Mix]:
    """All-zero view models, used when no enabled site is in scope."""
    return (
        KPI(),
        reduce_trend([], window_start(today, TREND_WINDOW_DAYS), today),
        TopGeo(title=DEFAULT_TOP_GEO_TITLE),
        Mix(),
    )
