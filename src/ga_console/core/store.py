"""
Dashboard store: filters, cached view models and the load_all orchestrator.

One store per session. It is the only writer of its cache entry; overlapping
load_all calls are not sequenced, the last one to finish wins.
"""
import asyncio
import logging
import time
from datetime import date
from typing import Any, Callable

from pydantic import ValidationError

from ..config import DashboardConfig
from .aggregate import (
    KPI_WINDOW_DAYS,
    MIX_WINDOW_DAYS,
    TOP_GEO_WINDOW_DAYS,
    TREND_WINDOW_DAYS,
    empty_views,
    reduce_kpi,
    reduce_mix,
    reduce_top_geo,
    reduce_trend,
    window_start,
)
from .cache import MemoryStorage, SessionStorage, make_cache_key, should_refetch
from .client import SupabaseClient
from .models import CacheEntry, DashboardSnapshot, FilterState, LoadStatus
from .query import GEO_COLUMNS, build_event_query, resolve_enabled_groups

logger = logging.getLogger(__name__)


class DashboardStore:
    """Cache-or-refetch state holder for the GA dashboard."""

    def __init__(
        self,
        client: SupabaseClient,
        config: DashboardConfig,
        storage: SessionStorage | None = None,
        clock: Callable[[], float] = time.time,
        today: Callable[[], date] = date.today,
    ):
        self.client = client
        self.config = config
        self.storage = storage if storage is not None else MemoryStorage()
        self._clock = clock
        self._today = today

        self._filters = FilterState()
        self._cache = CacheEntry()
        self.status = LoadStatus.IDLE
        self._restore()

    # -------------------------------------------------------------------------
    # State access
    # -------------------------------------------------------------------------

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def cache(self) -> CacheEntry:
        return self._cache

    def snapshot(self) -> DashboardSnapshot:
        return DashboardSnapshot(filters=self._filters, cache=self._cache, status=self.status)

    def set_filters(self, **changes: Any) -> FilterState:
        """Apply a partial filter change. The next load_all sees the new key.

        Unknown filter names raise ValidationError.
        """
        self._filters = FilterState.model_validate({**self._filters.model_dump(), **changes})
        self._persist()
        return self._filters

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _restore(self) -> None:
        raw = self.storage.get(self.config.storage_key)
        if raw is None:
            return
        try:
            snapshot = DashboardSnapshot.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable dashboard cache: {e}")
            return

        self._filters = snapshot.filters
        self._cache = self._with_flags(snapshot.cache, loading=False)
        if self._cache.fetched_at:
            self.status = LoadStatus.READY

    def _persist(self) -> None:
        snapshot = DashboardSnapshot(filters=self._filters, cache=self._cache)
        self.storage.set(self.config.storage_key, snapshot.model_dump(mode="json", exclude={"status"}))

    @staticmethod
    def _with_flags(entry: CacheEntry, loading: bool, error: str | None = None) -> CacheEntry:
        flags = {"loading": loading, "error": error}
        return entry.model_copy(update={
            "kpi": entry.kpi.model_copy(update=flags),
            "trend": entry.trend.model_copy(update=flags),
            "top_geo": entry.top_geo.model_copy(update=flags),
            "mix": entry.mix.model_copy(update=flags),
        })

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def is_stale(self, force: bool = False) -> bool:
        return should_refetch(
            self._cache.key,
            make_cache_key(self._filters),
            self._cache.fetched_at,
            self.config.cache_ttl_seconds,
            force=force,
            now=self._clock(),
        )

    async def load_all(self, force: bool = False) -> None:
        """Refresh all four panels unless the cache is fresh for these filters."""
        filters = self._filters
        new_key = make_cache_key(filters)

        if not self.is_stale(force):
            logger.debug(f"Dashboard cache hit for {new_key}")
            return

        logger.info(f"Loading dashboard for {new_key} (force={force})")
        self.status = LoadStatus.LOADING
        self._cache = self._with_flags(self._cache, loading=True)

        try:
            entry = await asyncio.wait_for(
                self._fetch(filters, new_key),
                timeout=self.config.fetch_timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._fail(f"Dashboard queries timed out after {self.config.fetch_timeout_seconds:g}s")
            return
        except Exception as e:
            self._fail(str(e) or "failed")
            return

        self._cache = entry
        self.status = LoadStatus.READY
        # File-backed storage does blocking I/O
        await asyncio.to_thread(self._persist)
        logger.info(f"Dashboard loaded for {new_key}")

    def _fail(self, message: str) -> None:
        logger.error(f"Dashboard load failed: {message}")
        # Keep key, timestamp and the last good data
        self._cache = self._with_flags(self._cache, loading=False, error=message)
        self.status = LoadStatus.ERROR

    async def _fetch(self, filters: FilterState, key: str) -> CacheEntry:
        today = self._today()
        config = self.config

        enabled = await resolve_enabled_groups(self.client, filters.only_enabled, config.sites_table)
        if enabled is not None and not enabled:
            logger.info("No enabled sites; dashboard reset to zero")
            kpi, trend, top_geo, mix = empty_views(today)
            return CacheEntry(key=key, fetched_at=self._clock(), kpi=kpi, trend=trend, top_geo=top_geo, mix=mix)

        def query(days: int, extra_columns=()):
            return self.client.fetch_events(build_event_query(
                window_start(today, days),
                today,
                filters.only_auto,
                enabled,
                extra_columns,
                table=config.events_table,
            ))

        kpi_rows, trend_rows, geo_rows, mix_rows = await asyncio.gather(
            query(KPI_WINDOW_DAYS),
            query(TREND_WINDOW_DAYS),
            query(TOP_GEO_WINDOW_DAYS, GEO_COLUMNS),
            query(MIX_WINDOW_DAYS),
        )

        return CacheEntry(
            key=key,
            fetched_at=self._clock(),
            kpi=reduce_kpi(kpi_rows, today),
            trend=reduce_trend(trend_rows, window_start(today, TREND_WINDOW_DAYS), today),
            top_geo=reduce_top_geo(geo_rows, filters.geo_level, limit=config.top_geo_limit),
            mix=reduce_mix(mix_rows, window_start(today, MIX_WINDOW_DAYS), today, top_events=config.mix_top_events),
        )
