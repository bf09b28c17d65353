"""Tests for the dashboard store and its load_all orchestrator."""

import asyncio
import threading
from datetime import date, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from pydantic import ValidationError

from ga_console.config import DashboardConfig
from ga_console.core.cache import MemoryStorage
from ga_console.core.client import QueryError, SupabaseClient
from ga_console.core.models import EventRow, LoadStatus, SiteRow
from ga_console.core.store import DashboardStore

TODAY = date(2026, 3, 15)


def run_async(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class Clock:
    """Settable clock for TTL tests."""

    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def event(day, name="page_view", count=1, prop="1", level=None, value=None):
    return EventRow(
        event_date=day, event_name=name, event_count=count, property_id=prop,
        geo_level=level, geo_value=value,
    )


SAMPLE_ROWS = [
    event(TODAY, "page_view", 5, level="country", value="US"),
    event(TODAY, "click", 3, level="country", value="DE"),
    event(TODAY - timedelta(days=1), "page_view", 4),
    event(TODAY - timedelta(days=9), "page_view", 6),
]


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def config():
    return DashboardConfig(
        supabase_url="https://test.supabase.co",
        supabase_key="test-key",
        cache_ttl_seconds=3600,
        fetch_timeout_seconds=5,
    )


@pytest.fixture
def client():
    client = SupabaseClient("https://test.supabase.co", "test-key")
    client.fetch_events = AsyncMock(return_value=SAMPLE_ROWS)
    client.fetch_sites = AsyncMock(return_value=[SiteRow(property_id="1", is_enabled=True)])
    return client


@pytest.fixture
def make_store(client, config, clock):
    def _make(storage=None):
        return DashboardStore(client, config, storage=storage, clock=clock, today=lambda: TODAY)

    return _make


class TestLoadAll:
    """Fetch, reduce and commit."""

    def test_first_load_populates_all_panels(self, make_store, client, clock):
        store = make_store()
        run_async(store.load_all())

        cache = store.cache
        assert client.fetch_events.await_count == 4
        assert store.status == LoadStatus.READY
        assert cache.key == store.filters.cache_key()
        assert cache.fetched_at == clock.now
        assert cache.kpi.yesterday_total == 4
        assert len(cache.trend.series) == 30
        assert [r.label for r in cache.top_geo.ranking] == ["US", "DE"]
        assert len(cache.mix.stack) == 7
        for panel in (cache.kpi, cache.trend, cache.top_geo, cache.mix):
            assert panel.loading is False
            assert panel.error is None

    def test_queries_share_filter_scope(self, make_store, client):
        store = make_store()
        store.set_filters(only_enabled=True, only_auto=True)
        run_async(store.load_all())

        queries = [call.args[0] for call in client.fetch_events.await_args_list]
        assert {q.group_ids for q in queries} == {("1",)}
        assert len({q.event_names for q in queries}) == 1
        assert sorted((q.end - q.start).days + 1 for q in queries) == [7, 14, 14, 30]
        assert all(q.end == TODAY for q in queries)
        assert sum("geo_level" in q.columns for q in queries) == 1

    def test_second_call_is_cached(self, make_store, client, clock):
        store = make_store()
        run_async(store.load_all())
        fetched_at = store.cache.fetched_at

        clock.now += 60
        run_async(store.load_all())

        assert client.fetch_events.await_count == 4
        assert store.cache.fetched_at == fetched_at

    def test_force_refetches(self, make_store, client):
        store = make_store()
        run_async(store.load_all())
        run_async(store.load_all(force=True))
        assert client.fetch_events.await_count == 8

    def test_ttl_expiry_refetches(self, make_store, client, clock):
        store = make_store()
        run_async(store.load_all())
        clock.now += 3600
        run_async(store.load_all())
        assert client.fetch_events.await_count == 8

    @pytest.mark.parametrize("change", [
        {"only_auto": False},
        {"only_enabled": True},
        {"geo_level": "city"},
    ])
    def test_filter_change_invalidates(self, make_store, client, change):
        store = make_store()
        run_async(store.load_all())
        old_key = store.cache.key

        store.set_filters(**change)
        run_async(store.load_all())

        assert client.fetch_events.await_count == 8
        assert store.cache.key != old_key

    def test_loading_flags_set_while_fetching(self, make_store, client):
        store = make_store()
        seen = []

        async def fetch(query):
            seen.append((store.status, store.cache.kpi.loading, store.cache.mix.loading))
            return []

        client.fetch_events.side_effect = fetch
        run_async(store.load_all())

        assert seen and all(s == (LoadStatus.LOADING, True, True) for s in seen)
        assert store.cache.kpi.loading is False

    def test_sites_not_queried_without_enabled_filter(self, make_store, client):
        run_async(make_store().load_all())
        client.fetch_sites.assert_not_called()


class TestEmptyEnabledSet:
    """No enabled sites short-circuits to zeros."""

    def test_short_circuit(self, make_store, client, clock):
        client.fetch_sites.return_value = [SiteRow(property_id="1", is_enabled=False)]
        store = make_store()
        store.set_filters(only_enabled=True)
        run_async(store.load_all())

        cache = store.cache
        client.fetch_events.assert_not_called()
        assert (cache.kpi.yesterday_total, cache.kpi.last7_total, cache.kpi.week_over_week_percent) == (0, 0, 0)
        assert len(cache.trend.series) == 30
        assert all(p.total == 0 for p in cache.trend.series)
        assert cache.top_geo.ranking == []
        assert cache.mix.pie == [] and cache.mix.stack == []
        assert cache.key == store.filters.cache_key()
        assert cache.fetched_at == clock.now
        assert store.status == LoadStatus.READY


class TestFailure:
    """Errors keep the last good data."""

    def test_error_attached_and_data_retained(self, make_store, client, clock):
        store = make_store()
        run_async(store.load_all())
        good = store.cache

        client.fetch_events.side_effect = QueryError("backend down", status_code=503)
        clock.now += 10
        run_async(store.load_all(force=True))

        cache = store.cache
        assert store.status == LoadStatus.ERROR
        assert cache.key == good.key
        assert cache.fetched_at == good.fetched_at
        assert cache.kpi.yesterday_total == good.kpi.yesterday_total
        assert cache.top_geo.ranking == good.top_geo.ranking
        for panel in (cache.kpi, cache.trend, cache.top_geo, cache.mix):
            assert panel.loading is False
            assert panel.error == "backend down"

    def test_empty_message_falls_back(self, make_store, client):
        client.fetch_events.side_effect = RuntimeError()
        store = make_store()
        run_async(store.load_all())
        assert store.cache.kpi.error == "failed"
        assert store.cache.key == ""

    def test_site_lookup_failure(self, make_store, client):
        client.fetch_sites.side_effect = QueryError("sites unavailable")
        store = make_store()
        store.set_filters(only_enabled=True)
        run_async(store.load_all())

        assert store.cache.mix.error == "sites unavailable"
        client.fetch_events.assert_not_called()

    def test_recovers_on_next_call(self, make_store, client):
        client.fetch_events.side_effect = QueryError("flaky")
        store = make_store()
        run_async(store.load_all())
        assert store.status == LoadStatus.ERROR

        client.fetch_events.side_effect = None
        run_async(store.load_all())
        assert store.status == LoadStatus.READY
        assert store.cache.kpi.error is None

    def test_timeout(self, make_store, client, config):
        config.fetch_timeout_seconds = 0.01

        async def hang(query):
            await asyncio.sleep(10)

        client.fetch_events.side_effect = hang
        store = make_store()
        run_async(store.load_all())

        assert store.status == LoadStatus.ERROR
        assert "timed out" in store.cache.trend.error
        assert store.cache.trend.loading is False


class TestPersistence:
    """Session storage round trip."""

    def test_restored_store_uses_cache(self, make_store, client):
        storage = MemoryStorage()
        first = make_store(storage)
        first.set_filters(geo_level="region")
        run_async(first.load_all())

        second = make_store(storage)
        assert second.filters.geo_level == "region"
        assert second.cache == first.cache
        assert second.status == LoadStatus.READY

        run_async(second.load_all())
        assert client.fetch_events.await_count == 4

    def test_filters_persist_before_load(self, make_store):
        storage = MemoryStorage()
        make_store(storage).set_filters(only_auto=False)
        assert make_store(storage).filters.only_auto is False

    def test_loading_flags_cleared_on_restore(self, make_store, config):
        storage = MemoryStorage()
        storage.set(config.storage_key, {"cache": {"key": "x", "fetched_at": 1, "kpi": {"loading": True}}})
        store = make_store(storage)
        assert store.cache.kpi.loading is False

    def test_unreadable_snapshot_ignored(self, make_store, config):
        storage = MemoryStorage()
        storage.set(config.storage_key, {"filters": {"geo_level": "planet"}})
        store = make_store(storage)
        assert store.filters.geo_level == "country"
        assert store.status == LoadStatus.IDLE

    def test_persist_runs_off_the_event_loop(self, make_store):
        class RecordingStorage(MemoryStorage):
            def __init__(self):
                super().__init__()
                self.threads = []

            def set(self, key, value):
                self.threads.append(threading.get_ident())
                super().set(key, value)

        storage = RecordingStorage()
        store = make_store(storage)
        loop_threads = []

        async def load():
            loop_threads.append(threading.get_ident())
            await store.load_all()

        run_async(load())
        assert storage.threads
        assert storage.threads[-1] != loop_threads[0]


class TestSetFilters:
    """Partial filter updates."""

    def test_unknown_filter_rejected(self, make_store):
        store = make_store()
        with pytest.raises(ValidationError):
            store.set_filters(geolevel="city")
        assert store.filters.geo_level == "country"

    def test_invalid_value_rejected(self, make_store):
        store = make_store()
        with pytest.raises(ValidationError):
            store.set_filters(geo_level="planet")


class TestUnreadableRows:
    """Rows that fail parsing don't sink the load."""

    def test_null_date_row_skipped(self, config, clock):
        def handler(request):
            return httpx.Response(200, json=[
                {"event_date": (TODAY - timedelta(days=1)).isoformat(), "event_name": "page_view",
                 "event_count": "6", "property_id": 1},
                {"event_date": None, "event_name": "page_view", "event_count": 50, "property_id": 1},
            ])

        client = SupabaseClient("https://test.supabase.co", "test-key", transport=httpx.MockTransport(handler))
        store = DashboardStore(client, config, clock=clock, today=lambda: TODAY)
        run_async(store.load_all())

        assert store.status == LoadStatus.READY
        assert store.cache.kpi.error is None
        assert store.cache.kpi.yesterday_total == 6
        assert store.cache.kpi.last7_total == 6
        assert store.cache.trend.series[-2].total == 6
