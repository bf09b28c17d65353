"""
Admin console for GA4 event data pre-aggregated into Supabase.

Usage:
    from ga_console import setup_dashboard

    dashboard = setup_dashboard(
        supabase_url="https://your-project.supabase.co",
        supabase_key="your-anon-key",
    )

    app.include_router(dashboard.router, prefix="/admin/ga")
"""

from .config import ConfigError, DashboardConfig
from .core.cache import FileSessionStorage, MemoryStorage, SessionStorage
from .core.client import SupabaseClient
from .core.store import DashboardStore
from .routes import create_dashboard_router

__version__ = "0.1.0"
__all__ = [
    "setup_dashboard", "GADashboard", "DashboardConfig", "ConfigError",
    "DashboardStore", "SupabaseClient", "MemoryStorage", "FileSessionStorage",
]


class GADashboard:
    """Main interface: config, client, store and router for one session."""

    def __init__(self, config: DashboardConfig, storage: SessionStorage | None = None):
        self.config = config
        self.client = SupabaseClient(
            supabase_url=config.supabase_url,
            supabase_key=config.supabase_key,
            timeout=config.fetch_timeout_seconds,
        )
        self.store = DashboardStore(self.client, config, storage=storage)
        self.router = create_dashboard_router(config, self.store)


def setup_dashboard(
    supabase_url: str,
    supabase_key: str,
    storage: SessionStorage | None = None,
    **options,
) -> GADashboard:
    """
    Set up the GA dashboard.

    Args:
        supabase_url: Supabase project URL
        supabase_key: Supabase API key with read access to the events and sites tables
        storage: Session storage for the cache (defaults to in-memory)
        **options: Any other DashboardConfig field (cache_ttl_seconds, events_table, ...)

    Returns:
        GADashboard instance with store and router
    """
    config = DashboardConfig(supabase_url=supabase_url, supabase_key=supabase_key, **options)
    return GADashboard(config, storage=storage)
