"""
Configuration for the GA console.
"""
import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Cache defaults
DEFAULT_CACHE_TTL_SECONDS = 60 * 60  # 1 hour
DEFAULT_FETCH_TIMEOUT_SECONDS = 30.0


class ConfigError(ValueError):
    """Raised when the dashboard configuration is unusable."""
    pass


@dataclass
class DashboardConfig:
    """Configuration for a single dashboard instance."""

    # Required
    supabase_url: str  # Project URL (e.g., "https://xyz.supabase.co")
    supabase_key: str  # Anon or service key sent as apikey + bearer

    # Tables
    events_table: str = "ga_daily_events"
    sites_table: str = "sites"

    # Display settings
    display_name: str = "GA Dashboard"

    # Cache
    cache_ttl_seconds: int = DEFAULT_CACHE_TTL_SECONDS
    storage_key: str = "ga-dashboard-cache"

    # Fetching
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS

    # Ranking sizes
    top_geo_limit: int = 10
    mix_top_events: int = 4

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.supabase_url:
            raise ConfigError("supabase_url is required")
        if not self.supabase_key:
            raise ConfigError("supabase_key is required")
        self.supabase_url = self.supabase_url.rstrip("/")

        if self.cache_ttl_seconds <= 0:
            raise ConfigError(
                f"cache_ttl_seconds must be positive. Got {self.cache_ttl_seconds}."
            )
        if self.fetch_timeout_seconds <= 0:
            raise ConfigError(
                f"fetch_timeout_seconds must be positive. Got {self.fetch_timeout_seconds}."
            )
        if self.top_geo_limit < 1 or self.mix_top_events < 1:
            raise ConfigError("top_geo_limit and mix_top_events must be at least 1")

        if not self.supabase_url.startswith("https://"):
            logger.warning(
                f"Supabase URL {self.supabase_url} is not https; "
                f"the API key will be sent in clear text"
            )

    @classmethod
    def from_env(cls, **overrides) -> "DashboardConfig":
        """Build a config from environment variables.

        Reads SUPABASE_URL / SUPABASE_ANON_KEY, falling back to the
        NEXT_PUBLIC_ prefixed names used by the web frontend.
        """
        url = os.environ.get("SUPABASE_URL") or os.environ.get("NEXT_PUBLIC_SUPABASE_URL", "")
        key = os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("NEXT_PUBLIC_SUPABASE_ANON_KEY", "")
        ttl = os.environ.get("GA_CACHE_TTL_SECONDS")
        if ttl is not None and "cache_ttl_seconds" not in overrides:
            try:
                overrides["cache_ttl_seconds"] = int(ttl)
            except ValueError:
                raise ConfigError(f"GA_CACHE_TTL_SECONDS must be an integer. Got {ttl!r}.") from None
        return cls(supabase_url=url, supabase_key=key, **overrides)
