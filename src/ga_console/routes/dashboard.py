"""
Dashboard routes for the GA console.

Renders the dashboard page with Jinja2 and exposes the store as JSON.
"""

import logging
from pathlib import Path

from fastapi import APIRouter, Query, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from ..config import DashboardConfig
from ..core.models import DashboardSnapshot, FilterUpdate, GeoLevel
from ..core.store import DashboardStore

logger = logging.getLogger(__name__)


def _format_percent(value: float) -> str:
    """Format a week-over-week change with sign and one decimal."""
    return f"{value:+.1f}%"


def _format_count(value: int) -> str:
    return f"{value:,}"


def create_dashboard_router(config: DashboardConfig, store: DashboardStore) -> APIRouter:
    """Create dashboard router.

    Args:
        config: Dashboard configuration
        store: Session store that owns filters and cached panels
    """
    router = APIRouter(tags=["ga-dashboard"])

    template_dir = Path(__file__).parent.parent / "templates"
    templates = Jinja2Templates(directory=str(template_dir))
    templates.env.filters["format_percent"] = _format_percent
    templates.env.filters["format_count"] = _format_count

    @router.get("/", response_class=HTMLResponse)
    async def dashboard_page(
        request: Request,
        force: bool = False,
        only_auto: bool | None = None,
        only_enabled: bool | None = None,
        geo_level: GeoLevel | None = None,
    ):
        """Render the dashboard from the (possibly cached) store.

        Filter query params change the shared store, so every viewer sees
        them. The console serves a single operator per store.
        """
        update = FilterUpdate(only_auto=only_auto, only_enabled=only_enabled, geo_level=geo_level)
        if update.changes():
            store.set_filters(**update.changes())
        await store.load_all(force=force)
        snapshot = store.snapshot()
        return templates.TemplateResponse(
            request,
            "dashboard.html",
            {
                "display_name": config.display_name,
                "filters": snapshot.filters,
                "cache": snapshot.cache,
                "status": snapshot.status.value,
                "geo_levels": [level.value for level in GeoLevel],
            },
        )

    @router.get("/api/dashboard", response_model=DashboardSnapshot)
    async def dashboard_data(
        force: bool = Query(False, description="Bypass the cache and refetch"),
    ):
        """Return filters and all four panels, refreshing them if stale."""
        await store.load_all(force=force)
        return store.snapshot()

    @router.post("/api/filters", response_model=DashboardSnapshot)
    async def update_filters(update: FilterUpdate):
        """Apply a partial filter change and reload for the new scope."""
        changes = update.changes()
        if changes:
            filters = store.set_filters(**changes)
            logger.info(f"Filters changed to {filters.cache_key()}")
        await store.load_all()
        return store.snapshot()

    return router
