"""
Query construction for the daily events table and the site registry.

Every dashboard panel goes through build_event_query so all four share the
same filter scope; they differ only in date window and extra columns.
"""
import logging
from datetime import date
from typing import TYPE_CHECKING, Iterable

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from .client import SupabaseClient

logger = logging.getLogger(__name__)

EVENTS_TABLE = "ga_daily_events"

# Automatically collected / enhanced-measurement events
AUTO_EVENTS = (
    "page_view",
    "session_start",
    "user_engagement",
    "first_visit",
    "scroll",
    "click",
)

BASE_COLUMNS = ("event_date", "event_name", "event_count", "property_id")
GEO_COLUMNS = ("geo_level", "geo_value")


def _in_list(values: Iterable[str]) -> str:
    """Render a PostgREST in.(...) operand, quoting each value."""
    quoted = []
    for value in values:
        escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
        quoted.append(f'"{escaped}"')
    return f"in.({','.join(quoted)})"


class EventQuery(BaseModel):
    """A select over the events table: date range plus optional IN filters."""
    model_config = ConfigDict(frozen=True)

    table: str = EVENTS_TABLE
    columns: tuple[str, ...] = BASE_COLUMNS
    start: date
    end: date
    event_names: tuple[str, ...] | None = None
    group_ids: tuple[str, ...] | None = None

    def to_params(self) -> list[tuple[str, str]]:
        """Render as PostgREST query parameters."""
        params = [
            ("select", ",".join(self.columns)),
            ("event_date", f"gte.{self.start.isoformat()}"),
            ("event_date", f"lte.{self.end.isoformat()}"),
        ]
        if self.event_names is not None:
            params.append(("event_name", _in_list(self.event_names)))
        if self.group_ids is not None:
            params.append(("property_id", _in_list(self.group_ids)))
        return params


def build_event_query(
    start: date,
    end: date,
    only_auto: bool,
    enabled_groups: set[str] | None,
    extra_columns: Iterable[str] = (),
    table: str = EVENTS_TABLE,
) -> EventQuery:
    """Build the events query shared by every panel.

    Args:
        start: First day, inclusive
        end: Last day, inclusive
        only_auto: Restrict to AUTO_EVENTS
        enabled_groups: Group ids to restrict to, or None for no group filter
        extra_columns: Additional columns to select (e.g. GEO_COLUMNS)
        table: Events table name
    """
    columns = []
    for column in (*BASE_COLUMNS, *extra_columns):
        if column not in columns:
            columns.append(column)

    return EventQuery(
        table=table,
        columns=tuple(columns),
        start=start,
        end=end,
        event_names=AUTO_EVENTS if only_auto else None,
        group_ids=tuple(sorted(enabled_groups)) if enabled_groups is not None else None,
    )


async def resolve_enabled_groups(
    client: "SupabaseClient",
    only_enabled: bool,
    table: str = "sites",
) -> set[str] | None:
    """Return the ids of enabled sites, or None when no group filter applies.

    An empty set means "filter on, nothing enabled" and must not be confused
    with None.
    """
    if not only_enabled:
        return None

    sites = await client.fetch_sites(table)
    enabled = {site.property_id for site in sites if site.property_id is not None and site.enabled}
    logger.debug(f"{len(enabled)} of {len(sites)} sites enabled")
    return enabled
