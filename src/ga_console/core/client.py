"""
HTTP client for querying the Supabase (PostgREST) tables behind the dashboard.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .models import EventRow, SiteRow
from .query import EventQuery

logger = logging.getLogger(__name__)


class QueryError(Exception):
    """Raised when the backend rejects or fails a query."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class QueryResult:
    """Rows returned by a query plus the exact count, when the backend sent one."""
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None


def parse_content_range(header: str | None) -> int | None:
    """Extract the total from a Content-Range header ("0-24/25", "*/0")."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[1].strip()
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class SupabaseClient:
    """Client for reading rows from Supabase over its REST interface."""

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = supabase_key
        self.timeout = timeout
        self.base_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._transport = transport

    def _headers(self, count: bool) -> dict[str, str]:
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
        }
        if count:
            headers["Prefer"] = "count=exact"
        return headers

    async def _query(
        self,
        table: str,
        params: list[tuple[str, str]],
        count: bool = False,
    ) -> QueryResult:
        """Execute a select against one table."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.get(
                f"{self.base_url}/{table}",
                headers=self._headers(count),
                params=params,
            )

        if response.is_error:
            raise QueryError(
                f"Supabase query on {table} failed: {_error_message(response)}",
                status_code=response.status_code,
            )

        data = response.json()
        if not isinstance(data, list):
            raise QueryError(f"Supabase query on {table} returned {type(data).__name__}, expected list")

        return QueryResult(
            rows=data,
            count=parse_content_range(response.headers.get("content-range")) if count else None,
        )

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def fetch_events(self, query: EventQuery) -> list[EventRow]:
        """Run an event query and convert the raw rows to EventRow."""
        result = await self._query(query.table, query.to_params(), count=True)
        logger.debug(
            f"Fetched {len(result.rows)} rows from {query.table} "
            f"({query.start} .. {query.end}, exact count {result.count})"
        )
        rows = []
        for raw in result.rows:
            try:
                rows.append(EventRow.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping unreadable row from {query.table}: {raw!r} ({e.error_count()} errors)")
        return rows

    # =========================================================================
    # SITES
    # =========================================================================

    async def fetch_sites(self, table: str = "sites") -> list[SiteRow]:
        """Fetch the group id and enabled flags of every registered site."""
        result = await self._query(
            table,
            [("select", "property_id,is_enabled,is_enable")],
        )
        return [SiteRow.model_validate(row) for row in result.rows]


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the PostgREST error message."""
    try:
        payload = response.json()
    except ValueError:
        return f"HTTP {response.status_code}: {response.text[:200]}"
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error") or payload.get("hint")
        if message:
            return f"HTTP {response.status_code}: {message}"
    return f"HTTP {response.status_code}"
