"""
Cache key, staleness gate and session-scoped storage backends.
"""
import json
import logging
import re
import time
from pathlib import Path
from threading import Lock
from typing import Any, Protocol

from .models import FilterState

logger = logging.getLogger(__name__)


def make_cache_key(filters: FilterState) -> str:
    """Cache key for a filter state. Equal filters always give equal keys."""
    return filters.cache_key()


def should_refetch(
    current_key: str,
    new_key: str,
    last_fetched_at: float,
    ttl_seconds: float,
    force: bool = False,
    now: float | None = None,
) -> bool:
    """Decide whether cached view models must be recomputed.

    Args:
        current_key: Key the cached data was fetched for
        new_key: Key for the filters now in effect
        last_fetched_at: Unix time of the last successful fetch
        ttl_seconds: Maximum age of cached data
        force: Bypass the cache unconditionally
        now: Current unix time (defaults to time.time())
    """
    if force or current_key != new_key:
        return True
    if now is None:
        now = time.time()
    return now - last_fetched_at >= ttl_seconds


class SessionStorage(Protocol):
    """Key-value store that lives as long as one browsing session."""

    def get(self, key: str) -> Any | None:
        ...

    def set(self, key: str, value: Any) -> None:
        ...


class MemoryStorage:
    """In-process storage. Gone when the process exits."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        raw = json.dumps(value)
        with self._lock:
            self._data[key] = raw


_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class FileSessionStorage:
    """JSON file per session id, so state survives a reload of the same session.

    A new session id starts from an empty store.
    """

    def __init__(self, directory: str | Path, session_id: str):
        if not session_id:
            raise ValueError("session_id is required")
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path = self.directory / f"{_UNSAFE_CHARS.sub('_', session_id)}.json"
        self._lock = Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(f"Session file {self.path} is corrupt, starting empty")
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> Any | None:
        with self._lock:
            return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            tmp = self.path.with_suffix(".tmp")
            tmp.write_text(json.dumps(data), encoding="utf-8")
            tmp.replace(self.path)

    def clear(self) -> None:
        """Remove this session's file, e.g. on logout."""
        with self._lock:
            self.path.unlink(missing_ok=True)
