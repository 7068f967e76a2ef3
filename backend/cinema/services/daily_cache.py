"""
Daily showcase cache: process memory in front of a shared remote store.

  get: memory → remote (promoted into memory) → miss
  set: memory (short window) + best-effort remote (about a day)

This is a cache, not a source of truth. Nothing here raises on a degraded
tier: remote failures and malformed payloads are logged and read as a miss,
so the caller always falls through to the origin store.
"""
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Protocol

from pydantic import ValidationError

from cinema.core.config import settings
from cinema.schemas.daily import CacheSource, ShowcaseRecord
from cinema.services.date_keys import is_valid_date_key
from cinema.services.remote_cache import RemoteCacheConfigError, RemoteCacheError, UpstashRestStore

logger = logging.getLogger(__name__)

# Bump the version whenever ShowcaseRecord changes incompatibly.
CACHE_KEY_PREFIX = "daily_showcase_v1:"
MEMORY_TTL_SECONDS = 5 * 60
DEFAULT_TTL_SECONDS = 26 * 60 * 60
MIN_REMOTE_TTL_SECONDS = 60


class RemoteStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


@dataclass(frozen=True)
class CacheHit:
    movies: list[Any]
    source: CacheSource


@dataclass
class _MemoryEntry:
    expires_at: float
    record: ShowcaseRecord


def build_cache_key(date_key: str) -> str:
    return f"{CACHE_KEY_PREFIX}{date_key}"


def parse_record(raw: str, date_key: str) -> ShowcaseRecord | None:
    """
    Validate a serialized record before it enters the trusted model.

    Returns None for anything that is not a well-formed, non-empty record for
    *date_key*.
    """
    try:
        record = ShowcaseRecord.model_validate_json(raw)
    except ValidationError as exc:
        logger.warning("Discarding malformed cached showcase for %s: %s", date_key, exc.error_count())
        return None
    if record.date != date_key:
        logger.warning("Discarding cached showcase for %s stored under %s", record.date, date_key)
        return None
    return record


class DailyShowcaseCache:
    """
    Two-tier cache for daily showcase movie lists.

    The clock returns seconds and is only used for memory-tier expiry and the
    informational `cachedAt` stamp. A cache built without a remote store runs
    memory-only.
    """

    def __init__(
        self,
        remote: RemoteStore | None = None,
        clock: Callable[[], float] = time.time,
        memory_ttl_seconds: int = MEMORY_TTL_SECONDS,
    ) -> None:
        self._remote = remote
        self._clock = clock
        self.memory_ttl_seconds = memory_ttl_seconds
        self._memory: dict[str, _MemoryEntry] = {}
        self._lock = threading.Lock()

    @property
    def remote_enabled(self) -> bool:
        return self._remote is not None

    # ── Memory tier ──────────────────────────────────────────────────────────

    def _get_from_memory(self, key: str) -> ShowcaseRecord | None:
        with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._memory[key]
                return None
            return entry.record

    def _set_to_memory(self, key: str, record: ShowcaseRecord, ttl_seconds: float) -> None:
        with self._lock:
            self._memory[key] = _MemoryEntry(expires_at=self._clock() + ttl_seconds, record=record)

    def clear_memory(self) -> None:
        with self._lock:
            self._memory.clear()

    # ── Remote tier ──────────────────────────────────────────────────────────

    async def _get_from_remote(self, key: str, date_key: str) -> ShowcaseRecord | None:
        if self._remote is None:
            return None
        try:
            raw = await self._remote.get(key)
        except RemoteCacheError as exc:
            logger.warning("Remote cache read failed for %s, treating as miss: %s", key, exc)
            return None
        if raw is None:
            return None
        return parse_record(raw, date_key)

    async def _set_to_remote(self, key: str, record: ShowcaseRecord, ttl_seconds: float) -> bool:
        if self._remote is None:
            return False
        try:
            await self._remote.set(key, record.to_json(), max(MIN_REMOTE_TTL_SECONDS, int(ttl_seconds)))
        except RemoteCacheError as exc:
            logger.warning("Remote cache write failed for %s, kept in memory only: %s", key, exc)
            return False
        return True

    # ── Public API ───────────────────────────────────────────────────────────

    async def get(self, date_key: str) -> CacheHit | None:
        """Return the cached movies for *date_key*, or None on a miss."""
        if not is_valid_date_key(date_key):
            return None

        key = build_cache_key(date_key)
        record = self._get_from_memory(key)
        if record is not None:
            return CacheHit(movies=list(record.movies), source=CacheSource.MEMORY)

        record = await self._get_from_remote(key, date_key)
        if record is None:
            return None

        self._set_to_memory(key, record, self.memory_ttl_seconds)
        return CacheHit(movies=list(record.movies), source=CacheSource.REMOTE)

    async def set(
        self,
        date_key: str,
        movies: list[Any],
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
    ) -> bool:
        """
        Cache *movies* for *date_key*.

        Returns False (and writes nothing) for an invalid key or an empty
        list. A failed remote write still returns True: the memory tier has
        the record and is enough for this process.
        """
        if not is_valid_date_key(date_key) or not movies:
            return False

        record = ShowcaseRecord(
            date=date_key,
            movies=movies,
            cached_at=datetime.fromtimestamp(self._clock(), tz=timezone.utc),
        )
        key = build_cache_key(date_key)
        self._set_to_memory(key, record, min(self.memory_ttl_seconds, ttl_seconds))
        await self._set_to_remote(key, record, ttl_seconds)
        return True


@lru_cache
def get_daily_cache() -> DailyShowcaseCache:
    """
    Process-wide cache built from settings (FastAPI dependency).

    Without remote credentials the cache runs memory-only.
    """
    try:
        remote: RemoteStore | None = UpstashRestStore.from_settings()
    except RemoteCacheConfigError:
        logger.info("Remote cache not configured; daily showcase cache is memory-only")
        remote = None
    return DailyShowcaseCache(remote=remote, memory_ttl_seconds=settings.MEMORY_CACHE_TTL_SECONDS)
