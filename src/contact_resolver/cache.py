"""Time-bounded in-memory snapshot cache with single-flight population.

The cache is process-local and volatile. Each key holds one complete
directory snapshot; nothing here ever builds a snapshot from a single record,
so an empty scan over a cached snapshot is a trustworthy "not found".

Concurrency model is cooperative (asyncio): every method except
``get_or_fetch`` is synchronous and therefore atomic with respect to other
tasks. ``get_or_fetch`` installs one in-flight task per key before awaiting
the source, and every concurrent caller for that key awaits the same task.
Invalidating a key detaches its in-flight fetch: current waiters still get
that result, but it is not stored and later callers start a fresh fetch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType

from .errors import ConfigError, ResolverError
from .logging_utils import get_logger
from .models import ContactRecord

SNAPSHOT_KEY = "allContacts"

Snapshot = Mapping[str, ContactRecord]
FetchFn = Callable[[], Awaitable[Snapshot]]
Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = 300.0

    def __post_init__(self) -> None:
        if self.ttl_seconds <= 0:
            raise ConfigError("Cache TTL must be > 0 seconds.")


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    expirations: int
    fetches: int
    fetch_failures: int
    upserts: int
    invalidations: int
    entries: int
    in_flight: int


@dataclass
class _CacheEntry:
    snapshot: dict[str, ContactRecord]
    created_at: float
    ttl_seconds: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl_seconds


class DirectoryCache:
    """Snapshot store keyed by name, with TTL expiry and deduplicated fetches."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Clock = time.monotonic,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._clock = clock
        self._logger = logger or get_logger("cache")
        self._entries: dict[str, _CacheEntry] = {}
        self._in_flight: dict[str, asyncio.Task[Snapshot]] = {}
        self._generations: dict[str, int] = {}
        self._closed = False
        self._hits = 0
        self._misses = 0
        self._expirations = 0
        self._fetches = 0
        self._fetch_failures = 0
        self._upserts = 0
        self._invalidations = 0

    def _live_entry(self, key: str) -> _CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[key]
            self._expirations += 1
            self._logger.debug("Cache entry %r expired after %.1fs", key, entry.ttl_seconds)
            return None
        return entry

    def _ensure_open(self) -> None:
        if self._closed:
            raise ResolverError("DirectoryCache has been closed.")

    def get(self, key: str = SNAPSHOT_KEY) -> Snapshot | None:
        """Return a read-only view of the live snapshot for ``key``, or None."""
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return MappingProxyType(entry.snapshot)

    def set(self, snapshot: Snapshot, key: str = SNAPSHOT_KEY) -> None:
        """Replace the entry for ``key`` wholesale and restart its TTL."""
        self._ensure_open()
        self._entries[key] = _CacheEntry(
            snapshot=dict(snapshot),
            created_at=self._clock(),
            ttl_seconds=self._config.ttl_seconds,
        )
        self._logger.debug("Cached %d contacts under %r", len(snapshot), key)

    def invalidate(self, key: str | None = None) -> None:
        """Drop one entry, or every entry when ``key`` is None.

        Fetches already in flight for the dropped keys will not be stored.
        """
        keys = [key] if key is not None else list(set(self._entries) | set(self._in_flight))
        for name in keys:
            self._entries.pop(name, None)
            self._in_flight.pop(name, None)
            self._generations[name] = self._generations.get(name, 0) + 1
        self._invalidations += 1

    def upsert_record(self, record: ContactRecord, key: str = SNAPSHOT_KEY) -> bool:
        """Merge one record into an existing live snapshot.

        Absent and expired entries are left absent: a lone record must never
        pose as a complete directory. Returns True when the record was stored.
        The entry keeps its creation time.
        """
        self._ensure_open()
        entry = self._live_entry(key)
        if entry is None:
            self._logger.debug("Skipping upsert of %r: no live snapshot under %r", record.name, key)
            return False
        entry.snapshot[record.name] = record
        self._upserts += 1
        return True

    async def get_or_fetch(self, fetch: FetchFn, key: str = SNAPSHOT_KEY) -> Snapshot:
        """Return the cached snapshot, populating it through ``fetch`` at most once at a time.

        Concurrent callers on a cold key share one fetch and all observe its
        result or its exception. A caller that is cancelled stops waiting but
        does not cancel the shared fetch.
        """
        self._ensure_open()
        cached = self.get(key)
        if cached is not None:
            return cached

        task = self._in_flight.get(key)
        if task is None:
            generation = self._generations.get(key, 0)
            task = asyncio.ensure_future(self._populate(fetch, key, generation))
            self._in_flight[key] = task
            task.add_done_callback(lambda done, key=key: self._settle(key, done))
        else:
            self._logger.debug("Joining in-flight fetch for %r", key)
        return await asyncio.shield(task)

    async def _populate(self, fetch: FetchFn, key: str, generation: int) -> Snapshot:
        self._fetches += 1
        try:
            snapshot = await fetch()
        except Exception:
            self._fetch_failures += 1
            raise
        if self._generations.get(key, 0) != generation:
            self._logger.debug("Discarding fetch for %r: invalidated while in flight", key)
        elif snapshot and not self._closed:
            self.set(snapshot, key)
            return MappingProxyType(self._entries[key].snapshot)
        return MappingProxyType(dict(snapshot))

    def _settle(self, key: str, task: asyncio.Task[Snapshot]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if not task.cancelled() and task.exception() is not None:
            self._logger.debug("Fetch for %r failed: %s", key, task.exception())

    def get_stats(self) -> CacheStats:
        now = self._clock()
        live = sum(1 for entry in self._entries.values() if not entry.is_expired(now))
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            expirations=self._expirations,
            fetches=self._fetches,
            fetch_failures=self._fetch_failures,
            upserts=self._upserts,
            invalidations=self._invalidations,
            entries=live,
            in_flight=len(self._in_flight),
        )

    def get_config(self) -> CacheConfig:
        return self._config

    def update_config(self, **changes: float) -> CacheConfig:
        """Apply new settings; existing entries keep the TTL they were stored with."""
        self._config = replace(self._config, **changes)
        self._logger.info("Cache configuration updated: ttl_seconds=%s", self._config.ttl_seconds)
        return self._config

    def close(self) -> None:
        """Drop every entry and refuse further writes."""
        self._entries.clear()
        self._closed = True
