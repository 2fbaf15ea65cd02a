"""TTL Cache — namespaced, TTL-expiring in-process key/value store.

Invariants:
    - Keys are stored as "{namespace}:{key}"; namespaces never see each other's entries
    - Values are deep-copied on set and on get: callers never alias stored state
    - An entry whose expiry has passed is logically absent even while still resident
    - get/has delete expired entries lazily; sweep() removes every expired entry,
      visited or not, and runs periodically via run_sweeper()
    - With max_entries set, inserting beyond capacity evicts the least-recently-used entry

Design Decisions:
    - OrderedDict storage: move_to_end() on access gives LRU order for free
    - Namespaced views share storage, clock, counters and the sweeper task
    - Injectable clock (monotonic by default): tests expire entries without sleeping
    - Synchronous API: every operation is in-memory and completes without awaiting
"""

import asyncio
import copy
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable

from taskhub.core.errors import InvalidCacheKeyError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_SWEEP_INTERVAL_SECONDS = 300


@dataclass
class CacheEntry:
    value: Any
    expires_at: float


@dataclass
class _CacheStore:
    """Storage and counters shared by every namespace view of one cache."""
    clock: Callable[[], float]
    max_entries: int | None = None
    entries: "OrderedDict[str, CacheEntry]" = field(default_factory=OrderedDict)
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    sweeper: asyncio.Task | None = None


class TTLCache:
    """Namespaced TTL cache with lazy expiry, periodic sweep and optional LRU bound."""

    def __init__(
        self,
        namespace: str = "app",
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
        _store: _CacheStore | None = None,
    ):
        if not namespace:
            raise ValidationError("Cache namespace must be non-empty", field="namespace")
        if max_entries is not None and max_entries < 1:
            raise ValidationError("max_entries must be >= 1", field="max_entries")
        self.namespace = namespace
        self.default_ttl_seconds = default_ttl_seconds
        self._store = _store or _CacheStore(clock=clock, max_entries=max_entries)

    def namespaced(self, namespace: str) -> "TTLCache":
        """View over the same storage under another namespace."""
        return TTLCache(
            namespace=namespace,
            default_ttl_seconds=self.default_ttl_seconds,
            _store=self._store,
        )

    # ─── Key/value operations ────────────────────────────────────

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        if not key or not isinstance(key, str):
            raise InvalidCacheKeyError(key)
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            raise ValidationError("ttl_seconds must be positive", field="ttl_seconds")

        safe_value = copy.deepcopy(value)
        full_key = self._qualify(key)
        entries = self._store.entries
        entries[full_key] = CacheEntry(safe_value, self._store.clock() + ttl)
        entries.move_to_end(full_key)
        self._evict_over_capacity()
        logger.debug(
            f"Cache set: {key} (TTL: {ttl}s)", extra={"namespace": self.namespace},
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Deep copy of the live value, or default when absent or expired."""
        full_key = self._qualify(key)
        entry = self._live_entry(full_key)
        if entry is None:
            self._store.misses += 1
            return default
        self._store.entries.move_to_end(full_key)
        self._store.hits += 1
        return copy.deepcopy(entry.value)

    def has(self, key: str) -> bool:
        """Presence check. Deletes the entry as a side effect when it has expired."""
        return self._live_entry(self._qualify(key)) is not None

    def delete(self, key: str) -> bool:
        existed = self._store.entries.pop(self._qualify(key), None) is not None
        if existed:
            logger.debug(f"Cache deleted: {key}", extra={"namespace": self.namespace})
        return existed

    def clear(self) -> None:
        """Remove every entry of this namespace."""
        prefix = f"{self.namespace}:"
        doomed = [k for k in self._store.entries if k.startswith(prefix)]
        for full_key in doomed:
            del self._store.entries[full_key]
        logger.warning(
            "Cache cleared",
            extra={"namespace": self.namespace, "count": len(doomed)},
        )

    # ─── Expiry ──────────────────────────────────────────────────

    def sweep(self) -> int:
        """Physically remove every expired entry in every namespace."""
        now = self._store.clock()
        expired = [
            k for k, entry in self._store.entries.items() if entry.expires_at <= now
        ]
        for full_key in expired:
            del self._store.entries[full_key]
        self._store.expirations += len(expired)
        logger.info(
            "Expired cache entries cleaned up", extra={"count": len(expired)},
        )
        return len(expired)

    async def run_sweeper(
        self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        """Sweep forever on a fixed interval. Cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Cache sweep failed: {e}", exc_info=True)

    def start_sweeper(
        self, interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> asyncio.Task:
        """Start the shared sweeper task if it is not already running."""
        store = self._store
        if store.sweeper is None or store.sweeper.done():
            store.sweeper = asyncio.create_task(self.run_sweeper(interval_seconds))
        return store.sweeper

    async def stop_sweeper(self) -> None:
        task, self._store.sweeper = self._store.sweeper, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # ─── Inspection ──────────────────────────────────────────────

    def __len__(self) -> int:
        """Resident entries in this namespace, including expired ones not yet removed."""
        prefix = f"{self.namespace}:"
        return sum(1 for k in self._store.entries if k.startswith(prefix))

    def stats(self) -> dict[str, int]:
        store = self._store
        return {
            "size": len(store.entries),
            "hits": store.hits,
            "misses": store.misses,
            "evictions": store.evictions,
            "expirations": store.expirations,
        }

    # ─── Internals ───────────────────────────────────────────────

    def _qualify(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    def _live_entry(self, full_key: str) -> CacheEntry | None:
        entry = self._store.entries.get(full_key)
        if entry is None:
            return None
        if entry.expires_at <= self._store.clock():
            del self._store.entries[full_key]
            self._store.expirations += 1
            logger.debug(f"Cache expired: {full_key}")
            return None
        return entry

    def _evict_over_capacity(self) -> None:
        limit = self._store.max_entries
        if limit is None:
            return
        while len(self._store.entries) > limit:
            evicted, _ = self._store.entries.popitem(last=False)
            self._store.evictions += 1
            logger.debug(f"Cache evicted (LRU): {evicted}")


# Singleton (initialized on startup)
cache: TTLCache | None = None


def init_cache(
    namespace: str = "app",
    default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
    max_entries: int | None = None,
) -> TTLCache:
    global cache
    cache = TTLCache(
        namespace=namespace,
        default_ttl_seconds=default_ttl_seconds,
        max_entries=max_entries,
    )
    return cache


def get_cache() -> TTLCache:
    """FastAPI dependency for the process-wide cache."""
    if cache is None:
        raise RuntimeError("Cache not initialized")
    return cache
