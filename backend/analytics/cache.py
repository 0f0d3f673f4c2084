from __future__ import annotations

import time
from collections.abc import Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from config import settings

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    fetched_at: float


@dataclass(frozen=True)
class MissingKeys(Generic[K]):
    missing: list[K] = field(default_factory=list)
    stale: list[K] = field(default_factory=list)

    @property
    def needs_fetch(self) -> list[K]:
        return [*self.missing, *self.stale]

    def __bool__(self) -> bool:
        return bool(self.missing or self.stale)


def is_valid(entry: CacheEntry | None, ttl: float | None, now: float) -> bool:
    """An entry is valid while its age is strictly below ``ttl``; ``ttl=None`` never expires."""
    if entry is None:
        return False
    if ttl is None:
        return True
    return (now - entry.fetched_at) < ttl


def compute_missing(
    keys: Iterable[K],
    cache_map: Mapping[K, CacheEntry],
    ttl: float | None,
    now: float,
) -> MissingKeys[K]:
    """Split requested keys into absent and stale; valid keys are omitted.

    Each key is reported at most once, in first-seen order.
    """
    missing: list[K] = []
    stale: list[K] = []
    seen: set[K] = set()
    for key in keys:
        if key in seen:
            continue
        seen.add(key)
        entry = cache_map.get(key)
        if entry is None:
            missing.append(key)
        elif not is_valid(entry, ttl, now):
            stale.append(key)
    return MissingKeys(missing=missing, stale=stale)


class Cache(Generic[K, T]):
    """Keyed store of fetched values stamped with their fetch time.

    Every invalidation bumps a per-key epoch; writers that captured an older
    epoch before awaiting I/O can use ``put_if_current`` to avoid resurrecting
    data that was invalidated meanwhile.
    """

    def __init__(self, name: str, ttl: float | None = None, clock: Clock | None = None):
        self.name = name
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._entries: dict[K, CacheEntry[T]] = {}
        self._epochs: dict[K, int] = {}

    def now(self) -> float:
        return self._clock()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def entries(self) -> Mapping[K, CacheEntry[T]]:
        return self._entries

    def peek(self, key: K) -> CacheEntry[T] | None:
        """Return the entry regardless of age."""
        return self._entries.get(key)

    def get(self, key: K) -> T | None:
        """Return the value only while it is still valid."""
        entry = self._entries.get(key)
        if not is_valid(entry, self.ttl, self.now()):
            return None
        return entry.value

    def put(self, key: K, value: T) -> CacheEntry[T]:
        entry = CacheEntry(value=value, fetched_at=self.now())
        self._entries[key] = entry
        return entry

    def epoch(self, key: K) -> int:
        return self._epochs.get(key, 0)

    def put_if_current(self, key: K, value: T, epoch: int) -> bool:
        if self.epoch(key) != epoch:
            return False
        self.put(key, value)
        return True

    def invalidate(self, key: K) -> bool:
        self._epochs[key] = self.epoch(key) + 1
        return self._entries.pop(key, None) is not None

    def invalidate_many(self, keys: Iterable[K]) -> int:
        return sum(1 for key in list(keys) if self.invalidate(key))

    def clear(self) -> int:
        return self.invalidate_many(self._entries.keys())

    def compute_missing(self, keys: Iterable[K]) -> MissingKeys[K]:
        return compute_missing(keys, self._entries, self.ttl, self.now())

    def stats(self) -> dict[str, Any]:
        now = self.now()
        valid = sum(1 for entry in self._entries.values() if is_valid(entry, self.ttl, now))
        expired = len(self._entries) - valid
        total = valid + expired
        return {
            "name": self.name,
            "total_entries": len(self._entries),
            "valid_entries": valid,
            "expired_entries": expired,
            "cache_hit_rate": (valid / total) if total else 0.0,
        }


class AnalyticsCache:
    """The merged store the orchestrator writes and the aggregation engine reads."""

    def __init__(
        self,
        clock: Clock | None = None,
        catalog_ttl: float | None = None,
        date_index_ttl: float | None = None,
        log_ttl: float | None = None,
    ):
        self.symptoms: Cache[str, list] = Cache(
            "symptoms",
            ttl=catalog_ttl if catalog_ttl is not None else settings.CATALOG_CACHE_TTL_SECONDS,
            clock=clock,
        )
        self.users: Cache[str, list] = Cache(
            "users",
            ttl=catalog_ttl if catalog_ttl is not None else settings.CATALOG_CACHE_TTL_SECONDS,
            clock=clock,
        )
        self.date_index: Cache[str, tuple[str, ...]] = Cache(
            "date_index",
            ttl=date_index_ttl if date_index_ttl is not None else settings.DATE_INDEX_CACHE_TTL_SECONDS,
            clock=clock,
        )
        self.logs: Cache[tuple[str, str], Any] = Cache(
            "logs",
            ttl=log_ttl if log_ttl is not None else settings.LOG_CACHE_TTL_SECONDS,
            clock=clock,
        )

    def log_values(self) -> dict[tuple[str, str], Any]:
        return {key: entry.value for key, entry in self.logs.entries().items()}

    def index_values(self) -> dict[str, tuple[str, ...]]:
        return {key: entry.value for key, entry in self.date_index.entries().items()}

    def invalidate_entry(self, user_id: str, date_key: str) -> None:
        self.logs.invalidate((user_id, date_key))
        self.date_index.invalidate(user_id)

    def stats(self) -> dict[str, dict[str, Any]]:
        return {
            cache.name: cache.stats()
            for cache in (self.symptoms, self.users, self.date_index, self.logs)
        }
