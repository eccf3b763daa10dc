"""
In-memory cache with TTL for the repository layer
Reduces database reads for frequently accessed entities

- One cache per repository instance (no module-level globals)
- Clock is injected so tests can move time forward
- Staleness is checked lazily on access; there is no background sweeper
"""
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Generic, Iterator, List, Optional, Tuple, TypeVar

V = TypeVar("V")

Clock = Callable[[], datetime]


class CacheState(str, Enum):
    ABSENT = "absent"
    FRESH = "fresh"
    STALE = "stale"


class TTLCache(Generic[V]):
    """
    In-memory cache keyed by entity id with a fixed freshness window

    Not thread-safe: it is owned by one repository and only touched from the
    event loop thread.
    """
    def __init__(self, ttl_seconds: float = 300, clock: Clock = datetime.now):
        self.ttl = ttl_seconds
        self.clock = clock
        self._cache: Dict[str, Tuple[V, datetime]] = {}

    def _is_fresh(self, cached_at: datetime) -> bool:
        return (self.clock() - cached_at).total_seconds() < self.ttl

    def state(self, key: str) -> CacheState:
        """Where the entry is in its Absent -> Fresh -> Stale lifecycle"""
        entry = self._cache.get(key)
        if entry is None:
            return CacheState.ABSENT
        return CacheState.FRESH if self._is_fresh(entry[1]) else CacheState.STALE

    def get(self, key: str) -> Optional[V]:
        """Get value from cache if not expired"""
        entry = self._cache.get(key)
        if entry is None:
            return None
        value, cached_at = entry
        if self._is_fresh(cached_at):
            return value
        # Expired, remove it
        del self._cache[key]
        return None

    def cached_at(self, key: str) -> Optional[datetime]:
        entry = self._cache.get(key)
        return entry[1] if entry else None

    def set(self, key: str, value: V) -> None:
        """Set value in cache, (re)starting its freshness window"""
        self._cache[key] = (value, self.clock())

    def invalidate(self, key: str) -> None:
        """Remove key from cache"""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries"""
        self._cache.clear()

    def find(self, predicate: Callable[[V], bool]) -> Optional[V]:
        """
        First fresh value matching predicate

        Linear scan over every entry; only meant for small caches and
        secondary keys the cache is not indexed by.
        """
        for key in list(self._cache):
            value = self.get(key)
            if value is not None and predicate(value):
                return value
        return None

    def fresh_values(self) -> List[V]:
        return [value for value in (self.get(key) for key in list(self._cache)) if value is not None]

    def __contains__(self, key: str) -> bool:
        return self.state(key) is CacheState.FRESH

    def __len__(self) -> int:
        return len(self._cache)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._cache))
