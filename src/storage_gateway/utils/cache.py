from collections import OrderedDict
import logging
import time
from typing import Generic, TypeVar

from storage_gateway.telemetry import metrics

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Simple LRU Cache with TTL support.
    Not thread-safe, but safe for asyncio if used within a single event loop without
    awaiting between get and put.
    """

    def __init__(self, capacity: int, ttl: float | None = None, name: str = "default") -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be positive (got {capacity})")
        self.capacity = capacity
        self.ttl = ttl
        self.name = name
        self.cache: OrderedDict[K, tuple[V, float]] = OrderedDict()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

        self._metric_hits = metrics.cache_lookup_counter.labels(cache_name=name, result="hit")
        self._metric_misses = metrics.cache_lookup_counter.labels(cache_name=name, result="miss")
        self._metric_evictions = metrics.cache_evictions_counter.labels(cache_name=name)

    def get(self, key: K) -> V | None:
        cache = self.cache
        try:
            value, stored_at = cache[key]
        except KeyError:
            self.misses += 1
            self._metric_misses.inc()
            return None

        ttl = self.ttl
        if ttl is not None and time.monotonic() - stored_at > ttl:
            del cache[key]
            self.misses += 1
            self._metric_misses.inc()
            return None

        cache.move_to_end(key)
        self.hits += 1
        self._metric_hits.inc()
        return value

    def put(self, key: K, value: V) -> None:
        if key in self.cache:
            self.cache.move_to_end(key)

        self.cache[key] = (value, time.monotonic())

        if len(self.cache) > self.capacity:
            self.cache.popitem(last=False)
            self.evictions += 1
            self._metric_evictions.inc()

    def clear(self) -> None:
        self.cache.clear()
        self.hits = 0
        self.misses = 0
        self.evictions = 0
