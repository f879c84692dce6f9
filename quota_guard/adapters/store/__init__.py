"""Counter store adapters.

The admission controller keeps its call history in a key/value store with
per-key expiry. Start with the in-memory store for a single process and move
to Redis when several processes share one quota, without touching the
controller.
"""

from quota_guard.adapters.store.base import AbstractCounterStore, StoreValue
from quota_guard.adapters.store.factory import create_counter_store
from quota_guard.adapters.store.in_memory import InMemoryCounterStore
from quota_guard.adapters.store.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "StoreValue",
    "create_counter_store",
]
