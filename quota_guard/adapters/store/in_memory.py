"""In-memory counter store with per-key TTL.

Notes:
- Per-process only: every worker process gets its own history, so running
  several workers multiplies the effective quota. Use Redis for that case.
- Thread-safe: uses a lock around shared state, which also makes
  compare_and_set atomic.
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from quota_guard.adapters.store.base import AbstractCounterStore, StoreValue

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    value: StoreValue
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Dictionary-backed store whose entries expire after their TTL.

    Expired entries are dropped lazily on access and on every write, so the
    footprint stays bounded by the number of live keys.
    """

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
        """
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: dict[str, _Entry] = {}

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(keys={len(self._entries)})"

    def get(self, key: str) -> StoreValue | None:
        with self._lock:
            entry = self._live_entry_locked(key)
            if entry is None:
                return None
            return copy.deepcopy(entry.value)

    def set(self, key: str, value: StoreValue, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            self._evict_expired_locked()
            self._entries[key] = _Entry(
                value=copy.deepcopy(value),
                expires_at=self._clock() + ttl_seconds,
            )
        logger.debug("store.set", extra={"store_key": key, "ttl_s": ttl_seconds})

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
        logger.debug("store.delete", extra={"store_key": key})

    def compare_and_set(
        self,
        key: str,
        expected: StoreValue | None,
        value: StoreValue,
        ttl_seconds: int,
    ) -> bool:
        with self._lock:
            entry = self._live_entry_locked(key)
            current = entry.value if entry is not None else None
            if current != expected:
                logger.debug("store.cas_conflict", extra={"store_key": key})
                return False
            self.set(key, value, ttl_seconds)
            return True

    def _live_entry_locked(self, key: str) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, entry in self._entries.items() if entry.expires_at <= now]
        for key in expired_keys:
            del self._entries[key]
