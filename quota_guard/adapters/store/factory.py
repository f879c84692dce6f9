"""Factory for creating counter store instances."""

from __future__ import annotations

from typing import Callable

from quota_guard.adapters.store.base import AbstractCounterStore
from quota_guard.adapters.store.in_memory import InMemoryCounterStore
from quota_guard.adapters.store.redis_store import RedisCounterStore
from quota_guard.core.config import StoreSettings, settings
from quota_guard.core.errors import ValidationAppError


def create_counter_store(
    store_settings: StoreSettings | None = None,
    *,
    clock: Callable[[], float] | None = None,
) -> AbstractCounterStore:
    """Instantiate the counter store selected by configuration.

    Args:
        store_settings: Store configuration; defaults to global settings.
        clock: Optional time source for the in-memory store's TTL bookkeeping.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend is unknown or misconfigured.
    """
    cfg = store_settings or settings.store
    backend = cfg.backend.lower()

    if backend == "memory":
        if clock is None:
            return InMemoryCounterStore()
        return InMemoryCounterStore(clock=clock)

    if backend == "redis":
        if not cfg.redis_url:
            raise ValidationAppError(
                code="store_missing_redis_url",
                message="Redis store requires STORE_REDIS_URL environment variable",
            )
        return RedisCounterStore.from_url(
            cfg.redis_url,
            socket_timeout=cfg.socket_timeout_seconds,
        )

    raise ValidationAppError(
        code="store_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: memory, redis",
    )
