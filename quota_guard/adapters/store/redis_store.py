"""Redis-backed counter store.

Lets several worker processes share one quota. Values are stored as JSON
strings with a native Redis expiry; compare_and_set uses optimistic locking
(WATCH/MULTI/EXEC) so strict admission stays correct across processes.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import redis
from redis.exceptions import RedisError, WatchError

from quota_guard.adapters.store.base import AbstractCounterStore, StoreValue
from quota_guard.core.errors import StoreAppError

logger = logging.getLogger(__name__)


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by a synchronous ``redis.Redis`` client."""

    def __init__(self, client: redis.Redis) -> None:
        self._client = client

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float | None = None) -> "RedisCounterStore":
        """Build a store from a Redis URL (``redis://host:port/db``)."""

        client = redis.from_url(url, decode_responses=True, socket_timeout=socket_timeout)
        return cls(client)

    def get(self, key: str) -> StoreValue | None:
        try:
            raw = self._client.get(key)
        except RedisError as exc:
            raise self._error("get", key, exc) from exc
        return self._decode(key, raw)

    def set(self, key: str, value: StoreValue, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        try:
            self._client.set(key, self._encode(value), ex=ttl_seconds)
        except RedisError as exc:
            raise self._error("set", key, exc) from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except RedisError as exc:
            raise self._error("delete", key, exc) from exc

    def compare_and_set(
        self,
        key: str,
        expected: StoreValue | None,
        value: StoreValue,
        ttl_seconds: int,
    ) -> bool:
        try:
            with self._client.pipeline() as pipe:
                pipe.watch(key)
                current = self._decode(key, pipe.get(key))
                if current != expected:
                    pipe.unwatch()
                    logger.debug("store.cas_conflict", extra={"store_key": key})
                    return False
                pipe.multi()
                pipe.set(key, self._encode(value), ex=ttl_seconds)
                pipe.execute()
                return True
        except WatchError:
            logger.debug("store.cas_conflict", extra={"store_key": key, "reason": "watch"})
            return False
        except RedisError as exc:
            raise self._error("compare_and_set", key, exc) from exc

    @staticmethod
    def _encode(value: StoreValue) -> str:
        return json.dumps(value, separators=(",", ":"))

    @staticmethod
    def _decode(key: str, raw: Any) -> StoreValue | None:
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            # Hand the raw payload back; the controller decides how to treat it.
            logger.warning("store.decode_failed", extra={"store_key": key})
            return raw

    @staticmethod
    def _error(operation: str, key: str, exc: RedisError) -> StoreAppError:
        logger.error(
            "store.redis_error",
            extra={
                "operation": operation,
                "store_key": key,
                "error_type": type(exc).__name__,
            },
        )
        return StoreAppError(
            code="store_unavailable",
            message=f"Counter store {operation} failed",
            details={
                "backend": "redis",
                "key": key,
                "operation": operation,
                "error_type": type(exc).__name__,
            },
        )
