"""Counter store interface.

The admission controller depends on this abstraction (not a concrete
backend) so the same quota logic runs against process memory in tests and
against Redis when several workers share one quota.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Union

# JSON-compatible values: the call history is a list of epoch milliseconds,
# the last call instant a single epoch millisecond.
StoreValue = Union[int, float, str, list, dict]


class AbstractCounterStore(ABC):
    """Key/value store with per-key expiry."""

    @abstractmethod
    def get(self, key: str) -> StoreValue | None:
        """Return the value stored under ``key``, or None if absent/expired.

        Raises:
            StoreAppError: If the backend cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: StoreValue, ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, expiring after ``ttl_seconds``.

        Raises:
            StoreAppError: If the write does not reach the backend.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key``; deleting a missing key is not an error."""
        raise NotImplementedError

    @abstractmethod
    def compare_and_set(
        self,
        key: str,
        expected: StoreValue | None,
        value: StoreValue,
        ttl_seconds: int,
    ) -> bool:
        """Atomically replace ``key`` if it still holds ``expected``.

        Args:
            key: Key to update.
            expected: Value previously read (None means "key absent").
            value: New value to store.
            ttl_seconds: Expiry applied to the new value.

        Returns:
            True if the value was written, False if another writer got there first.
        """
        raise NotImplementedError
