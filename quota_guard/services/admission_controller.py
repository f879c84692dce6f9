"""Sliding-window admission control for a quota-limited remote API.

The remote API allows ``limit`` calls in any trailing ``window_seconds`` and
rejects bursts, so every outbound call goes through an AdmissionController:

    controller.await_admission()   # block until the window has room
    controller.enforce_spacing()   # keep consecutive calls apart
    ... dispatch the request ...
    controller.record_call()

``acquire()`` runs that sequence in one call (and, in strict mode, records
with compare-and-set so concurrent callers cannot over-admit).

State lives in an AbstractCounterStore under two keys:

- ``<prefix>:requests``: ascending list of call instants (epoch milliseconds)
- ``<prefix>:last``: instant of the most recent call (epoch milliseconds)

Both are written with a TTL of window + margin, so a limiter that stops
being used cleans up after itself. Entries outside the window are ignored on
every read and dropped from storage on every write.

Store failures on reads are logged and treated as "nothing recorded"; store
failures on writes propagate as StoreAppError, because a lost record would
let the quota be exceeded later.
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any

from quota_guard.adapters.clock import Clock, SystemClock
from quota_guard.adapters.store.base import AbstractCounterStore, StoreValue
from quota_guard.adapters.store.factory import create_counter_store
from quota_guard.core.config import AdmissionSettings, settings
from quota_guard.core.errors import StoreAppError

logger = logging.getLogger(__name__)

# Remaining wait budgets below this are treated as exhausted.
_MIN_WAIT_SECONDS = 0.001
_CAS_MAX_ATTEMPTS = 10


@dataclass(frozen=True)
class AdmissionStatus:
    """Point-in-time view of quota usage.

    Attributes:
        used: Calls recorded inside the current window.
        limit: Max calls per window.
        remaining: Calls still available in the window (never negative).
        percent_used: Usage percentage rounded to one decimal.
        window_seconds: Window duration in seconds.
        reset_at: UNIX epoch seconds when the oldest call leaves the window,
            or None when nothing is recorded.
        reset_in_seconds: Seconds until reset_at (0 when nothing is recorded).
        admissible: Whether a call may be made right now.
        near_limit: Usage is above the near-limit threshold.
        at_limit: The window is full.
    """

    used: int
    limit: int
    remaining: int
    percent_used: float
    window_seconds: float
    reset_at: float | None
    reset_in_seconds: float
    admissible: bool
    near_limit: bool
    at_limit: bool

    @property
    def should_warn(self) -> bool:
        return self.near_limit or self.at_limit


class AdmissionController:
    """Sliding-window quota with minimum spacing between calls.

    One instance per quota; build it once at startup and pass it to every
    call site. Instances sharing a store and key prefix share the quota.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        *,
        limit: int,
        window_seconds: float,
        min_spacing_seconds: float = 1.1,
        clock: Clock | None = None,
        key_prefix: str = "lgl_rate_limiter",
        ttl_margin_seconds: float = 60.0,
        poll_floor_seconds: float = 1.0,
        near_limit_percent: float = 80.0,
        default_max_wait_seconds: float = 60.0,
        strict: bool = False,
    ) -> None:
        """Initialize the controller.

        Args:
            store: Backing key/value store holding the call history.
            limit: Maximum calls inside any trailing window.
            window_seconds: Window duration in seconds.
            min_spacing_seconds: Minimum time between two consecutive calls.
            clock: Time source; defaults to the system clock.
            key_prefix: Namespace for the stored keys.
            ttl_margin_seconds: Extra TTL beyond the window for stored keys.
            poll_floor_seconds: Re-check interval when the exact wake time
                cannot be used (empty history, clock skew).
            near_limit_percent: Usage percentage that counts as near the limit.
            default_max_wait_seconds: Wait budget when callers pass none.
            strict: Record with compare-and-set in acquire().

        Raises:
            ValueError: If any numeric setting is out of range.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        if min_spacing_seconds < 0:
            raise ValueError("min_spacing_seconds must be >= 0")
        if ttl_margin_seconds < 0:
            raise ValueError("ttl_margin_seconds must be >= 0")
        if poll_floor_seconds <= 0:
            raise ValueError("poll_floor_seconds must be > 0")
        if not 0 <= near_limit_percent <= 100:
            raise ValueError("near_limit_percent must be between 0 and 100")
        if default_max_wait_seconds < 0:
            raise ValueError("default_max_wait_seconds must be >= 0")
        if not key_prefix:
            raise ValueError("key_prefix must be a non-empty string")

        self._store = store
        self._clock: Clock = clock or SystemClock()
        self._limit = limit
        self._window_seconds = window_seconds
        self._window_ms = int(round(window_seconds * 1000))
        self._min_spacing_seconds = min_spacing_seconds
        self._min_spacing_ms = int(round(min_spacing_seconds * 1000))
        self._ttl_seconds = max(1, int(math.ceil(window_seconds + ttl_margin_seconds)))
        self._poll_floor_seconds = poll_floor_seconds
        self._near_limit_percent = near_limit_percent
        self._default_max_wait_seconds = default_max_wait_seconds
        self._strict = strict
        self._history_key = f"{key_prefix}:requests"
        self._last_key = f"{key_prefix}:last"

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"AdmissionController(limit={self._limit}, window_seconds={self._window_seconds}, "
            f"min_spacing_seconds={self._min_spacing_seconds}, strict={self._strict})"
        )

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    @property
    def min_spacing_seconds(self) -> float:
        return self._min_spacing_seconds

    @property
    def strict(self) -> bool:
        return self._strict

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def admissible(self) -> bool:
        """Return True if fewer than ``limit`` calls fall inside the window."""

        return len(self._live_history(self._now_ms())) < self._limit

    def record_call(self) -> None:
        """Record a call made now.

        Does not check admissibility first; callers wanting a guard should
        use admissible()/await_admission() or acquire().

        Raises:
            StoreAppError: If the history cannot be persisted.
        """

        now_ms = self._now_ms()
        history = self._live_history(now_ms)
        history.append(now_ms)

        self._store.set(self._history_key, history, self._ttl_seconds)
        self._store.set(self._last_key, now_ms, self._ttl_seconds)

        logger.debug(
            "admission.recorded",
            extra={"used": len(history), "limit": self._limit},
        )

    def try_record_call(self) -> bool:
        """Check and record in one atomic step.

        The history is rewritten with compare-and-set, so two callers racing
        for the last slot cannot both win.

        Returns:
            True if the call was recorded, False if the window is full (or
            the write kept losing to concurrent writers).

        Raises:
            StoreAppError: If the store cannot be read or written.
        """

        for attempt in range(1, _CAS_MAX_ATTEMPTS + 1):
            now_ms = self._now_ms()
            raw = self._store.get(self._history_key)
            history = self._filter_live(self._coerce_history(raw), now_ms)
            if len(history) >= self._limit:
                return False

            history.append(now_ms)
            if self._store.compare_and_set(self._history_key, raw, history, self._ttl_seconds):
                self._store.set(self._last_key, now_ms, self._ttl_seconds)
                logger.debug(
                    "admission.recorded",
                    extra={"used": len(history), "limit": self._limit, "attempt": attempt},
                )
                return True

        logger.warning(
            "admission.cas_exhausted",
            extra={"attempts": _CAS_MAX_ATTEMPTS},
        )
        return False

    def enforce_spacing(self, cancel: threading.Event | None = None) -> float:
        """Sleep until at least ``min_spacing_seconds`` have passed since the last call.

        Args:
            cancel: Optional event that cuts the sleep short when set.

        Returns:
            Seconds slept (0.0 when no wait was needed).
        """

        wait_ms = self._spacing_wait_ms()
        if wait_ms <= 0:
            return 0.0

        wait_seconds = wait_ms / 1000
        logger.debug("admission.spacing_wait", extra={"wait_ms": wait_ms})
        self._clock.sleep(wait_seconds, cancel)
        return wait_seconds

    def await_admission(
        self,
        max_wait: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Block until a call is admissible or the wait budget runs out.

        Instead of polling at a fixed interval, each wait lasts until the
        oldest recorded call leaves the window. The poll floor is used when
        that instant is unusable (already past, or beyond the budget).

        Args:
            max_wait: Budget in seconds measured from this call; defaults to
                the configured default_max_wait_seconds.
            cancel: Optional event; when set the wait is abandoned.

        Returns:
            True once admissible, False on timeout or cancellation.
        """

        budget = self._default_max_wait_seconds if max_wait is None else max_wait
        if budget < 0:
            raise ValueError("max_wait must be >= 0")

        start = self._clock.now()
        while True:
            if cancel is not None and cancel.is_set():
                logger.info("admission.cancelled")
                return False

            now_ms = self._now_ms()
            history = self._live_history(now_ms)
            if len(history) < self._limit:
                return True

            remaining = budget - (self._clock.now() - start)
            if remaining < _MIN_WAIT_SECONDS:
                logger.warning(
                    "admission.timeout",
                    extra={"max_wait_s": budget, "used": len(history), "limit": self._limit},
                )
                return False

            until_free = (history[0] + self._window_ms + 1 - now_ms) / 1000
            if 0 < until_free <= remaining:
                sleep_for = until_free
            else:
                sleep_for = min(self._poll_floor_seconds, remaining)

            logger.info(
                "admission.waiting",
                extra={
                    "sleep_s": round(sleep_for, 3),
                    "remaining_budget_s": round(remaining, 3),
                    "used": len(history),
                    "limit": self._limit,
                },
            )
            self._clock.sleep(sleep_for, cancel)

    def acquire(
        self,
        max_wait: float | None = None,
        cancel: threading.Event | None = None,
    ) -> bool:
        """Wait for capacity, respect spacing, then record the call.

        Call immediately before dispatching a request. In strict mode the
        record is a compare-and-set, and losing the race for the last slot
        sends the caller back to waiting within the same budget. The spacing
        wait is paid from that budget too.

        Returns:
            True if the caller may dispatch now (the call is already recorded),
            False on timeout or cancellation.

        Raises:
            StoreAppError: If recording the call fails.
        """

        budget = self._default_max_wait_seconds if max_wait is None else max_wait
        if budget < 0:
            raise ValueError("max_wait must be >= 0")

        start = self._clock.now()
        while True:
            remaining = max(0.0, budget - (self._clock.now() - start))
            if not self.await_admission(remaining, cancel):
                return False

            spacing_seconds = self._spacing_wait_ms() / 1000
            remaining = budget - (self._clock.now() - start)
            if spacing_seconds > remaining:
                logger.warning(
                    "admission.timeout",
                    extra={"max_wait_s": budget, "spacing_s": spacing_seconds},
                )
                return False

            self.enforce_spacing(cancel)
            if cancel is not None and cancel.is_set():
                logger.info("admission.cancelled")
                return False

            if not self._strict:
                self.record_call()
                return True

            if self.try_record_call():
                return True

            if budget - (self._clock.now() - start) < _MIN_WAIT_SECONDS:
                logger.warning("admission.timeout", extra={"max_wait_s": budget, "strict": True})
                return False
            logger.info("admission.lost_race")

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def oldest_timestamp(self) -> float | None:
        """Return the UNIX time (seconds) of the oldest call in the window."""

        history = self._live_history(self._now_ms())
        if not history:
            return None
        return history[0] / 1000

    def status(self) -> AdmissionStatus:
        """Snapshot current usage without modifying anything."""

        now_ms = self._now_ms()
        history = self._live_history(now_ms)
        used = len(history)
        percent = used / self._limit * 100

        reset_at: float | None = None
        reset_in_seconds = 0.0
        if history:
            reset_at_ms = history[0] + self._window_ms
            reset_at = reset_at_ms / 1000
            reset_in_seconds = max(0.0, (reset_at_ms - now_ms) / 1000)

        return AdmissionStatus(
            used=used,
            limit=self._limit,
            remaining=max(0, self._limit - used),
            percent_used=round(percent, 1),
            window_seconds=self._window_seconds,
            reset_at=reset_at,
            reset_in_seconds=reset_in_seconds,
            admissible=used < self._limit,
            near_limit=percent > self._near_limit_percent,
            at_limit=used >= self._limit,
        )

    def should_warn(self) -> bool:
        return self.status().should_warn

    def status_message(self, status: AdmissionStatus | None = None) -> str:
        """One-line usage summary for operators.

        Pass a snapshot from ``status()`` to format it without another store read.
        """

        status = status or self.status()
        message = (
            f"API Rate Limit: {status.used}/{status.limit} requests used "
            f"({status.percent_used:.1f}%) - {status.remaining} remaining"
        )
        reset_in = int(math.ceil(status.reset_in_seconds))
        if status.at_limit:
            message += f" - LIMIT REACHED! Reset in {reset_in}s"
        elif status.near_limit:
            message += f" - WARNING: Approaching limit! Reset in {reset_in}s"
        return message

    def recommended_delay(self, status: AdmissionStatus | None = None) -> float:
        """Advisory delay (seconds) between calls for the current usage level."""

        percent_used = (status or self.status()).percent_used
        if percent_used > 90:
            return 2.0
        if percent_used > 75:
            return 1.5
        return self._min_spacing_seconds

    def reset(self) -> None:
        """Forget every recorded call.

        Raises:
            StoreAppError: If the keys cannot be deleted.
        """

        self._store.delete(self._history_key)
        self._store.delete(self._last_key)
        logger.info("admission.reset", extra={"history_key": self._history_key})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now_ms(self) -> int:
        return int(round(self._clock.now() * 1000))

    def _read(self, key: str) -> StoreValue | None:
        try:
            return self._store.get(key)
        except StoreAppError as exc:
            logger.warning(
                "admission.store_read_failed",
                extra={"store_key": key, "error_code": exc.code},
            )
            return None

    def _spacing_wait_ms(self) -> int:
        # A last-call instant in the future never waits longer than one spacing.
        last_ms = self._coerce_instant(self._read(self._last_key))
        if last_ms is None:
            return 0
        elapsed_ms = self._now_ms() - last_ms
        return max(0, min(self._min_spacing_ms - elapsed_ms, self._min_spacing_ms))

    def _live_history(self, now_ms: int) -> list[int]:
        return self._filter_live(self._coerce_history(self._read(self._history_key)), now_ms)

    def _filter_live(self, history: list[int], now_ms: int) -> list[int]:
        cutoff = now_ms - self._window_ms
        return sorted(ts for ts in history if ts > cutoff)

    def _coerce_history(self, raw: Any) -> list[int]:
        if raw is None:
            return []
        if not isinstance(raw, list) or not all(_is_number(ts) for ts in raw):
            logger.warning(
                "admission.store_malformed",
                extra={"store_key": self._history_key, "value_type": type(raw).__name__},
            )
            return []
        return [int(ts) for ts in raw]

    def _coerce_instant(self, raw: Any) -> int | None:
        if raw is None:
            return None
        if not _is_number(raw):
            logger.warning(
                "admission.store_malformed",
                extra={"store_key": self._last_key, "value_type": type(raw).__name__},
            )
            return None
        return int(raw)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def build_admission_controller(
    admission_settings: AdmissionSettings | None = None,
    *,
    store: AbstractCounterStore | None = None,
    clock: Clock | None = None,
) -> AdmissionController:
    """Build a controller from configuration.

    Args:
        admission_settings: Quota configuration; defaults to global settings.
        store: Counter store; defaults to the configured backend.
        clock: Time source; defaults to the system clock.

    Returns:
        AdmissionController: Ready-to-use controller.
    """
    cfg = admission_settings or settings.admission
    return AdmissionController(
        store if store is not None else create_counter_store(),
        limit=cfg.limit,
        window_seconds=cfg.window_seconds,
        min_spacing_seconds=cfg.min_spacing_seconds,
        clock=clock,
        key_prefix=cfg.key_prefix,
        ttl_margin_seconds=cfg.ttl_margin_seconds,
        poll_floor_seconds=cfg.poll_floor_seconds,
        near_limit_percent=cfg.near_limit_percent,
        default_max_wait_seconds=cfg.default_max_wait_seconds,
        strict=cfg.strict,
    )
