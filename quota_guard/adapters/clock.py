"""Time source used by the admission controller.

The controller never calls ``time`` directly: it asks a clock for the
current instant and asks the same clock to sleep. Tests substitute a fake
clock whose ``sleep`` simply advances virtual time.
"""

from __future__ import annotations

import threading
import time
from typing import Protocol


class Clock(Protocol):
    """Wall-clock time source with a cancellable sleep."""

    def now(self) -> float:
        """Return the current UNIX time in seconds (sub-second resolution)."""
        ...

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        """Suspend the caller for ``seconds`` or until ``cancel`` is set."""
        ...


class SystemClock:
    """Clock backed by ``time.time`` and ``time.sleep``."""

    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        if seconds <= 0:
            return
        if cancel is None:
            time.sleep(seconds)
        else:
            cancel.wait(seconds)

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return "SystemClock()"
