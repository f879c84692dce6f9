"""Pytest configuration and fixtures shared across all test modules.

Environment variables are set before anything imports the settings module,
so tests never pick up a developer's .env file or a real Redis.
"""

import os
import threading
from typing import Callable

import pytest

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("LOG_FORMAT", "json")

from quota_guard.adapters.store.in_memory import InMemoryCounterStore  # noqa: E402
from quota_guard.services.admission_controller import AdmissionController  # noqa: E402


class FakeClock:
    """Deterministic clock: sleeping advances virtual time instantly."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    def sleep(self, seconds: float, cancel: threading.Event | None = None) -> None:
        self.sleeps.append(seconds)
        self.current += seconds

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(fake_clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=fake_clock.now)


@pytest.fixture
def make_controller(
    store: InMemoryCounterStore, fake_clock: FakeClock
) -> Callable[..., AdmissionController]:
    """Build controllers on the shared fake clock and in-memory store."""

    def _make(**overrides) -> AdmissionController:
        target_store = overrides.pop("store", store)
        kwargs = {
            "limit": 3,
            "window_seconds": 5,
            "min_spacing_seconds": 1.1,
            "clock": fake_clock,
        }
        kwargs.update(overrides)
        return AdmissionController(target_store, **kwargs)

    return _make
