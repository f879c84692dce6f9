"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from quota_guard.core.config import AdmissionSettings, StoreSettings


def test_admission_defaults_match_remote_quota(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ADMISSION_LIMIT", "ADMISSION_WINDOW_SECONDS", "ADMISSION_MIN_SPACING_SECONDS"):
        monkeypatch.delenv(name, raising=False)

    cfg = AdmissionSettings()

    assert cfg.limit == 300
    assert cfg.window_seconds == 300
    assert cfg.min_spacing_seconds == 1.1
    assert cfg.ttl_margin_seconds == 60
    assert cfg.strict is False


def test_admission_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ADMISSION_LIMIT", "50")
    monkeypatch.setenv("ADMISSION_WINDOW_SECONDS", "60")
    monkeypatch.setenv("ADMISSION_STRICT", "true")
    monkeypatch.setenv("ADMISSION_POLL_FLOOR_SECONDS", "0.25")

    cfg = AdmissionSettings()

    assert cfg.limit == 50
    assert cfg.window_seconds == 60
    assert cfg.strict is True
    assert cfg.poll_floor_seconds == 0.25


@pytest.mark.parametrize(
    ("name", "value"),
    [
        ("ADMISSION_LIMIT", "0"),
        ("ADMISSION_WINDOW_SECONDS", "0"),
        ("ADMISSION_POLL_FLOOR_SECONDS", "0"),
        ("ADMISSION_NEAR_LIMIT_PERCENT", "101"),
    ],
)
def test_admission_rejects_invalid_values(
    monkeypatch: pytest.MonkeyPatch, name: str, value: str
) -> None:
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        AdmissionSettings()


def test_store_backend_is_validated(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STORE_BACKEND", "memcached")

    with pytest.raises(ValidationError):
        StoreSettings()
