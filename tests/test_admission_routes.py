"""Integration tests for the admission operations endpoints."""

from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from quota_guard.adapters.store.base import AbstractCounterStore
from quota_guard.adapters.store.in_memory import InMemoryCounterStore
from quota_guard.core.app_factory import create_app
from quota_guard.core.errors import StoreAppError
from quota_guard.schemas.admission import AdmissionStatusResponse
from quota_guard.services.admission_controller import AdmissionController

HEADERS = {"X-API-Key": "test-api-key-123"}


@pytest.fixture
def controller(make_controller) -> AdmissionController:
    return make_controller(limit=5, window_seconds=60)


@pytest.fixture
def client(controller: AdmissionController) -> TestClient:
    return TestClient(create_app(controller))


def _failing_store() -> Mock:
    store = Mock(spec=AbstractCounterStore)
    store.get.side_effect = StoreAppError(code="store_unavailable", message="down")
    store.delete.side_effect = StoreAppError(
        code="store_unavailable",
        message="Counter store delete failed",
        details={"backend": "redis", "operation": "delete"},
    )
    return store


class TestStatusEndpoint:
    def test_requires_api_key(self, client: TestClient) -> None:
        response = client.get("/v1/admission/status")

        assert response.status_code == 403

    def test_rejects_unknown_api_key(self, client: TestClient) -> None:
        response = client.get("/v1/admission/status", headers={"X-API-Key": "nope"})

        assert response.status_code == 403

    def test_reports_empty_window(self, client: TestClient) -> None:
        response = client.get("/v1/admission/status", headers=HEADERS)

        assert response.status_code == 200
        data = response.json()
        assert data["used"] == 0
        assert data["limit"] == 5
        assert data["remaining"] == 5
        assert data["reset_at"] is None
        assert data["admissible"] is True
        assert data["should_warn"] is False
        assert data["recommended_delay_ms"] == 1100
        assert data["message"] == "API Rate Limit: 0/5 requests used (0.0%) - 5 remaining"

    def test_reports_full_window(self, client: TestClient, controller, fake_clock) -> None:
        for _ in range(5):
            controller.record_call()
            fake_clock.advance(2)

        data = client.get("/v1/admission/status", headers=HEADERS).json()

        assert data["used"] == 5
        assert data["at_limit"] is True
        assert data["admissible"] is False
        assert data["should_warn"] is True
        assert data["percent_used"] == 100.0
        assert data["recommended_delay_ms"] == 2000
        assert data["reset_at"] == pytest.approx(1_060.0)
        assert data["reset_in_seconds"] == pytest.approx(50.0)
        assert "LIMIT REACHED! Reset in 50s" in data["message"]

    def test_payload_comes_from_a_single_store_read(self, fake_clock) -> None:
        store = Mock(wraps=InMemoryCounterStore(clock=fake_clock.now))
        controller = AdmissionController(store, limit=5, window_seconds=60, clock=fake_clock)
        controller.record_call()
        store.get.reset_mock()

        payload = AdmissionStatusResponse.from_controller(controller)

        assert store.get.call_count == 1
        assert payload.used == 1
        assert payload.message.startswith("API Rate Limit: 1/5 requests used (20.0%)")

    def test_polling_status_does_not_consume_quota(self, client: TestClient, controller) -> None:
        for _ in range(10):
            client.get("/v1/admission/status", headers=HEADERS)

        assert controller.status().used == 0

    def test_store_read_failure_fails_open(self, fake_clock) -> None:
        controller = AdmissionController(
            _failing_store(), limit=5, window_seconds=60, clock=fake_clock
        )
        client = TestClient(create_app(controller))

        response = client.get("/v1/admission/status", headers=HEADERS)

        assert response.status_code == 200
        assert response.json()["used"] == 0


class TestResetEndpoint:
    def test_clears_history(self, client: TestClient, controller) -> None:
        controller.record_call()
        controller.record_call()

        response = client.post("/v1/admission/reset", headers=HEADERS)

        assert response.status_code == 200
        assert response.json() == {"status": "reset"}
        assert controller.status().used == 0

    def test_requires_api_key(self, client: TestClient, controller) -> None:
        controller.record_call()

        response = client.post("/v1/admission/reset")

        assert response.status_code == 403
        assert controller.status().used == 1

    def test_store_failure_returns_503(self, fake_clock) -> None:
        controller = AdmissionController(
            _failing_store(), limit=5, window_seconds=60, clock=fake_clock
        )
        client = TestClient(create_app(controller))

        response = client.post(
            "/v1/admission/reset",
            headers={**HEADERS, "X-Request-ID": "reset-req-1"},
        )

        assert response.status_code == 503
        assert response.headers["Retry-After"] == "5"
        error = response.json()["error"]
        assert error["code"] == "store_unavailable"
        assert error["request_id"] == "reset-req-1"
        assert error["details"]["operation"] == "delete"


def test_health_needs_no_api_key(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_openapi_declares_api_key_scheme(client: TestClient) -> None:
    schema = client.get("/openapi.json").json()

    assert schema["components"]["securitySchemes"]["ApiKeyAuth"]["name"] == "X-API-Key"
    assert schema["paths"]["/health"]["get"]["security"] == []
    assert {tag["name"] for tag in schema["tags"]} >= {"Admission", "Health"}
