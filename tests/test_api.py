"""
Tests for the HTTP API using FastAPI's TestClient with the pipeline, stores
and delivery client swapped for in-memory fakes.
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api import routes
from core.cache import MemoryCacheBackend, ReportStore, ResultCache
from core.errors import EmailDispatchError, SessionAcquisitionError, SessionFailureKind
from fakes import FakeProvider, make_pipeline
from main import app


@pytest.fixture
def backend():
    return MemoryCacheBackend()


@pytest.fixture
def fake_provider():
    return FakeProvider()


@pytest.fixture
def email_client():
    return AsyncMock()


@pytest.fixture
def screenshot_service():
    service = AsyncMock()
    service.capture.return_value = "http://testserver/screenshots/abc.jpg"
    return service


@pytest.fixture
def client(backend, fake_provider, email_client, screenshot_service):
    cache = ResultCache(backend, ttl=0)
    store = ReportStore(backend, ttl=0)

    app.dependency_overrides[routes.get_pipeline] = lambda: make_pipeline(
        fake_provider, cache=cache, report_store=store
    )
    app.dependency_overrides[routes.get_report_store] = lambda: store
    app.dependency_overrides[routes.get_result_cache] = lambda: cache
    app.dependency_overrides[routes.get_email_client] = lambda: email_client
    app.dependency_overrides[routes.get_screenshot_service] = lambda: screenshot_service

    yield TestClient(app)

    app.dependency_overrides.clear()


class TestAnalyzeEndpoint:
    def test_missing_url_is_client_error(self, client, fake_provider):
        response = client.post("/api/analyze", json={})

        assert response.status_code == 400
        assert response.json() == {"error": "URL is required"}
        assert fake_provider.acquire_calls == 0

    def test_unsupported_scheme_is_client_error(self, client, fake_provider):
        response = client.post("/api/analyze", json={"url": "ftp://example.com"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid URL format"}
        assert fake_provider.acquire_calls == 0

    def test_unknown_component_is_client_error(self, client):
        response = client.post("/api/analyze", json={"url": "https://example.com", "component": "colors"})

        assert response.status_code == 400
        assert "Unknown component" in response.json()["error"]

    def test_successful_analysis(self, client):
        response = client.post("/api/analyze", json={"url": "https://example.com"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["fromCache"] is False
        assert body["analysisId"] == body["analysis"]["analysisId"]
        assert body["analysis"]["overallScore"] == 75
        assert body["analysis"]["perAnalyzer"]["speed"]["status"] == "success"

    def test_repeat_request_is_served_from_cache(self, client, fake_provider):
        first = client.post("/api/analyze", json={"url": "https://example.com"}).json()
        second = client.post("/api/analyze", json={"url": "https://example.com"}).json()
        rescanned = client.post("/api/analyze", json={"url": "https://example.com", "forceRescan": True}).json()

        assert second["fromCache"] is True
        assert second["analysisId"] == first["analysisId"]
        assert rescanned["fromCache"] is False
        assert rescanned["analysisId"] != first["analysisId"]
        assert fake_provider.acquire_calls == 2

    def test_no_browser_is_service_unavailable(self, client):
        error = SessionAcquisitionError(SessionFailureKind.LOCAL_LAUNCH_FAILED, "no chromium")
        app.dependency_overrides[routes.get_pipeline] = lambda: make_pipeline(
            FakeProvider(errors=[error, error])
        )

        response = client.post("/api/analyze", json={"url": "https://example.com"})

        assert response.status_code == 503
        assert "error" in response.json()

    def test_fetch_report_by_id(self, client):
        analysis_id = client.post("/api/analyze", json={"url": "https://example.com"}).json()["analysisId"]

        assert client.get(f"/api/analysis/{analysis_id}").json()["analysisId"] == analysis_id
        assert client.get(f"/api/analysis/{uuid.uuid4()}").status_code == 404


class TestScreenshotEndpoint:
    def test_returns_screenshot_url(self, client):
        response = client.post("/api/screenshot", json={"url": "https://example.com"})

        assert response.status_code == 200
        assert response.json() == {"screenshot": {"url": "http://testserver/screenshots/abc.jpg"}}

    def test_capture_failure_is_bad_gateway(self, client, screenshot_service):
        screenshot_service.capture.side_effect = RuntimeError("navigation failed")

        response = client.post("/api/screenshot", json={"url": "https://example.com"})

        assert response.status_code == 502
        assert response.json() == {"error": "Screenshot capture failed"}


class TestEmailEndpoint:
    def test_records_and_delivers_lead(self, client, backend, email_client):
        analysis_id = str(uuid.uuid4())

        response = client.post("/api/email", json={"email": "me@example.com", "analysisId": analysis_id})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        email_client.deliver.assert_awaited_once_with("me@example.com", analysis_id)
        assert backend.items(f"lead:{analysis_id}") == [{"email": "me@example.com"}]

    def test_delivery_failure_still_reports_success(self, client, email_client):
        email_client.deliver.side_effect = EmailDispatchError("webhook down")

        response = client.post("/api/email", json={"email": "me@example.com", "analysisId": str(uuid.uuid4())})

        assert response.status_code == 200
        assert response.json() == {"success": True}

    @pytest.mark.parametrize(
        "payload, error",
        [
            ({"email": "me@example.com"}, "analysisId is required"),
            ({"email": "me@example.com", "analysisId": "not-a-uuid"}, "Invalid analysisId"),
            ({"email": "nope", "analysisId": str(uuid.uuid4())}, "Invalid email format"),
        ],
    )
    def test_rejects_bad_input(self, client, email_client, payload, error):
        response = client.post("/api/email", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": error}
        email_client.deliver.assert_not_awaited()


class TestCacheAdministration:
    def test_clear_analysis_cache(self, client, fake_provider):
        client.post("/api/analyze", json={"url": "https://example.com"})

        response = client.delete("/api/cache/analysis/https://example.com")

        assert response.status_code == 200
        assert response.json()["cleared"] is True
        refreshed = client.post("/api/analyze", json={"url": "https://example.com"}).json()
        assert refreshed["fromCache"] is False
        assert fake_provider.acquire_calls == 2


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
