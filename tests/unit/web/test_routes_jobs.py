"""Tests for labbook.web.routes.jobs - Scheduled job triggers."""

from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from labbook.core.errors import LabBookError
from labbook.web.app import labbook_error_handler
from labbook.web.dependencies import get_booking_service, get_sample_service
from labbook.web.routes import jobs

JOB_KEY = "test-job-key"


@pytest.fixture
def booking_service():
    service = AsyncMock()
    service.purge_expired_drafts.return_value = 3
    return service


@pytest.fixture
def sample_service():
    service = AsyncMock()
    service.complete_finished_workspace_bookings.return_value = 1
    return service


@pytest.fixture
def client(booking_service, sample_service):
    test_app = FastAPI()
    test_app.include_router(jobs.router)
    test_app.add_exception_handler(LabBookError, labbook_error_handler)
    test_app.dependency_overrides[get_booking_service] = lambda: booking_service
    test_app.dependency_overrides[get_sample_service] = lambda: sample_service
    return TestClient(test_app)


class TestPurgeDrafts:
    """Tests for POST /api/jobs/purge-drafts route."""

    def test_valid_key_runs_purge(self, client, booking_service):
        response = client.post("/api/jobs/purge-drafts", headers={"X-Job-Key": JOB_KEY})

        assert response.status_code == 200
        assert response.json() == {"deleted": 3}
        booking_service.purge_expired_drafts.assert_awaited_once_with()

    def test_missing_key(self, client, booking_service):
        response = client.post("/api/jobs/purge-drafts")

        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized", "detail": "Invalid job key"}
        booking_service.purge_expired_drafts.assert_not_awaited()

    def test_wrong_key(self, client, booking_service):
        response = client.post("/api/jobs/purge-drafts", headers={"X-Job-Key": "guess"})

        assert response.status_code == 401
        booking_service.purge_expired_drafts.assert_not_awaited()

    def test_unconfigured_key_rejects_everything(self, client, booking_service, monkeypatch):
        monkeypatch.delenv("JOB_KEY")

        response = client.post("/api/jobs/purge-drafts", headers={"X-Job-Key": ""})

        assert response.status_code == 401
        booking_service.purge_expired_drafts.assert_not_awaited()

    def test_non_ascii_key_is_rejected(self, client, booking_service):
        response = client.post(
            "/api/jobs/purge-drafts", headers={"X-Job-Key": "clé-secrète".encode("latin-1")}
        )

        assert response.status_code == 401
        booking_service.purge_expired_drafts.assert_not_awaited()


class TestCompleteWorkspaceBookings:
    """Tests for POST /api/jobs/complete-workspace-bookings route."""

    def test_valid_key_runs_completion(self, client, sample_service):
        response = client.post(
            "/api/jobs/complete-workspace-bookings", headers={"X-Job-Key": JOB_KEY}
        )

        assert response.status_code == 200
        assert response.json() == {"completed": 1}
        sample_service.complete_finished_workspace_bookings.assert_awaited_once_with()

    def test_wrong_key(self, client, sample_service):
        response = client.post(
            "/api/jobs/complete-workspace-bookings", headers={"X-Job-Key": "guess"}
        )

        assert response.status_code == 401
        sample_service.complete_finished_workspace_bookings.assert_not_awaited()
