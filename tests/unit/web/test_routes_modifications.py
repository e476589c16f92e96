"""Tests for labbook.web.routes.modifications - Quantity change routes."""

from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from labbook.core.errors import InvalidStateError, LabBookError
from labbook.models import Actor, ModificationStatus, UserRole
from labbook.web.app import labbook_error_handler, validation_error_handler
from labbook.web.auth import get_current_actor
from labbook.web.dependencies import get_modification_service
from labbook.web.routes import modifications

ADMIN = Actor(id=uuid4(), role=UserRole.ADMIN)
OWNER = Actor(id=uuid4())


def _modification(status: str = "pending", **overrides):
    values = dict(
        id=uuid4(),
        booking_id=uuid4(),
        booking_service_item_id=uuid4(),
        original_quantity=2,
        new_quantity=3,
        original_total_price=Decimal("200.00"),
        new_total_price=Decimal("300.00"),
        reason="Two more cores arrived from the field site",
        status=status,
        decided_at=None,
        decision_notes=None,
        created_at=datetime(2026, 10, 5, 9, 0),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def modification_service():
    return AsyncMock()


@pytest.fixture
def actor():
    return OWNER


@pytest.fixture
def client(modification_service, actor):
    test_app = FastAPI()
    test_app.include_router(modifications.router)
    test_app.add_exception_handler(LabBookError, labbook_error_handler)
    test_app.add_exception_handler(RequestValidationError, validation_error_handler)
    test_app.dependency_overrides[get_current_actor] = lambda: actor
    test_app.dependency_overrides[get_modification_service] = lambda: modification_service
    return TestClient(test_app)


class TestRequestModification:
    """Tests for POST /api/modifications route."""

    def test_creates_pending_request(self, client, modification_service):
        item_id = uuid4()
        modification_service.request_modification.return_value = _modification(
            booking_service_item_id=item_id
        )

        response = client.post(
            "/api/modifications",
            json={"item_id": str(item_id), "new_quantity": 3, "reason": "Two more cores arrived"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "pending"
        assert data["new_total_price"] == "300.00"
        assert data["booking_service_item_id"] == str(item_id)
        modification_service.request_modification.assert_awaited_once_with(
            OWNER.id, item_id, 3, "Two more cores arrived"
        )

    def test_missing_reason_is_rejected(self, client, modification_service):
        response = client.post(
            "/api/modifications", json={"item_id": str(uuid4()), "new_quantity": 3}
        )

        assert response.status_code == 400
        assert response.json()["error"] == "validation"
        modification_service.request_modification.assert_not_awaited()


class TestDecideModification:
    """Tests for PATCH /api/admin/modifications/{id} route."""

    @pytest.fixture
    def actor(self):
        return ADMIN

    def test_approve(self, client, modification_service):
        modification_id = uuid4()
        modification_service.decide_modification.return_value = _modification(
            "approved", id=modification_id, decided_at=datetime(2026, 10, 6, 8, 0)
        )

        response = client.patch(
            f"/api/admin/modifications/{modification_id}",
            json={"action": "approve", "notes": "Bench has room"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["decided_at"] == "2026-10-06T08:00:00"
        modification_service.decide_modification.assert_awaited_once_with(
            ADMIN.id, modification_id, approved=True, notes="Bench has room"
        )

    def test_processed_request_returns_400(self, client, modification_service):
        modification_service.decide_modification.side_effect = InvalidStateError(
            "This modification request has already been processed", current="approved"
        )

        response = client.patch(f"/api/admin/modifications/{uuid4()}", json={"action": "reject"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"

    def test_unknown_action(self, client, modification_service):
        response = client.patch(f"/api/admin/modifications/{uuid4()}", json={"action": "maybe"})

        assert response.status_code == 400
        modification_service.decide_modification.assert_not_awaited()

    def test_admin_list_filters_by_status(self, client, modification_service):
        modification_service.list_modifications.return_value = [_modification()]

        response = client.get("/api/admin/modifications", params={"status": "pending"})

        assert response.status_code == 200
        assert len(response.json()["items"]) == 1
        modification_service.list_modifications.assert_awaited_once_with(
            ADMIN, status=ModificationStatus.PENDING
        )


class TestAccess:
    def test_owner_cannot_decide(self, client, modification_service):
        response = client.patch(f"/api/admin/modifications/{uuid4()}", json={"action": "approve"})

        assert response.status_code == 403
        modification_service.decide_modification.assert_not_awaited()

    def test_owner_lists_booking_requests(self, client, modification_service):
        booking_id = uuid4()
        modification_service.list_modifications.return_value = []

        response = client.get(f"/api/bookings/{booking_id}/modifications")

        assert response.status_code == 200
        assert response.json() == {"items": []}
        modification_service.list_modifications.assert_awaited_once_with(
            OWNER, booking_id=booking_id
        )
