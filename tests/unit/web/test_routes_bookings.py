"""Tests for labbook.web.routes.bookings - Owner booking routes.

Services are replaced with ``AsyncMock`` through ``dependency_overrides``;
error mapping uses the application's real exception handlers.
"""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from labbook.booking.models import BookingDetail, BookingPage, DraftCreated, ServiceResult
from labbook.core.errors import (
    ForbiddenError,
    InvalidStateError,
    LabBookError,
    NotFoundError,
    ValidationError,
)
from labbook.documents.gatekeeper import DocumentVerificationState, DownloadEligibility
from labbook.models import Actor, BookingDraftUpdate, RequirementStatus, UserStatus
from labbook.web.app import labbook_error_handler, validation_error_handler
from labbook.web.auth import get_current_actor
from labbook.web.dependencies import get_booking_service, get_document_service
from labbook.web.routes import bookings

OWNER = Actor(id=uuid4(), status=UserStatus.ACTIVE)


def _booking(status: str = "draft", **overrides):
    values = dict(
        id=uuid4(),
        reference_number="BK-MGZ1K2-7QXA",
        status=status,
        user_id=OWNER.id,
        project_description="Heavy metal screening",
        notes=None,
        preferred_start_date=date(2026, 11, 2),
        preferred_end_date=date(2026, 11, 6),
        total_amount=Decimal("100.00"),
        reviewed_by=None,
        reviewed_at=None,
        review_notes=None,
        released_at=None,
        created_at=datetime(2026, 10, 1, 9, 0),
        updated_at=datetime(2026, 10, 1, 9, 5),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def booking_service():
    return AsyncMock()


@pytest.fixture
def document_service():
    return AsyncMock()


@pytest.fixture
def app(booking_service, document_service):
    """Create test FastAPI app with the bookings router."""
    test_app = FastAPI()
    test_app.include_router(bookings.router)
    test_app.add_exception_handler(LabBookError, labbook_error_handler)
    test_app.add_exception_handler(RequestValidationError, validation_error_handler)
    test_app.dependency_overrides[get_current_actor] = lambda: OWNER
    test_app.dependency_overrides[get_booking_service] = lambda: booking_service
    test_app.dependency_overrides[get_document_service] = lambda: document_service
    return test_app


@pytest.fixture
def client(app):
    """Create test client."""
    return TestClient(app)


class TestCreateDraft:
    """Tests for POST /api/bookings route."""

    def test_create_returns_reference(self, client, booking_service):
        booking_id = uuid4()
        booking_service.create_draft.return_value = DraftCreated(
            booking_id=booking_id, reference_number="BK-MGZ1K2-7QXA"
        )

        response = client.post("/api/bookings", json={})

        assert response.status_code == 201
        assert response.json() == {
            "booking_id": str(booking_id),
            "reference_number": "BK-MGZ1K2-7QXA",
        }
        booking_service.create_draft.assert_awaited_once_with(OWNER.id, None)

    def test_create_is_rate_limited(self, client, booking_service, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_CREATE_DRAFT", "2")
        booking_service.create_draft.return_value = DraftCreated(
            booking_id=uuid4(), reference_number="BK-MGZ1K2-7QXA"
        )

        assert client.post("/api/bookings", json={}).status_code == 201
        assert client.post("/api/bookings", json={}).status_code == 201
        response = client.post("/api/bookings", json={})

        assert response.status_code == 429
        assert response.json()["error"] == "rate_limited"
        assert int(response.headers["Retry-After"]) >= 1
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert booking_service.create_draft.await_count == 2


class TestGetBooking:
    """Tests for GET /api/bookings/{id} route."""

    def test_returns_detail(self, client, booking_service):
        booking = _booking()
        booking_service.get_booking.return_value = BookingDetail(booking=booking, items=[])

        response = client.get(f"/api/bookings/{booking.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["reference_number"] == "BK-MGZ1K2-7QXA"
        assert data["total_amount"] == "100.00"
        assert data["service_items"] == []

    def test_not_found_maps_to_404(self, client, booking_service):
        booking_service.get_booking.side_effect = NotFoundError("Booking not found")

        response = client.get(f"/api/bookings/{uuid4()}")

        assert response.status_code == 404
        assert response.json() == {"error": "not_found", "detail": "Booking not found"}

    def test_forbidden_maps_to_403(self, client, booking_service):
        booking_service.get_booking.side_effect = ForbiddenError("You do not have access to this booking")

        response = client.get(f"/api/bookings/{uuid4()}")

        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_malformed_id_is_a_validation_error(self, client):
        response = client.get("/api/bookings/not-a-uuid")

        assert response.status_code == 400
        assert response.json()["error"] == "validation"


class TestSaveDraft:
    """Tests for PUT /api/bookings/{id} route."""

    def test_passes_partial_update(self, client, booking_service):
        booking = _booking()
        booking_service.save_draft.return_value = BookingDetail(booking=booking, items=[])

        response = client.put(f"/api/bookings/{booking.id}", json={"notes": "Bring gloves"})

        assert response.status_code == 200
        user_id, booking_id, dto, user_type = booking_service.save_draft.await_args.args
        assert user_id == OWNER.id
        assert booking_id == booking.id
        assert isinstance(dto, BookingDraftUpdate)
        assert dto.model_dump(exclude_unset=True) == {"notes": "Bring gloves"}
        assert user_type == "internal_member"

    def test_invalid_quantity_returns_field_errors(self, client, booking_service):
        response = client.put(
            f"/api/bookings/{uuid4()}",
            json={"service_items": [{"service_id": str(uuid4()), "quantity": 0}]},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation"
        assert body["fields"][0]["field"] == "service_items.0.quantity"
        booking_service.save_draft.assert_not_awaited()

    def test_service_validation_error_returns_fields(self, client, booking_service):
        booking_service.save_draft.side_effect = ValidationError(
            "Invalid service items",
            [{"field": "service_items[0].service_id", "message": "Unknown service"}],
        )

        response = client.put(f"/api/bookings/{uuid4()}", json={"service_items": []})

        assert response.status_code == 400
        assert response.json()["fields"] == [
            {"field": "service_items[0].service_id", "message": "Unknown service"}
        ]


class TestSubmit:
    """Tests for POST /api/bookings/{id}/submit route."""

    def test_submit_passes_owner_status(self, client, booking_service):
        booking = _booking(status="pending_approval")
        booking_service.submit.return_value = BookingDetail(booking=booking, items=[])

        response = client.post(f"/api/bookings/{booking.id}/submit")

        assert response.status_code == 200
        assert response.json()["status"] == "pending_approval"
        booking_service.submit.assert_awaited_once_with(OWNER.id, booking.id, UserStatus.ACTIVE)

    def test_invalid_state_maps_to_400(self, client, booking_service):
        booking_service.submit.side_effect = InvalidStateError(
            "Cannot submit booking BK-1: status is 'approved', expected one of draft",
            current="approved",
            expected=["draft"],
        )

        response = client.post(f"/api/bookings/{uuid4()}/submit")

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"
        assert "approved" in response.json()["detail"]


class TestDeleteAndCancel:
    def test_delete_returns_204(self, client, booking_service):
        booking_id = uuid4()

        response = client.delete(f"/api/bookings/{booking_id}")

        assert response.status_code == 204
        booking_service.delete_draft.assert_awaited_once_with(OWNER.id, booking_id)

    def test_cancel_success(self, client, booking_service):
        booking = _booking(status="cancelled", review_notes="User cancellation: plans changed")
        booking_service.cancel_booking_by_user.return_value = ServiceResult.success(booking)

        response = client.post(f"/api/bookings/{booking.id}/cancel", json={"reason": "plans changed"})

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        booking_service.cancel_booking_by_user.assert_awaited_once_with(
            booking.id, OWNER.id, "plans changed"
        )

    def test_cancel_failure_maps_error_kind(self, client, booking_service):
        booking_service.cancel_booking_by_user.return_value = ServiceResult.failure(
            InvalidStateError("Booking is already cancelled", current="cancelled")
        )

        response = client.post(f"/api/bookings/{uuid4()}/cancel")

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"


class TestListAndCounts:
    def test_list_passes_filters(self, client, booking_service):
        booking_service.list_user_bookings.return_value = BookingPage(
            items=[], total=0, page=2, page_size=25
        )

        response = client.get(
            "/api/bookings",
            params={"status": ["draft", "approved"], "q": "BK-1", "page": 2, "page_size": 25},
        )

        assert response.status_code == 200
        assert response.json() == {
            "items": [],
            "total": 0,
            "page": 2,
            "page_size": 25,
            "total_pages": 1,
        }
        user_id, params = booking_service.list_user_bookings.await_args.args
        assert user_id == OWNER.id
        assert [status.value for status in params.statuses] == ["draft", "approved"]
        assert params.q == "BK-1"

    def test_unknown_status_filter_rejected(self, client):
        response = client.get("/api/bookings", params={"status": "archived"})

        assert response.status_code == 400

    def test_counts(self, client, booking_service):
        booking_service.count_user_bookings.return_value = {"draft": 2, "all": 2}

        response = client.get("/api/bookings/counts")

        assert response.json() == {"draft": 2, "all": 2}


class TestTimelineAndEligibility:
    def test_timeline_update(self, client, booking_service):
        booking = _booking(preferred_start_date=date(2026, 12, 1), preferred_end_date=date(2026, 12, 3))
        booking_service.update_timeline.return_value = booking

        response = client.patch(
            f"/api/bookings/{booking.id}/timeline",
            json={"preferred_start_date": "2026-12-01", "preferred_end_date": "2026-12-03"},
        )

        assert response.status_code == 200
        assert response.json()["preferred_start_date"] == "2026-12-01"
        booking_service.update_timeline.assert_awaited_once_with(
            OWNER, booking.id, date(2026, 12, 1), date(2026, 12, 3)
        )

    def test_eligibility_includes_verification_state(self, client, document_service):
        state = DocumentVerificationState(
            service_form_status=RequirementStatus.VERIFIED,
            work_area_status=RequirementStatus.NOT_REQUIRED,
            payment_verified=False,
        )
        document_service.check_eligibility.return_value = DownloadEligibility(
            eligible=False,
            reason="Results are locked. Awaiting verification of: Payment.",
            missing=("Payment",),
        )
        document_service.get_verification_state.return_value = state

        response = client.get(f"/api/bookings/{uuid4()}/eligibility")

        assert response.status_code == 200
        data = response.json()
        assert data["eligible"] is False
        assert data["missing"] == ["Payment"]
        assert data["verification"]["form_verified"] is True
        assert data["verification"]["work_area_required"] is False
