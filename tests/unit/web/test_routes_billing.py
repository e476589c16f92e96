"""Tests for labbook.web.routes.billing and labbook.web.routes.samples."""

from datetime import date, datetime
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from labbook.core.errors import InvalidStateError, LabBookError
from labbook.models import Actor, SampleStatus, UserRole
from labbook.web.app import labbook_error_handler, validation_error_handler
from labbook.web.auth import get_current_actor
from labbook.web.dependencies import get_billing_service, get_sample_service
from labbook.web.routes import billing, samples

OWNER = Actor(id=uuid4())
ADMIN = Actor(id=uuid4(), role=UserRole.ADMIN)


def _payment(**overrides):
    values = dict(
        id=uuid4(),
        invoice_id=uuid4(),
        amount=Decimal("250.00"),
        method="bank_transfer",
        reference_number="TRX-4471",
        paid_on=date(2026, 10, 10),
        status="pending",
        verified_at=None,
        verification_notes=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


@pytest.fixture
def billing_service():
    return AsyncMock()


@pytest.fixture
def sample_service():
    return AsyncMock()


@pytest.fixture
def actor():
    return ADMIN


@pytest.fixture
def client(billing_service, sample_service, actor):
    test_app = FastAPI()
    test_app.include_router(billing.router)
    test_app.include_router(samples.router)
    test_app.add_exception_handler(LabBookError, labbook_error_handler)
    test_app.add_exception_handler(RequestValidationError, validation_error_handler)
    test_app.dependency_overrides[get_current_actor] = lambda: actor
    test_app.dependency_overrides[get_billing_service] = lambda: billing_service
    test_app.dependency_overrides[get_sample_service] = lambda: sample_service
    return TestClient(test_app)


class TestInvoices:
    def test_issue_invoice(self, client, billing_service):
        form_id = uuid4()
        billing_service.issue_invoice.return_value = SimpleNamespace(
            id=uuid4(),
            booking_id=uuid4(),
            service_form_id=form_id,
            invoice_number="INV-202610-00001",
            amount=Decimal("250.00"),
            due_date=date(2026, 11, 15),
            status="pending",
        )

        response = client.post(
            f"/api/admin/forms/{form_id}/invoices",
            json={"amount": "250.00", "due_date": "2026-11-15"},
        )

        assert response.status_code == 201
        assert response.json()["invoice_number"] == "INV-202610-00001"
        billing_service.issue_invoice.assert_awaited_once_with(
            ADMIN.id, form_id, Decimal("250.00"), date(2026, 11, 15)
        )

    def test_amount_must_be_positive(self, client, billing_service):
        response = client.post(f"/api/admin/forms/{uuid4()}/invoices", json={"amount": "0"})

        assert response.status_code == 400
        billing_service.issue_invoice.assert_not_awaited()

    @pytest.mark.parametrize("actor", [OWNER])
    def test_owner_cannot_issue(self, client, billing_service, actor):
        response = client.post(f"/api/admin/forms/{uuid4()}/invoices", json={"amount": "10"})

        assert response.status_code == 403


class TestPayments:
    @pytest.mark.parametrize("actor", [OWNER])
    def test_submit_payment_with_receipt(self, client, billing_service, actor):
        invoice_id = uuid4()
        billing_service.submit_payment.return_value = _payment(invoice_id=invoice_id)

        response = client.post(
            f"/api/invoices/{invoice_id}/payments",
            data={
                "amount": "250.00",
                "method": "bank_transfer",
                "reference_number": "TRX-4471",
                "paid_on": "2026-10-10",
            },
            files={"receipt": ("receipt.pdf", b"%PDF-receipt", "application/pdf")},
        )

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        args = billing_service.submit_payment.await_args
        assert args.args == (OWNER.id, invoice_id, Decimal("250.00"))
        assert args.kwargs["receipt"] == ("receipt.pdf", b"%PDF-receipt")
        assert args.kwargs["paid_on"] == date(2026, 10, 10)

    @pytest.mark.parametrize("actor", [OWNER])
    def test_forms_not_verified(self, client, billing_service, actor):
        billing_service.submit_payment.side_effect = InvalidStateError(
            "Payment cannot be submitted until the signed forms are verified"
        )

        response = client.post(f"/api/invoices/{uuid4()}/payments", data={"amount": "10"})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_state"

    def test_verify_payment(self, client, billing_service):
        payment_id = uuid4()
        billing_service.verify_payment.return_value = _payment(
            id=payment_id, status="verified", verified_at=datetime(2026, 10, 11, 9, 0)
        )

        response = client.post(f"/api/admin/payments/{payment_id}/verify", json={"notes": "Matched"})

        assert response.json()["status"] == "verified"
        billing_service.verify_payment.assert_awaited_once_with(ADMIN.id, payment_id, "Matched")

    def test_finance_overview_filters(self, client, billing_service):
        billing_service.finance_overview.return_value = {
            "items": [],
            "total": 0,
            "page": 1,
            "page_size": 10,
        }

        response = client.get("/api/admin/finance/overview", params={"gate_status": "locked", "q": "BK"})

        assert response.status_code == 200
        billing_service.finance_overview.assert_awaited_once_with(
            gate_status="locked", q="BK", page=1, page_size=None
        )

    def test_finance_overview_rejects_unknown_gate(self, client):
        response = client.get("/api/admin/finance/overview", params={"gate_status": "ajar"})

        assert response.status_code == 400


class TestSamples:
    def test_update_status(self, client, sample_service):
        sample_id = uuid4()
        sample_service.update_status.return_value = SimpleNamespace(
            id=sample_id,
            booking_service_item_id=uuid4(),
            sample_identifier="BK-MGZ1K2-7QXA-S01",
            status="received",
            received_at=datetime(2026, 10, 12, 8, 0),
            analysis_started_at=None,
            analysis_complete_at=None,
            return_requested_at=None,
            returned_at=None,
        )

        response = client.patch(f"/api/admin/samples/{sample_id}", json={"status": "received"})

        assert response.status_code == 200
        assert response.json()["received_at"] == "2026-10-12T08:00:00"
        sample_service.update_status.assert_awaited_once_with(ADMIN.id, sample_id, SampleStatus.RECEIVED)

    def test_unknown_sample_status(self, client, sample_service):
        response = client.patch(f"/api/admin/samples/{uuid4()}", json={"status": "lost"})

        assert response.status_code == 400
        sample_service.update_status.assert_not_awaited()

    @pytest.mark.parametrize("actor", [OWNER])
    def test_owner_lists_samples(self, client, sample_service, actor):
        booking_id = uuid4()
        sample_service.list_for_booking.return_value = []

        response = client.get(f"/api/bookings/{booking_id}/samples")

        assert response.json() == {"items": []}
        sample_service.list_for_booking.assert_awaited_once_with(OWNER, booking_id)
