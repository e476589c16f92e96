"""Shared Pydantic models for the LabBook web API.

Request bodies live here; so do the small helpers that render ORM rows as
JSON-safe dicts for responses.

Usage:
    from labbook.web.models import BulkActionRequest

    @router.post("/api/admin/bookings/bulk-action")
    async def bulk_action(body: BulkActionRequest):
        ...
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from labbook.models import SampleStatus

__all__ = [
    "CreateDraftRequest",
    "ReviewDecisionRequest",
    "CancelRequest",
    "TimelineRequest",
    "BulkActionRequest",
    "LoginRequest",
    "RejectRequest",
    "InvoiceRequest",
    "SampleStatusRequest",
    "PaymentDecisionRequest",
    "ModificationRequest",
    "ModificationDecisionRequest",
    "booking_to_dict",
    "document_to_dict",
    "form_to_dict",
    "invoice_to_dict",
    "payment_to_dict",
    "sample_to_dict",
    "modification_to_dict",
]


# ============================================================================
# Auth Models
# ============================================================================


class LoginRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320)
    password: str = Field(min_length=1)


# ============================================================================
# Booking Models
# ============================================================================


class CreateDraftRequest(BaseModel):
    """Used by: POST /api/bookings"""

    service_id: UUID | None = None


class ReviewDecisionRequest(BaseModel):
    """Used by: POST /api/admin/bookings/{id}/approve|reject|return-for-edit"""

    note: str | None = None


class CancelRequest(BaseModel):
    reason: str | None = None


class TimelineRequest(BaseModel):
    """Used by: PATCH /api/bookings/{id}/timeline"""

    preferred_start_date: date | None = None
    preferred_end_date: date | None = None


class BulkActionRequest(BaseModel):
    """Request for bulk review decisions or bulk deletion.

    Used by: POST /api/admin/bookings/bulk-action
    """

    ids: list[UUID] = Field(min_length=1, max_length=50)
    action: Literal["approve", "reject", "request_revision", "delete"]
    comment: str | None = None

    @model_validator(mode="after")
    def comment_required_for_negative_decisions(self) -> BulkActionRequest:
        if self.action in ("reject", "request_revision") and not (self.comment or "").strip():
            raise ValueError(f"A comment is required to {self.action.replace('_', ' ')} bookings")
        return self


# ============================================================================
# Document & Billing Models
# ============================================================================


class RejectRequest(BaseModel):
    """Used by: POST /api/booking-docs/{doc_id}/reject"""

    reason: str = Field(min_length=1)


class InvoiceRequest(BaseModel):
    """Used by: POST /api/admin/forms/{form_id}/invoices"""

    amount: Decimal = Field(gt=0)
    due_date: date | None = None


class PaymentDecisionRequest(BaseModel):
    notes: str | None = None


class ModificationRequest(BaseModel):
    """Used by: POST /api/modifications"""

    item_id: UUID
    new_quantity: int
    reason: str


class ModificationDecisionRequest(BaseModel):
    """Used by: PATCH /api/admin/modifications/{id}"""

    action: Literal["approve", "reject"]
    notes: str | None = None


class SampleStatusRequest(BaseModel):
    """Used by: PATCH /api/admin/samples/{id}"""

    status: SampleStatus


# ============================================================================
# Response helpers
# ============================================================================


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def booking_to_dict(booking) -> dict[str, Any]:
    return {
        "id": str(booking.id),
        "reference_number": booking.reference_number,
        "status": booking.status,
        "review_notes": booking.review_notes,
        "reviewed_at": _iso(booking.reviewed_at),
        "preferred_start_date": _iso(booking.preferred_start_date),
        "preferred_end_date": _iso(booking.preferred_end_date),
        "released_at": _iso(booking.released_at),
        "updated_at": _iso(booking.updated_at),
    }


def document_to_dict(document) -> dict[str, Any]:
    return {
        "id": str(document.id),
        "booking_id": str(document.booking_id),
        "type": document.type,
        "file_name": document.file_name,
        "mime_type": document.mime_type,
        "size_bytes": document.size_bytes,
        "verification_status": document.verification_status,
        "rejection_reason": document.rejection_reason,
        "verified_at": _iso(document.verified_at),
        "created_at": _iso(document.created_at),
    }


def form_to_dict(form) -> dict[str, Any]:
    return {
        "id": str(form.id),
        "booking_id": str(form.booking_id),
        "form_number": form.form_number,
        "status": form.status,
        "requires_working_area_agreement": form.requires_working_area_agreement,
        "signed_forms_uploaded_at": _iso(form.signed_forms_uploaded_at),
        "created_at": _iso(form.created_at),
    }


def invoice_to_dict(invoice) -> dict[str, Any]:
    return {
        "id": str(invoice.id),
        "booking_id": str(invoice.booking_id),
        "service_form_id": str(invoice.service_form_id),
        "invoice_number": invoice.invoice_number,
        "amount": str(invoice.amount),
        "due_date": _iso(invoice.due_date),
        "status": invoice.status,
    }


def payment_to_dict(payment) -> dict[str, Any]:
    return {
        "id": str(payment.id),
        "invoice_id": str(payment.invoice_id),
        "amount": str(payment.amount),
        "method": payment.method,
        "reference_number": payment.reference_number,
        "paid_on": _iso(payment.paid_on),
        "status": payment.status,
        "verified_at": _iso(payment.verified_at),
        "verification_notes": payment.verification_notes,
    }


def sample_to_dict(sample) -> dict[str, Any]:
    return {
        "id": str(sample.id),
        "booking_service_item_id": str(sample.booking_service_item_id),
        "sample_identifier": sample.sample_identifier,
        "status": sample.status,
        "received_at": _iso(sample.received_at),
        "analysis_started_at": _iso(sample.analysis_started_at),
        "analysis_complete_at": _iso(sample.analysis_complete_at),
        "return_requested_at": _iso(sample.return_requested_at),
        "returned_at": _iso(sample.returned_at),
    }


def modification_to_dict(modification) -> dict[str, Any]:
    return {
        "id": str(modification.id),
        "booking_id": str(modification.booking_id),
        "booking_service_item_id": str(modification.booking_service_item_id),
        "original_quantity": modification.original_quantity,
        "new_quantity": modification.new_quantity,
        "original_total_price": str(modification.original_total_price),
        "new_total_price": str(modification.new_total_price),
        "reason": modification.reason,
        "status": modification.status,
        "decided_at": _iso(modification.decided_at),
        "decision_notes": modification.decision_notes,
        "created_at": _iso(modification.created_at),
    }
