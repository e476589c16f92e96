"""Invoice, payment and finance routes.

Routes:
- POST /api/admin/forms/{form_id}/invoices     - Issue an invoice for a service form
- POST /api/invoices/{id}/payments             - Submit a payment proof (multipart)
- POST /api/admin/payments/{id}/verify         - Verify a payment
- POST /api/admin/payments/{id}/reject         - Reject a payment
- GET  /api/admin/finance/overview             - Per-booking totals and gate status
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from labbook.billing.service import BillingService
from labbook.models import Actor
from labbook.web.auth import get_current_actor, require_admin
from labbook.web.dependencies import get_billing_service
from labbook.web.models import (
    InvoiceRequest,
    PaymentDecisionRequest,
    invoice_to_dict,
    payment_to_dict,
)

router = APIRouter(tags=["billing"])


@router.post("/api/admin/forms/{form_id}/invoices", status_code=status.HTTP_201_CREATED)
async def issue_invoice(
    form_id: UUID,
    body: InvoiceRequest,
    admin: Actor = Depends(require_admin),
    service: BillingService = Depends(get_billing_service),
):
    invoice = await service.issue_invoice(admin.id, form_id, body.amount, body.due_date)
    return invoice_to_dict(invoice)


@router.post("/api/invoices/{invoice_id}/payments", status_code=status.HTTP_201_CREATED)
async def submit_payment(
    invoice_id: UUID,
    amount: Decimal = Form(..., gt=0),
    method: str | None = Form(None),
    reference_number: str | None = Form(None),
    paid_on: date | None = Form(None),
    receipt: UploadFile | None = File(None),
    actor: Actor = Depends(get_current_actor),
    service: BillingService = Depends(get_billing_service),
):
    receipt_file = None
    if receipt is not None:
        receipt_file = (receipt.filename or "receipt", await receipt.read())

    payment = await service.submit_payment(
        actor.id,
        invoice_id,
        amount,
        method=method,
        reference_number=reference_number,
        paid_on=paid_on,
        receipt=receipt_file,
    )
    return payment_to_dict(payment)


@router.post("/api/admin/payments/{payment_id}/verify")
async def verify_payment(
    payment_id: UUID,
    body: PaymentDecisionRequest | None = None,
    admin: Actor = Depends(require_admin),
    service: BillingService = Depends(get_billing_service),
):
    payment = await service.verify_payment(admin.id, payment_id, body.notes if body else None)
    return payment_to_dict(payment)


@router.post("/api/admin/payments/{payment_id}/reject")
async def reject_payment(
    payment_id: UUID,
    body: PaymentDecisionRequest,
    admin: Actor = Depends(require_admin),
    service: BillingService = Depends(get_billing_service),
):
    payment = await service.reject_payment(admin.id, payment_id, body.notes)
    return payment_to_dict(payment)


@router.get("/api/admin/finance/overview")
async def finance_overview(
    gate_status: Literal["locked", "unlocked"] | None = None,
    q: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    page_size: int | None = None,
    admin: Actor = Depends(require_admin),
    service: BillingService = Depends(get_billing_service),
):
    return await service.finance_overview(gate_status=gate_status, q=q, page=page, page_size=page_size)
