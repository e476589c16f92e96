"""Invoices, payment verification and the finance overview."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog

from labbook.booking.repository import resolve_page_size
from labbook.config import BookingConfig, get_config
from labbook.core.audit_logger import AuditLogger
from labbook.core.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from labbook.core.outbox import Outbox
from labbook.db.models import InvoiceModel, PaymentModel
from labbook.db.unit_of_work import UnitOfWorkFactory
from labbook.documents import gatekeeper
from labbook.documents.storage import LocalFileStorage
from labbook.models import InvoiceStatus, PaymentStatus
from labbook.notifications.notifier import BookingNotifier
from labbook.utils.clock import utcnow

logger = structlog.get_logger(__name__)


class BillingService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        storage: LocalFileStorage,
        audit: AuditLogger,
        notifier: BookingNotifier,
        config: BookingConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._uow = uow_factory
        self._storage = storage
        self._audit = audit
        self._notifier = notifier
        self._config = config or get_config().booking
        self._now = clock or utcnow

    async def issue_invoice(
        self, admin_id: UUID, form_id: UUID, amount: Decimal, due_date: date | None = None
    ) -> InvoiceModel:
        if amount <= 0:
            raise ValidationError("Invalid amount", [{"field": "amount", "message": "Amount must be positive"}])

        outbox = Outbox()
        async with self._uow() as uow:
            form = await uow.documents.get_form(form_id)
            if form is None:
                raise NotFoundError(f"Service form {form_id} not found")

            sequence = await uow.billing.count_invoices() + 1
            invoice = InvoiceModel(
                service_form_id=form.id,
                booking_id=form.booking_id,
                invoice_number=f"INV-{self._now():%Y%m}-{sequence:05d}",
                amount=amount,
                due_date=due_date,
                status=InvoiceStatus.PENDING.value,
                created_by=admin_id,
                created_at=self._now(),
            )
            uow.billing.add(invoice)
            await uow.flush()
            outbox.add(
                "invoice.issue",
                self._audit.log_action,
                action="invoice.issue",
                user_id=admin_id,
                entity="invoice",
                entity_id=invoice.id,
                details={"booking_id": form.booking_id, "amount": amount},
            )

        await outbox.flush()
        return invoice

    async def submit_payment(
        self,
        user_id: UUID,
        invoice_id: UUID,
        amount: Decimal,
        method: str | None = None,
        reference_number: str | None = None,
        paid_on: date | None = None,
        receipt: tuple[str, bytes] | None = None,
    ) -> PaymentModel:
        """Record a payment proof; refused until the signed forms are verified."""
        if amount <= 0:
            raise ValidationError("Invalid amount", [{"field": "amount", "message": "Amount must be positive"}])

        outbox = Outbox()
        async with self._uow() as uow:
            invoice = await uow.billing.get_invoice(invoice_id)
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            booking = await uow.bookings.get(invoice.booking_id)
            if booking.user_id != user_id:
                raise ForbiddenError("You do not have access to this invoice")
            if invoice.status in (InvoiceStatus.PAID.value, InvoiceStatus.CANCELLED.value):
                raise InvalidStateError(
                    f"Invoice {invoice.invoice_number} is {invoice.status}",
                    current=invoice.status,
                    expected=[InvoiceStatus.PENDING.value, InvoiceStatus.OVERDUE.value],
                )

            state = await gatekeeper.get_document_verification_state(uow, booking.id)
            if not state.forms_verified:
                raise InvalidStateError(
                    "Payment cannot be submitted until the signed forms are verified",
                    current=booking.status,
                )

            receipt_key = None
            if receipt is not None:
                filename, content = receipt
                receipt_key = self._storage.key_for(booking.id, filename)
                await self._storage.save(receipt_key, content)

            payment = PaymentModel(
                invoice_id=invoice.id,
                amount=amount,
                method=method,
                reference_number=reference_number,
                paid_on=paid_on,
                receipt_storage_key=receipt_key,
                status=PaymentStatus.PENDING.value,
                uploaded_by=user_id,
                uploaded_at=self._now(),
            )
            uow.billing.add(payment)
            await uow.flush()

            outbox.add(
                "payment.submit",
                self._audit.log_action,
                action="payment.submit",
                user_id=user_id,
                entity="payment",
                entity_id=payment.id,
                details={"invoice_id": invoice.id, "amount": amount},
            )
            outbox.add(
                "notify:admins",
                self._notifier.notify_admins,
                booking_id=booking.id,
                reference_number=booking.reference_number,
                message=f"Payment of {amount} submitted for invoice {invoice.invoice_number}",
            )

        await outbox.flush()
        return payment

    async def verify_payment(self, admin_id: UUID, payment_id: UUID, notes: str | None = None) -> PaymentModel:
        return await self._decide(admin_id, payment_id, PaymentStatus.VERIFIED, notes)

    async def reject_payment(self, admin_id: UUID, payment_id: UUID, notes: str | None) -> PaymentModel:
        notes = (notes or "").strip()
        if not notes:
            raise ValidationError(
                "A rejection reason is required",
                [{"field": "notes", "message": "A rejection reason is required"}],
            )
        return await self._decide(admin_id, payment_id, PaymentStatus.REJECTED, notes)

    async def _decide(
        self, admin_id: UUID, payment_id: UUID, decision: PaymentStatus, notes: str | None
    ) -> PaymentModel:
        outbox = Outbox()
        async with self._uow() as uow:
            payment = await uow.billing.get_payment(payment_id, for_update=True)
            if payment is None:
                raise NotFoundError(f"Payment {payment_id} not found")
            if payment.status != PaymentStatus.PENDING.value:
                raise InvalidStateError(
                    f"Payment is already {payment.status}",
                    current=payment.status,
                    expected=[PaymentStatus.PENDING.value],
                )

            payment.status = decision.value
            payment.verified_by = admin_id
            payment.verified_at = self._now()
            payment.verification_notes = notes or None
            await uow.flush()

            invoice = await uow.billing.get_invoice(payment.invoice_id, for_update=True)
            invoice_paid = False
            if decision == PaymentStatus.VERIFIED:
                verified_total = await uow.billing.verified_total(invoice.id)
                if verified_total >= invoice.amount and invoice.status != InvoiceStatus.PAID.value:
                    invoice.status = InvoiceStatus.PAID.value
                    invoice_paid = True
                    await uow.flush()

            booking = await uow.bookings.get(invoice.booking_id)
            action = "verify_payment" if decision == PaymentStatus.VERIFIED else "reject_payment"
            outbox.add(
                action,
                self._audit.log_action,
                action=action,
                user_id=admin_id,
                entity="payment",
                entity_id=payment.id,
                details={
                    "invoice_id": invoice.id,
                    "amount": payment.amount,
                    "invoice_paid": invoice_paid,
                    "notes": notes,
                },
            )
            outbox.add(
                f"notify:{action}",
                self._notifier.booking_event,
                user_id=booking.user_id,
                booking_id=booking.id,
                reference_number=booking.reference_number,
                event="payment_verified" if decision == PaymentStatus.VERIFIED else "payment_rejected",
                comment=notes,
            )

        await outbox.flush()
        return payment

    async def finance_overview(
        self,
        gate_status: str | None = None,
        q: str | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> dict[str, Any]:
        """Per-booking invoiced and verified totals with the results gate."""
        page_size = resolve_page_size(page_size, self._config.finance_page_sizes)
        if gate_status not in ("locked", "unlocked"):
            gate_status = None
        async with self._uow() as uow:
            rows, total = await uow.billing.finance_rows(
                q=q,
                gate_status=gate_status,
                limit=page_size,
                offset=(max(page, 1) - 1) * page_size,
            )

        return {
            "items": [
                {
                    "booking_id": str(row.booking_id),
                    "reference_number": row.reference_number,
                    "status": row.status,
                    "user_email": row.user_email,
                    "user_name": row.user_name,
                    "total_invoiced": str(row.total_invoiced),
                    "total_verified": str(row.total_verified),
                    "gate_status": row.gate_status,
                }
                for row in rows
            ],
            "total": total,
            "page": page,
            "page_size": page_size,
        }
