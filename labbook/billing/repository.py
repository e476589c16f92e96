"""Invoices, payments and the finance overview query."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, func, not_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from labbook.booking.repository import LIKE_ESCAPE, contains_pattern
from labbook.db.models import BookingRequestModel, InvoiceModel, PaymentModel, UserModel
from labbook.models import BookingStatus, InvoiceStatus, PaymentStatus


@dataclass(slots=True)
class FinanceRow:
    booking_id: UUID
    reference_number: str
    status: str
    user_email: str
    user_name: str
    total_invoiced: Decimal
    total_verified: Decimal

    @property
    def results_unlocked(self) -> bool:
        return self.total_invoiced > 0 and self.total_verified >= self.total_invoiced

    @property
    def gate_status(self) -> str:
        return "unlocked" if self.results_unlocked else "locked"


class BillingRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_invoice(self, invoice_id: UUID, for_update: bool = False) -> InvoiceModel | None:
        stmt = select(InvoiceModel).where(InvoiceModel.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def get_payment(self, payment_id: UUID, for_update: bool = False) -> PaymentModel | None:
        stmt = select(PaymentModel).where(PaymentModel.id == payment_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def add(self, row: InvoiceModel | PaymentModel) -> None:
        self.session.add(row)

    async def count_invoices(self) -> int:
        return int(await self.session.scalar(select(func.count()).select_from(InvoiceModel)) or 0)

    async def open_invoices_for_booking(self, booking_id: UUID) -> list[InvoiceModel]:
        stmt = select(InvoiceModel).where(
            InvoiceModel.booking_id == booking_id,
            InvoiceModel.status != InvoiceStatus.CANCELLED.value,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def verified_total(self, invoice_id: UUID) -> Decimal:
        stmt = select(func.coalesce(func.sum(PaymentModel.amount), 0)).where(
            PaymentModel.invoice_id == invoice_id,
            PaymentModel.status == PaymentStatus.VERIFIED.value,
        )
        return Decimal(str(await self.session.scalar(stmt) or 0))

    async def finance_rows(
        self,
        q: str | None = None,
        gate_status: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[FinanceRow], int]:
        """One page of non-draft bookings with invoiced and verified totals.

        Returns the page and the number of rows matching the filters.
        """
        invoiced = (
            select(
                InvoiceModel.booking_id.label("booking_id"),
                func.sum(InvoiceModel.amount).label("total"),
            )
            .where(InvoiceModel.status != InvoiceStatus.CANCELLED.value)
            .group_by(InvoiceModel.booking_id)
            .subquery()
        )
        verified = (
            select(
                InvoiceModel.booking_id.label("booking_id"),
                func.sum(PaymentModel.amount).label("total"),
            )
            .join(PaymentModel, PaymentModel.invoice_id == InvoiceModel.id)
            .where(
                PaymentModel.status == PaymentStatus.VERIFIED.value,
                InvoiceModel.status != InvoiceStatus.CANCELLED.value,
            )
            .group_by(InvoiceModel.booking_id)
            .subquery()
        )
        total_invoiced = func.coalesce(invoiced.c.total, 0)
        total_verified = func.coalesce(verified.c.total, 0)

        conditions = [BookingRequestModel.status != BookingStatus.DRAFT.value]
        if q:
            pattern = contains_pattern(q)
            searched = (BookingRequestModel.reference_number, UserModel.email)
            conditions.append(
                or_(*(func.lower(column).like(pattern, escape=LIKE_ESCAPE) for column in searched))
            )
        unlocked = and_(total_invoiced > 0, total_verified >= total_invoiced)
        if gate_status == "unlocked":
            conditions.append(unlocked)
        elif gate_status == "locked":
            conditions.append(not_(unlocked))

        def _from(stmt):
            return (
                stmt.select_from(BookingRequestModel)
                .join(UserModel, UserModel.id == BookingRequestModel.user_id)
                .outerjoin(invoiced, invoiced.c.booking_id == BookingRequestModel.id)
                .outerjoin(verified, verified.c.booking_id == BookingRequestModel.id)
                .where(and_(*conditions))
            )

        count_stmt = _from(select(func.count(BookingRequestModel.id)))
        total = int(await self.session.scalar(count_stmt) or 0)

        stmt = (
            _from(select(BookingRequestModel, UserModel, total_invoiced, total_verified))
            .order_by(BookingRequestModel.updated_at.desc(), BookingRequestModel.id)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        rows = [
            FinanceRow(
                booking_id=booking.id,
                reference_number=booking.reference_number,
                status=booking.status,
                user_email=user.email,
                user_name=user.full_name,
                total_invoiced=Decimal(str(invoiced_sum)),
                total_verified=Decimal(str(verified_sum)),
            )
            for booking, user, invoiced_sum, verified_sum in result.all()
        ]
        return rows, total
