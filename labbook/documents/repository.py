"""Booking documents and service forms."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from labbook.db.models import BookingDocumentModel, ServiceFormModel
from labbook.models import DocumentType


class DocumentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, document_id: UUID, for_update: bool = False) -> BookingDocumentModel | None:
        stmt = select(BookingDocumentModel).where(BookingDocumentModel.id == document_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def add(self, document: BookingDocumentModel) -> None:
        self.session.add(document)

    async def delete(self, document_id: UUID) -> None:
        await self.session.execute(
            delete(BookingDocumentModel).where(BookingDocumentModel.id == document_id)
        )

    async def latest_by_type(
        self, booking_id: UUID, doc_type: DocumentType
    ) -> BookingDocumentModel | None:
        """Most recent upload of a type; older uploads are superseded."""
        stmt = (
            select(BookingDocumentModel)
            .where(
                BookingDocumentModel.booking_id == booking_id,
                BookingDocumentModel.type == doc_type.value,
            )
            .order_by(BookingDocumentModel.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def list_for_booking(self, booking_id: UUID) -> list[BookingDocumentModel]:
        stmt = (
            select(BookingDocumentModel)
            .where(BookingDocumentModel.booking_id == booking_id)
            .order_by(BookingDocumentModel.created_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def get_form(self, form_id: UUID) -> ServiceFormModel | None:
        return await self.session.get(ServiceFormModel, form_id)

    async def latest_form(self, booking_id: UUID) -> ServiceFormModel | None:
        stmt = (
            select(ServiceFormModel)
            .where(ServiceFormModel.booking_id == booking_id)
            .order_by(ServiceFormModel.created_at.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def count_forms(self, booking_id: UUID) -> int:
        stmt = select(func.count()).select_from(ServiceFormModel).where(
            ServiceFormModel.booking_id == booking_id
        )
        return int(await self.session.scalar(stmt) or 0)

    def add_form(self, form: ServiceFormModel) -> None:
        self.session.add(form)
