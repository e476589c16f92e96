"""Sample tracking and analysis result queries."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from labbook.db.models import (
    AnalysisResultModel,
    BookingServiceItemModel,
    SampleTrackingModel,
)


class SampleRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, sample_id: UUID, for_update: bool = False) -> SampleTrackingModel | None:
        stmt = select(SampleTrackingModel).where(SampleTrackingModel.id == sample_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    def add(self, sample: SampleTrackingModel) -> None:
        self.session.add(sample)

    async def booking_id_for_sample(self, sample_id: UUID) -> UUID | None:
        stmt = (
            select(BookingServiceItemModel.booking_id)
            .join(
                SampleTrackingModel,
                SampleTrackingModel.booking_service_item_id == BookingServiceItemModel.id,
            )
            .where(SampleTrackingModel.id == sample_id)
        )
        return await self.session.scalar(stmt)

    async def list_for_booking(self, booking_id: UUID) -> list[SampleTrackingModel]:
        stmt = (
            select(SampleTrackingModel)
            .join(
                BookingServiceItemModel,
                SampleTrackingModel.booking_service_item_id == BookingServiceItemModel.id,
            )
            .where(BookingServiceItemModel.booking_id == booking_id)
            .order_by(SampleTrackingModel.sample_identifier)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_for_item(self, item_id: UUID) -> list[SampleTrackingModel]:
        stmt = (
            select(SampleTrackingModel)
            .where(SampleTrackingModel.booking_service_item_id == item_id)
            .order_by(SampleTrackingModel.sample_identifier)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def remove(self, sample: SampleTrackingModel) -> None:
        await self.session.delete(sample)

    async def get_result(self, result_id: UUID) -> tuple[AnalysisResultModel, UUID] | None:
        """Result row together with the booking that owns it."""
        stmt = (
            select(AnalysisResultModel, BookingServiceItemModel.booking_id)
            .join(
                SampleTrackingModel,
                AnalysisResultModel.sample_tracking_id == SampleTrackingModel.id,
            )
            .join(
                BookingServiceItemModel,
                SampleTrackingModel.booking_service_item_id == BookingServiceItemModel.id,
            )
            .where(AnalysisResultModel.id == result_id)
        )
        row = (await self.session.execute(stmt)).first()
        if row is None:
            return None
        return row[0], row[1]

    def add_result(self, result: AnalysisResultModel) -> None:
        self.session.add(result)
