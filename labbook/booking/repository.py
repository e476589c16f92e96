"""Booking persistence and list queries."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import Select, and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from labbook.booking.models import BookingSummary
from labbook.db.models import (
    AddOnCatalogModel,
    BookingModificationModel,
    BookingRequestModel,
    BookingServiceItemModel,
    ServiceAddOnModel,
    ServiceModel,
    ServicePricingModel,
    UserModel,
)
from labbook.models import (
    BookingListParams,
    BookingStatus,
    ModificationStatus,
    ServiceCategory,
)

LIKE_ESCAPE = "\\"

SORT_COLUMNS = {
    "updated_at": BookingRequestModel.updated_at,
    "updatedAt": BookingRequestModel.updated_at,
    "created_at": BookingRequestModel.created_at,
    "createdAt": BookingRequestModel.created_at,
    "total_amount": BookingRequestModel.total_amount,
    "totalAmount": BookingRequestModel.total_amount,
}


def resolve_page_size(requested: int | None, allowed: Sequence[int]) -> int:
    """Return ``requested`` if it is in the allow-list, else the first entry."""
    if requested in allowed:
        return requested  # type: ignore[return-value]
    return allowed[0]


def resolve_order(sort_by: str | None, sort_dir: str = "desc"):
    """ORDER BY clause for an allow-listed field; anything else is ``updated_at desc``."""
    column = SORT_COLUMNS.get(sort_by or "")
    if column is None:
        return BookingRequestModel.updated_at.desc()
    return column.asc() if sort_dir == "asc" else column.desc()


def contains_pattern(text: str) -> str:
    """Lower-cased ``LIKE`` pattern matching ``text`` literally anywhere in a value.

    Pair with ``escape=LIKE_ESCAPE``; ``%`` and ``_`` in the search text lose
    their wildcard meaning.
    """
    escaped = (
        text.lower()
        .replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )
    return f"%{escaped}%"


class BookingRepository:
    """Queries over ``booking_requests`` and their service items."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, booking_id: UUID, for_update: bool = False) -> BookingRequestModel | None:
        stmt = select(BookingRequestModel).where(BookingRequestModel.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def reference_exists(self, reference_number: str) -> bool:
        stmt = select(func.count()).select_from(BookingRequestModel).where(
            BookingRequestModel.reference_number == reference_number
        )
        return bool(await self.session.scalar(stmt))

    def add(self, booking: BookingRequestModel) -> None:
        self.session.add(booking)

    async def compare_and_set(
        self, booking: BookingRequestModel, expected_status: str, values: dict[str, Any]
    ) -> bool:
        """Apply ``values`` only if the row still holds ``expected_status``.

        Returns False when another writer moved the booking first. On success
        the in-session instance is refreshed from the database.
        """
        stmt = (
            update(BookingRequestModel)
            .where(
                BookingRequestModel.id == booking.id,
                BookingRequestModel.status == expected_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            return False
        await self.session.refresh(booking)
        return True

    async def list_items(self, booking_id: UUID) -> list[BookingServiceItemModel]:
        stmt = (
            select(BookingServiceItemModel)
            .where(BookingServiceItemModel.booking_id == booking_id)
            .order_by(BookingServiceItemModel.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def list_add_ons(self, item_ids: Iterable[UUID]) -> list[ServiceAddOnModel]:
        ids = list(item_ids)
        if not ids:
            return []
        stmt = select(ServiceAddOnModel).where(ServiceAddOnModel.booking_service_item_id.in_(ids))
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def replace_items(
        self,
        booking_id: UUID,
        items: list[tuple[BookingServiceItemModel, list[ServiceAddOnModel]]],
    ) -> None:
        await self.session.execute(
            delete(BookingServiceItemModel).where(BookingServiceItemModel.booking_id == booking_id)
        )
        for item, add_ons in items:
            item.booking_id = booking_id
            self.session.add(item)
            await self.session.flush()
            for add_on in add_ons:
                add_on.booking_service_item_id = item.id
                self.session.add(add_on)
        await self.session.flush()

    async def has_workspace_items(self, booking_id: UUID) -> bool:
        stmt = select(func.count()).select_from(BookingServiceItemModel).where(
            BookingServiceItemModel.booking_id == booking_id,
            BookingServiceItemModel.service_category == ServiceCategory.WORKING_SPACE.value,
        )
        return bool(await self.session.scalar(stmt))

    async def get_item(
        self, item_id: UUID, for_update: bool = False
    ) -> BookingServiceItemModel | None:
        stmt = select(BookingServiceItemModel).where(BookingServiceItemModel.id == item_id)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def ids_with_ended_workspace(self, today: date) -> list[UUID]:
        """Approved or in-progress bookings with bench time whose end date has passed."""
        workspace_item = (
            select(BookingServiceItemModel.id)
            .where(
                BookingServiceItemModel.booking_id == BookingRequestModel.id,
                BookingServiceItemModel.service_category == ServiceCategory.WORKING_SPACE.value,
            )
            .exists()
        )
        stmt = (
            select(BookingRequestModel.id)
            .where(
                BookingRequestModel.status.in_(
                    [BookingStatus.APPROVED.value, BookingStatus.IN_PROGRESS.value]
                ),
                BookingRequestModel.preferred_end_date <= today,
                workspace_item,
            )
            .order_by(BookingRequestModel.preferred_end_date, BookingRequestModel.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    # -- modification requests ------------------------------------------

    async def get_modification(
        self, modification_id: UUID, for_update: bool = False
    ) -> BookingModificationModel | None:
        stmt = select(BookingModificationModel).where(
            BookingModificationModel.id == modification_id
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def has_pending_modification(self, item_id: UUID) -> bool:
        stmt = select(func.count()).select_from(BookingModificationModel).where(
            BookingModificationModel.booking_service_item_id == item_id,
            BookingModificationModel.status == ModificationStatus.PENDING.value,
        )
        return bool(await self.session.scalar(stmt))

    def add_modification(self, modification: BookingModificationModel) -> None:
        self.session.add(modification)

    async def list_modifications(
        self, booking_id: UUID | None = None, status: ModificationStatus | None = None
    ) -> list[BookingModificationModel]:
        stmt = select(BookingModificationModel).order_by(
            BookingModificationModel.created_at.desc(), BookingModificationModel.id
        )
        if booking_id is not None:
            stmt = stmt.where(BookingModificationModel.booking_id == booking_id)
        if status is not None:
            stmt = stmt.where(BookingModificationModel.status == status.value)
        result = await self.session.execute(stmt)
        return list(result.scalars())

    async def delete_if_status(self, booking_id: UUID, status: str) -> bool:
        stmt = delete(BookingRequestModel).where(
            BookingRequestModel.id == booking_id, BookingRequestModel.status == status
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def delete_many_in_statuses(
        self, booking_ids: Sequence[UUID], statuses: Iterable[BookingStatus]
    ) -> int:
        """Single filtered delete; rows outside ``statuses`` are left alone."""
        if not booking_ids:
            return 0
        stmt = delete(BookingRequestModel).where(
            BookingRequestModel.id.in_(list(booking_ids)),
            BookingRequestModel.status.in_([status.value for status in statuses]),
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def delete_drafts_updated_before(self, cutoff: datetime) -> int:
        stmt = delete(BookingRequestModel).where(
            BookingRequestModel.status == BookingStatus.DRAFT.value,
            BookingRequestModel.updated_at < cutoff,
        )
        result = await self.session.execute(stmt)
        return result.rowcount

    async def ids_for_user_in_status(self, user_id: UUID, status: BookingStatus) -> list[UUID]:
        stmt = select(BookingRequestModel.id).where(
            BookingRequestModel.user_id == user_id,
            BookingRequestModel.status == status.value,
        )
        result = await self.session.execute(stmt)
        return list(result.scalars())

    def _filtered(
        self, stmt: Select, params: BookingListParams, user_id: UUID | None, exclude_draft: bool
    ) -> Select:
        conditions = []
        if user_id is not None:
            conditions.append(BookingRequestModel.user_id == user_id)
        if exclude_draft:
            conditions.append(BookingRequestModel.status != BookingStatus.DRAFT.value)
        if params.statuses:
            conditions.append(
                BookingRequestModel.status.in_([status.value for status in params.statuses])
            )
        if params.created_from is not None:
            conditions.append(BookingRequestModel.created_at >= params.created_from)
        if params.created_to is not None:
            conditions.append(BookingRequestModel.created_at <= params.created_to)
        if params.q:
            pattern = contains_pattern(params.q)
            searched = (
                BookingRequestModel.reference_number,
                UserModel.first_name,
                UserModel.last_name,
                UserModel.email,
                func.coalesce(UserModel.organization_name, ""),
            )
            conditions.append(
                or_(*(func.lower(column).like(pattern, escape=LIKE_ESCAPE) for column in searched))
            )
        if conditions:
            stmt = stmt.where(and_(*conditions))
        return stmt

    async def search(
        self,
        params: BookingListParams,
        page_size: int,
        user_id: UUID | None = None,
        exclude_draft: bool = False,
    ) -> tuple[list[BookingSummary], int]:
        join_on = UserModel.id == BookingRequestModel.user_id
        base = select(BookingRequestModel, UserModel).join(UserModel, join_on)
        base = self._filtered(base, params, user_id, exclude_draft)

        count_stmt = (
            select(func.count(BookingRequestModel.id))
            .select_from(BookingRequestModel)
            .join(UserModel, join_on)
        )
        count_stmt = self._filtered(count_stmt, params, user_id, exclude_draft)
        total = int(await self.session.scalar(count_stmt) or 0)

        order = resolve_order(params.sort_by, params.sort_dir)
        stmt = (
            base.order_by(order, BookingRequestModel.id)
            .offset((params.page - 1) * page_size)
            .limit(page_size)
        )
        result = await self.session.execute(stmt)

        summaries = [
            BookingSummary(
                id=booking.id,
                reference_number=booking.reference_number,
                status=booking.status,
                total_amount=booking.total_amount,
                created_at=booking.created_at,
                updated_at=booking.updated_at,
                user_id=user.id,
                user_email=user.email,
                user_name=user.full_name,
                organization_name=user.organization_name,
            )
            for booking, user in result.all()
        ]
        return summaries, total

    async def count_by_status(
        self, user_id: UUID | None = None, exclude_draft: bool = False
    ) -> dict[str, int]:
        """Counts per status plus ``all``; mirrors the list exclusions."""
        stmt = select(BookingRequestModel.status, func.count()).group_by(BookingRequestModel.status)
        if user_id is not None:
            stmt = stmt.where(BookingRequestModel.user_id == user_id)
        if exclude_draft:
            stmt = stmt.where(BookingRequestModel.status != BookingStatus.DRAFT.value)

        result = await self.session.execute(stmt)
        counts = {
            status.value: 0
            for status in BookingStatus
            if not (exclude_draft and status == BookingStatus.DRAFT)
        }
        for status, count in result.all():
            counts[status] = count
        counts["all"] = sum(counts.values())
        return counts


class CatalogRepository:
    """Service catalog, price list and add-on lookups."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_service(self, service_id: UUID) -> ServiceModel | None:
        return await self.session.get(ServiceModel, service_id)

    async def get_services(self, service_ids: Iterable[UUID]) -> dict[UUID, ServiceModel]:
        ids = list(set(service_ids))
        if not ids:
            return {}
        result = await self.session.execute(select(ServiceModel).where(ServiceModel.id.in_(ids)))
        return {service.id: service for service in result.scalars()}

    async def current_price(self, service_id: UUID, user_type: str, at: datetime) -> Decimal | None:
        """Latest price effective at ``at`` for the given user type."""
        stmt = (
            select(ServicePricingModel.price)
            .where(
                ServicePricingModel.service_id == service_id,
                ServicePricingModel.user_type == user_type,
                ServicePricingModel.effective_from <= at,
                or_(
                    ServicePricingModel.effective_to.is_(None),
                    ServicePricingModel.effective_to > at,
                ),
            )
            .order_by(ServicePricingModel.effective_from.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def get_add_ons(self, add_on_ids: Iterable[UUID]) -> dict[UUID, AddOnCatalogModel]:
        ids = list(set(add_on_ids))
        if not ids:
            return {}
        result = await self.session.execute(
            select(AddOnCatalogModel).where(
                AddOnCatalogModel.id.in_(ids), AddOnCatalogModel.is_active.is_(True)
            )
        )
        return {add_on.id: add_on for add_on in result.scalars()}
