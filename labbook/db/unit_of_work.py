"""Unit of work: one session, one transaction, all repositories."""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from labbook.billing.repository import BillingRepository
from labbook.booking.repository import BookingRepository, CatalogRepository
from labbook.db.users import UserRepository
from labbook.documents.repository import DocumentRepository
from labbook.samples.repository import SampleRepository


class UnitOfWork:
    """Async context manager that commits on success and rolls back on error.

    Usage:
        async with UnitOfWork(session_factory) as uow:
            booking = await uow.bookings.get(booking_id, for_update=True)
    """

    session: AsyncSession

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def __aenter__(self) -> UnitOfWork:
        self.session = self._session_factory()
        self.bookings = BookingRepository(self.session)
        self.catalog = CatalogRepository(self.session)
        self.users = UserRepository(self.session)
        self.documents = DocumentRepository(self.session)
        self.billing = BillingRepository(self.session)
        self.samples = SampleRepository(self.session)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                await self.session.commit()
            else:
                await self.session.rollback()
        finally:
            await self.session.close()

    async def flush(self) -> None:
        await self.session.flush()


UnitOfWorkFactory = Callable[[], UnitOfWork]


def unit_of_work_factory(session_factory: async_sessionmaker[AsyncSession]) -> UnitOfWorkFactory:
    return lambda: UnitOfWork(session_factory)
