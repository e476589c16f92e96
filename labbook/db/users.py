"""User account lookups shared by services and auth."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from labbook.db.models import UserModel
from labbook.models import UserRole, UserStatus


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: UUID) -> UserModel | None:
        return await self.session.get(UserModel, user_id)

    async def get_by_email(self, email: str) -> UserModel | None:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email.lower())
        )
        return result.scalars().first()

    async def active_admins(self) -> list[UserModel]:
        result = await self.session.execute(
            select(UserModel).where(
                UserModel.role == UserRole.ADMIN.value,
                UserModel.status == UserStatus.ACTIVE.value,
            )
        )
        return list(result.scalars())
