from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession

from usage_sync.db.models import BillingUser


class UsersRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, user_id: str) -> BillingUser | None:
        return await self._session.get(BillingUser, user_id)

    async def create(self, user: BillingUser) -> BillingUser:
        self._session.add(user)
        await self._session.commit()
        await self._session.refresh(user)
        return user
