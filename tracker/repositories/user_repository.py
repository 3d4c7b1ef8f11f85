from typing import Iterable

from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.models import User


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email(self, email: str) -> User | None:
        result = await self.session.exec(select(User).where(User.email == email))
        return result.first()

    async def exists_by_email(self, email: str) -> bool:
        result = await self.session.exec(select(User.id).where(User.email == email))
        return result.first() is not None

    async def find_by_id(self, user_id: int) -> User | None:
        return await self.session.get(User, user_id)

    async def find_all_by_ids(self, user_ids: Iterable[int]) -> list[User]:
        """Unknown ids are skipped; duplicates collapse."""
        ids = set(user_ids)
        if not ids:
            return []
        result = await self.session.exec(select(User).where(col(User.id).in_(ids)).order_by(User.id))
        return list(result.all())

    async def save(self, user: User) -> User:
        self.session.add(user)
        await self.session.flush()
        return user
