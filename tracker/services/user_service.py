import logging

from sqlmodel.ext.asyncio.session import AsyncSession

from tracker.cache.decorators import async_cached
from tracker.cache.layer import USERS, CacheLayer
from tracker.core.exceptions import ResourceNotFoundError
from tracker.models import User
from tracker.repositories.user_repository import UserRepository
from tracker.schemas import UserSummary

logger = logging.getLogger(__name__)


class UserService:
    """Actor and user resolution shared by the other services."""

    def __init__(self, session: AsyncSession, cache: CacheLayer):
        self.session = session
        self.cache = cache
        self.users = UserRepository(session)

    @async_cached(USERS, lambda email: email, model=UserSummary)
    async def _load_summary(self, email: str) -> UserSummary | None:
        user = await self.users.find_by_email(email)
        if user is None:
            return None
        return UserSummary(id=user.id, email=user.email, full_name=user.full_name)

    async def get_by_email(self, email: str) -> UserSummary:
        """Cached identity lookup; enough for access checks."""
        summary = await self._load_summary(email)
        if summary is None:
            logger.warning("User not found email=%s", email)
            raise ResourceNotFoundError("User", "email", email)
        return summary

    async def get_entity(self, email: str) -> User:
        """The stored user, for when a relationship has to point at it."""
        summary = await self.get_by_email(email)
        user = await self.users.find_by_id(summary.id)
        if user is None:
            await self.cache.evict(USERS, email)
            raise ResourceNotFoundError("User", "email", email)
        return user

    async def get_entity_by_id(self, user_id: int, resource: str = "User") -> User:
        user = await self.users.find_by_id(user_id)
        if user is None:
            raise ResourceNotFoundError(resource, "id", user_id)
        return user

    async def find_all_by_ids(self, user_ids: list[int]) -> list[User]:
        return await self.users.find_all_by_ids(user_ids)
