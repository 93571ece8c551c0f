import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.exceptions import BusinessRuleViolation, Conflict, NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Follow, User
from inkpress.schemas import FollowResponse, Page, UserProfile, UserSummary

logger = logging.getLogger(__name__)


@log_service_calls
class FollowService:
    """Social graph between users."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def follow(self, target_id: int, user: User) -> FollowResponse:
        target = await self._get_user(target_id)
        if target.id == user.id:
            raise BusinessRuleViolation("You cannot follow yourself")
        if await self._find(user.id, target.id) is not None:
            raise Conflict(f"Already following {target.username}")

        follow = Follow(follower_id=user.id, following_id=target.id)
        self.db.add(follow)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict(f"Already following {target.username}")

        logger.info("User %s now follows %s", user.id, target.id)
        return FollowResponse.model_validate(follow)

    async def unfollow(self, target_id: int, user: User) -> None:
        target = await self._get_user(target_id)
        follow = await self._find(user.id, target.id)
        if follow is None:
            raise NotFound(f"Not following {target.username}")
        await self.db.delete(follow)
        await self.db.commit()

    async def followers(self, user_id: int, page: int = 0, size: int = 20) -> Page[UserSummary]:
        await self._get_user(user_id)
        return await self._page(Follow.follower_id, Follow.following_id == user_id, page, size)

    async def following(self, user_id: int, page: int = 0, size: int = 20) -> Page[UserSummary]:
        await self._get_user(user_id)
        return await self._page(Follow.following_id, Follow.follower_id == user_id, page, size)

    async def profile(self, target_id: int, viewer: User) -> UserProfile:
        target = await self._get_user(target_id)
        follower_count = await self.db.scalar(
            select(func.count()).select_from(Follow).where(Follow.following_id == target.id)
        )
        following_count = await self.db.scalar(
            select(func.count()).select_from(Follow).where(Follow.follower_id == target.id)
        )
        return UserProfile(
            id=target.id,
            username=target.username,
            follower_count=follower_count or 0,
            following_count=following_count or 0,
            is_following=await self._find(viewer.id, target.id) is not None,
        )

    async def _get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    async def _find(self, follower_id: int, following_id: int):
        result = await self.db.execute(
            select(Follow).where(Follow.follower_id == follower_id, Follow.following_id == following_id)
        )
        return result.scalar_one_or_none()

    async def _page(self, user_column, condition, page: int, size: int) -> Page[UserSummary]:
        total = await self.db.scalar(select(func.count()).select_from(Follow).where(condition))
        result = await self.db.execute(
            select(User)
            .join(Follow, User.id == user_column)
            .where(condition)
            .order_by(Follow.created_at.desc(), Follow.id.desc())
            .offset(page * size)
            .limit(size)
        )
        items = [UserSummary.model_validate(u) for u in result.scalars().all()]
        return Page(items=items, page=page, size=size, total=total or 0)
