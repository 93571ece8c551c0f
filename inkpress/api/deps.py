from typing import Optional

import redis.asyncio as redis
from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.auth.jwt import verify_token
from inkpress.config import get_settings
from inkpress.database import get_db, get_redis
from inkpress.exceptions import AuthenticationRequired
from inkpress.models import User
from inkpress.services.articles import ArticleLifecycle
from inkpress.services.categories import CategoryService
from inkpress.services.comments import CommentService
from inkpress.services.favorites import FavoriteService
from inkpress.services.follows import FollowService
from inkpress.services.notifications import NotificationService
from inkpress.services.reactions import ReactionService

settings = get_settings()
bearer_scheme = HTTPBearer(auto_error=False)


async def _user_from_credentials(
    credentials: Optional[HTTPAuthorizationCredentials], db: AsyncSession
) -> Optional[User]:
    if credentials is None or not credentials.credentials:
        return None
    payload = verify_token(credentials.credentials)
    if payload is None:
        raise AuthenticationRequired("Invalid authentication token")
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise AuthenticationRequired("Invalid authentication token")

    user = await db.get(User, user_id)
    if user is None:
        raise AuthenticationRequired("Unknown user")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to a user, or fail with 401."""
    user = await _user_from_credentials(credentials, db)
    if user is None:
        raise AuthenticationRequired()
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """Like get_current_user, but anonymous callers get None."""
    return await _user_from_credentials(credentials, db)


class Pagination:
    def __init__(
        self,
        page: int = Query(default=0, ge=0),
        size: int = Query(default=settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    ):
        self.page = page
        self.size = size


async def get_article_service(
    db: AsyncSession = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)
) -> ArticleLifecycle:
    return ArticleLifecycle(db, redis_client)


async def get_comment_service(
    db: AsyncSession = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)
) -> CommentService:
    return CommentService(db, redis_client)


async def get_reaction_service(
    db: AsyncSession = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)
) -> ReactionService:
    return ReactionService(db, redis_client)


async def get_notification_service(
    db: AsyncSession = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)
) -> NotificationService:
    return NotificationService(db, redis_client)


async def get_favorite_service(db: AsyncSession = Depends(get_db)) -> FavoriteService:
    return FavoriteService(db)


async def get_follow_service(db: AsyncSession = Depends(get_db)) -> FollowService:
    return FollowService(db)


async def get_category_service(
    db: AsyncSession = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)
) -> CategoryService:
    return CategoryService(db, redis_client)
