import json
from typing import Iterable, Optional
import redis.asyncio as redis

from inkpress.config import get_settings

settings = get_settings()


class CacheService:
    """Redis cache for unread notification counts and published article views."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    # ----- Unread notification counts -----
    async def get_unread_count(self, user_id: int) -> Optional[int]:
        data = await self.redis.get(f"notifications:unread:{user_id}")
        if data is None:
            return None
        return int(data)

    async def set_unread_count(self, user_id: int, count: int) -> None:
        await self.redis.setex(
            f"notifications:unread:{user_id}",
            settings.UNREAD_COUNT_CACHE_TTL,
            count,
        )

    async def invalidate_unread_counts(self, user_ids: Iterable[int]) -> None:
        """Drop cached unread counts for many recipients in one round trip."""
        keys = [f"notifications:unread:{uid}" for uid in user_ids]
        if not keys:
            return
        pipe = self.redis.pipeline()
        for key in keys:
            pipe.delete(key)
        await pipe.execute()

    # ----- Article cache -----
    async def get_cached_article(self, article_id: int) -> Optional[dict]:
        data = await self.redis.get(f"article:{article_id}")
        if data:
            return json.loads(data)
        return None

    async def set_cached_article(self, article_id: int, article_data: dict) -> None:
        await self.redis.setex(
            f"article:{article_id}",
            settings.ARTICLE_CACHE_TTL,
            json.dumps(article_data, default=str),
        )

    async def invalidate_article(self, article_id: int) -> None:
        await self.redis.delete(f"article:{article_id}")

    async def invalidate_articles(self, article_ids: Iterable[int]) -> None:
        keys = [f"article:{article_id}" for article_id in article_ids]
        if keys:
            await self.redis.delete(*keys)
