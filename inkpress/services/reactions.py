import logging
from typing import Optional

import redis.asyncio as redis
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.exceptions import BusinessRuleViolation, NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, ArticleStatus, Reaction, ReactionType, User
from inkpress.schemas import Page, ReactionResponse, ReactionStats
from inkpress.services.articles import load_visible_article
from inkpress.services.cache import CacheService
from inkpress.services.counters import CounterMaintainer
from inkpress.validators import parse_reaction_type

logger = logging.getLogger(__name__)


@log_service_calls
class ReactionService:
    """
    One reaction per (user, article).

    Reacting again replaces the type in place; likes_count follows the
    LIKE-ness of the reaction before and after the change.
    """

    def __init__(self, db: AsyncSession, redis_client: redis.Redis):
        self.db = db
        self.cache = CacheService(redis_client)
        self.counters = CounterMaintainer(db)

    async def add_or_update(self, article_id: int, reaction_type: str, user: User) -> ReactionResponse:
        new_type = parse_reaction_type(reaction_type)

        article = await self.db.get(Article, article_id)
        if article is None:
            raise NotFound("Article not found")
        if article.status != ArticleStatus.PUBLISHED:
            raise BusinessRuleViolation("Only published articles can receive reactions")

        reaction = await self._find(article_id, user.id)
        old_type: Optional[ReactionType] = None

        if reaction is None:
            try:
                async with self.db.begin_nested():
                    reaction = Reaction(type=new_type, user_id=user.id, article_id=article_id)
                    self.db.add(reaction)
                    await self.db.flush()
            except IntegrityError:
                logger.warning("Reaction by user %s on article %s created concurrently", user.id, article_id)
                reaction = await self._find(article_id, user.id)
                if reaction is None:
                    raise
                old_type = reaction.type
                reaction.type = new_type
        else:
            old_type = reaction.type
            reaction.type = new_type

        await self.db.flush()
        await self.counters.reaction_changed(article, old_type, new_type)
        await self.db.commit()
        await self.cache.invalidate_article(article_id)
        return ReactionResponse.model_validate(reaction)

    async def remove(self, article_id: int, user: User) -> None:
        article = await self.db.get(Article, article_id)
        if article is None:
            raise NotFound("Article not found")

        reaction = await self._find(article_id, user.id)
        if reaction is None:
            raise NotFound("Reaction not found")

        old_type = reaction.type
        await self.db.delete(reaction)
        await self.db.flush()
        await self.counters.reaction_changed(article, old_type, None)
        await self.db.commit()
        await self.cache.invalidate_article(article_id)

    async def list_for_article(
        self, article_id: int, viewer: Optional[User] = None, page: int = 0, size: int = 20
    ) -> Page[ReactionResponse]:
        await load_visible_article(self.db, article_id, viewer)
        return await self._page(Reaction.article_id == article_id, page, size)

    async def list_for_user(self, user: User, page: int = 0, size: int = 20) -> Page[ReactionResponse]:
        return await self._page(Reaction.user_id == user.id, page, size)

    async def stats(self, article_id: int, viewer: Optional[User] = None) -> ReactionStats:
        await load_visible_article(self.db, article_id, viewer)

        result = await self.db.execute(
            select(Reaction.type, func.count())
            .where(Reaction.article_id == article_id)
            .group_by(Reaction.type)
        )
        counts = {reaction_type: 0 for reaction_type in ReactionType}
        for reaction_type, count in result.all():
            counts[reaction_type] = count

        own = await self._find(article_id, viewer.id) if viewer else None
        return ReactionStats(
            article_id=article_id,
            total=sum(counts.values()),
            counts=counts,
            user_reaction=own.type if own else None,
        )

    async def user_reaction(self, article_id: int, user: User) -> Optional[ReactionResponse]:
        await load_visible_article(self.db, article_id, user)
        reaction = await self._find(article_id, user.id)
        return ReactionResponse.model_validate(reaction) if reaction else None

    async def _find(self, article_id: int, user_id: int) -> Optional[Reaction]:
        result = await self.db.execute(
            select(Reaction).where(Reaction.article_id == article_id, Reaction.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _page(self, condition, page: int, size: int) -> Page[ReactionResponse]:
        total = await self.db.scalar(select(func.count()).select_from(Reaction).where(condition))
        result = await self.db.execute(
            select(Reaction)
            .where(condition)
            .order_by(Reaction.created_at.desc(), Reaction.id.desc())
            .offset(page * size)
            .limit(size)
        )
        items = [ReactionResponse.model_validate(r) for r in result.scalars().all()]
        return Page(items=items, page=page, size=size, total=total or 0)
