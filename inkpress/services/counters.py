import logging
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, Comment, ReactionType

logger = logging.getLogger(__name__)


@log_service_calls
class CounterMaintainer:
    """
    Keeps the denormalized counters on an article in step with its comments
    and reactions.

    Counters are moved with a single UPDATE so concurrent writers do not lose
    increments; decrements are clamped at zero. updated_at is left alone.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def comment_added(self, article: Article) -> None:
        await self._shift(article, Article.comments_count, +1)

    async def recount_comments(self, article: Article) -> int:
        """Recompute comments_count from the rows that actually remain."""
        total = await self.db.scalar(
            select(func.count()).select_from(Comment).where(Comment.article_id == article.id)
        )
        await self.db.execute(
            update(Article)
            .where(Article.id == article.id)
            .values(comments_count=total or 0, updated_at=Article.updated_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(article, ["comments_count"])
        return article.comments_count

    async def reaction_changed(
        self,
        article: Article,
        old_type: Optional[ReactionType],
        new_type: Optional[ReactionType],
    ) -> None:
        """Apply +1, -1 or nothing to likes_count depending on LIKE before and after."""
        was_like = old_type == ReactionType.LIKE
        is_like = new_type == ReactionType.LIKE

        if is_like and not was_like:
            await self._shift(article, Article.likes_count, +1)
        elif was_like and not is_like:
            await self._shift(article, Article.likes_count, -1)

    async def _shift(self, article: Article, column, delta: int) -> None:
        if delta > 0:
            value = column + delta
        else:
            value = case((column > 0, column + delta), else_=0)

        await self.db.execute(
            update(Article)
            .where(Article.id == article.id)
            .values({column.key: value, "updated_at": Article.updated_at})
            .execution_options(synchronize_session=False)
        )
        await self.db.refresh(article, [column.key])
        logger.debug("Article %s %s -> %s", article.id, column.key, getattr(article, column.key))
