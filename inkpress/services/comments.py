import logging
from typing import List, Optional

import redis.asyncio as redis
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.config import get_settings
from inkpress.exceptions import Forbidden, NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, Comment, User
from inkpress.schemas import CommentCreate, CommentResponse, Page, ThreadedComment
from inkpress.services.articles import load_visible_article
from inkpress.services.cache import CacheService
from inkpress.services.counters import CounterMaintainer
from inkpress.services.notifications import NotificationFanout
from inkpress.services.threads import build_thread
from inkpress.validators import ensure_valid, validate_comment

logger = logging.getLogger(__name__)
settings = get_settings()


@log_service_calls
class CommentService:
    """Comments and replies on articles."""

    def __init__(self, db: AsyncSession, redis_client: redis.Redis):
        self.db = db
        self.cache = CacheService(redis_client)
        self.counters = CounterMaintainer(db)
        self.fanout = NotificationFanout(db, redis_client)

    async def create(self, article_id: int, data: CommentCreate, user: User) -> CommentResponse:
        ensure_valid(validate_comment(data.content))
        article = await load_visible_article(self.db, article_id, user)

        parent: Optional[Comment] = None
        if data.parent_id is not None:
            parent = await self.db.get(Comment, data.parent_id)
            if parent is None:
                raise NotFound("Parent comment not found")
            if parent.article_id != article.id:
                raise Forbidden("Parent comment belongs to another article")

        comment = Comment(
            content=data.content.strip(),
            author_id=user.id,
            article_id=article.id,
            parent_id=parent.id if parent else None,
        )
        self.db.add(comment)
        await self.db.flush()

        await self.counters.comment_added(article)
        if parent is None:
            await self.fanout.comment_added(article, comment)
        else:
            await self.fanout.reply_added(parent, comment)

        await self.db.commit()
        await self.fanout.invalidate_pending()
        await self.cache.invalidate_article(article.id)
        return CommentResponse.model_validate(comment)

    async def delete(self, comment_id: int, user: User) -> int:
        """Delete a comment and its replies. Returns the article's new comments_count."""
        comment = await self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFound("Comment not found")

        article = await self.db.get(Article, comment.article_id)
        if user.id not in (comment.author_id, article.author_id):
            raise Forbidden("Only the comment author or the article author can delete this comment")

        await self.db.delete(comment)
        await self.db.flush()
        remaining = await self.counters.recount_comments(article)

        await self.db.commit()
        await self.cache.invalidate_article(article.id)
        logger.info("Comment %s deleted by user %s, article %s now has %s", comment_id, user.id, article.id, remaining)
        return remaining

    async def list_flat(
        self, article_id: int, viewer: Optional[User] = None, page: int = 0, size: int = 20
    ) -> Page[CommentResponse]:
        article = await load_visible_article(self.db, article_id, viewer)

        total = await self.db.scalar(
            select(func.count()).select_from(Comment).where(Comment.article_id == article.id)
        )
        result = await self.db.execute(
            select(Comment)
            .where(Comment.article_id == article.id)
            .order_by(Comment.created_at, Comment.id)
            .offset(page * size)
            .limit(size)
        )
        items = [CommentResponse.model_validate(c) for c in result.scalars().all()]
        return Page(items=items, page=page, size=size, total=total or 0)

    async def list_threaded(
        self, article_id: int, viewer: Optional[User] = None, page: int = 0, size: int = 20
    ) -> Page[ThreadedComment]:
        article = await load_visible_article(self.db, article_id, viewer)
        is_root = (Comment.article_id == article.id) & Comment.parent_id.is_(None)

        total = await self.db.scalar(select(func.count()).select_from(Comment).where(is_root))
        roots = await self.db.execute(
            select(Comment).where(is_root).order_by(Comment.created_at, Comment.id).offset(page * size).limit(size)
        )
        comments: List[Comment] = list(roots.scalars().all())

        if comments:
            replies = await self.db.execute(
                select(Comment).where(Comment.article_id == article.id, Comment.parent_id.is_not(None))
            )
            comments.extend(replies.scalars().all())

        items = build_thread(comments, max_depth=settings.COMMENT_THREAD_MAX_DEPTH)
        return Page(items=items, page=page, size=size, total=total or 0)
