import logging
from typing import Optional

import redis.asyncio as redis
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.exceptions import BusinessRuleViolation, Conflict, Forbidden, IntegrityViolation, NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, ArticleStatus, Category, User
from inkpress.schemas import ArticleCreate, ArticleResponse, ArticleUpdate, Page
from inkpress.services.cache import CacheService
from inkpress.services.categories import CategoryResolver
from inkpress.services.notifications import NotificationFanout
from inkpress.validators import (
    ensure_valid, is_blank, parse_status, validate_article_create, validate_article_update
)

logger = logging.getLogger(__name__)


def to_response(article: Article, author_username: str, category_name: str) -> ArticleResponse:
    return ArticleResponse(
        id=article.id,
        title=article.title,
        content=article.content,
        status=article.status,
        author_id=article.author_id,
        author_username=author_username,
        category_id=article.category_id,
        category_name=category_name,
        comments_count=article.comments_count,
        likes_count=article.likes_count,
        created_at=article.created_at,
        updated_at=article.updated_at,
    )


async def load_visible_article(db: AsyncSession, article_id: int, user: Optional[User]) -> Article:
    """
    Fetch an article the given user is allowed to see.

    Drafts exist only for their author; everyone else gets NotFound.
    """
    article = await db.get(Article, article_id)
    if article is None:
        raise NotFound("Article not found")
    if article.status == ArticleStatus.DRAFT and (user is None or user.id != article.author_id):
        raise NotFound("Article not found")
    return article


@log_service_calls
class ArticleLifecycle:
    """
    Create, edit, publish and delete articles.

    Publishing (on create or on a DRAFT -> PUBLISHED edit) fans out follower
    notifications inside the same transaction. A published article cannot go
    back to draft.
    """

    def __init__(self, db: AsyncSession, redis_client: redis.Redis):
        self.db = db
        self.cache = CacheService(redis_client)
        self.categories = CategoryResolver(db)
        self.fanout = NotificationFanout(db, redis_client)

    async def create(self, data: ArticleCreate, user: User) -> ArticleResponse:
        ensure_valid(validate_article_create(data.title, data.content, data.category, data.status))
        status = parse_status(data.status)
        title = data.title.strip()

        await self._ensure_title_free(user.id, title)
        category = await self.categories.resolve(data.category)

        article = Article(
            title=title,
            content=data.content.strip(),
            status=status,
            author_id=user.id,
            category_id=category.id,
            comments_count=0,
            likes_count=0,
        )
        self.db.add(article)
        try:
            await self.db.flush()
            if status == ArticleStatus.PUBLISHED:
                await self.fanout.article_published(article, user)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            self.fanout.discard_pending()
            raise Conflict("An article with this title already exists")
        await self.fanout.invalidate_pending()

        logger.info("Article %s created by user %s as %s", article.id, user.id, status.value)
        return to_response(article, user.username, category.name)

    async def update(self, article_id: int, data: ArticleUpdate, user: User) -> ArticleResponse:
        article = await self.db.get(Article, article_id)
        if article is None:
            raise NotFound("Article not found")
        if article.author_id != user.id:
            raise Forbidden("Only the author can edit this article")

        ensure_valid(validate_article_update(data.title, data.content, data.category, data.status))
        new_status = article.status if is_blank(data.status) else parse_status(data.status)

        if article.status == ArticleStatus.PUBLISHED and new_status == ArticleStatus.DRAFT:
            raise BusinessRuleViolation("A published article cannot be reverted to draft")

        title = None
        if not is_blank(data.title):
            title = data.title.strip()
            if title.lower() != article.title.lower():
                await self._ensure_title_free(user.id, title)

        # resolve before touching the article: a lost race rolls back the savepoint
        if is_blank(data.category):
            category = await self.db.get(Category, article.category_id)
        else:
            category = await self.categories.resolve(data.category)

        if title:
            article.title = title
        if not is_blank(data.content):
            article.content = data.content.strip()
        article.category_id = category.id

        publishing = article.status == ArticleStatus.DRAFT and new_status == ArticleStatus.PUBLISHED
        article.status = new_status

        try:
            await self.db.flush()
            if publishing:
                await self.fanout.article_published(article, user)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            self.fanout.discard_pending()
            raise Conflict("An article with this title already exists")
        await self.fanout.invalidate_pending()

        await self.cache.invalidate_article(article.id)
        if publishing:
            logger.info("Article %s published by user %s", article.id, user.id)
        return to_response(article, user.username, category.name)

    async def delete(self, article_id: int, user: User) -> None:
        article = await self.db.get(Article, article_id)
        if article is None:
            raise NotFound("Article not found")
        if article.author_id != user.id:
            raise Forbidden("Only the author can delete this article")

        try:
            await self.db.delete(article)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.error("Integrity failure deleting article %s", article_id)
            raise IntegrityViolation()

        await self.cache.invalidate_article(article_id)
        logger.info("Article %s deleted by user %s", article_id, user.id)

    async def find_by_id(self, article_id: int, viewer: Optional[User] = None) -> ArticleResponse:
        cached = await self.cache.get_cached_article(article_id)
        if cached:
            return ArticleResponse(**cached)

        article = await load_visible_article(self.db, article_id, viewer)
        author = await self.db.get(User, article.author_id)
        category = await self.db.get(Category, article.category_id)
        response = to_response(article, author.username, category.name)

        if article.status == ArticleStatus.PUBLISHED:
            await self.cache.set_cached_article(article_id, response.model_dump(mode="json"))
        return response

    async def list_published(self, page: int = 0, size: int = 20) -> Page[ArticleResponse]:
        return await self._page(Article.status == ArticleStatus.PUBLISHED, page, size)

    async def list_drafts(self, user: User, page: int = 0, size: int = 20) -> Page[ArticleResponse]:
        return await self._page(
            (Article.status == ArticleStatus.DRAFT) & (Article.author_id == user.id), page, size
        )

    async def _ensure_title_free(self, author_id: int, title: str) -> None:
        existing = await self.db.scalar(
            select(Article.id).where(
                Article.author_id == author_id,
                func.lower(Article.title) == title.lower(),
            )
        )
        if existing is not None:
            raise Conflict("An article with this title already exists")

    async def _page(self, condition, page: int, size: int) -> Page[ArticleResponse]:
        total = await self.db.scalar(select(func.count()).select_from(Article).where(condition))
        result = await self.db.execute(
            select(Article, User.username, Category.name)
            .join(User, User.id == Article.author_id)
            .join(Category, Category.id == Article.category_id)
            .where(condition)
            .order_by(Article.created_at.desc(), Article.id.desc())
            .offset(page * size)
            .limit(size)
        )
        items = [to_response(article, username, name) for article, username, name in result.all()]
        return Page(items=items, page=page, size=size, total=total or 0)
