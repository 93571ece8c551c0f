import logging
from typing import List, Optional

import redis.asyncio as redis
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.config import get_settings
from inkpress.exceptions import BusinessRuleViolation, Conflict, IntegrityViolation, NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, Category
from inkpress.schemas import CategoryResponse, Page
from inkpress.services.cache import CacheService
from inkpress.validators import ensure_valid, validate_category_name

logger = logging.getLogger(__name__)
settings = get_settings()


def normalize_category_name(name: str) -> str:
    return name.strip().upper()


@log_service_calls
class CategoryResolver:
    """
    Idempotent get-or-create for categories.

    Safe under concurrent callers: the insert runs in a SAVEPOINT, and a
    unique-constraint failure means someone else won the race, so the row is
    re-read instead of the error being propagated. The caller's transaction
    is left intact either way.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_name(self, name: str) -> Optional[Category]:
        result = await self.db.execute(
            select(Category).where(Category.name == normalize_category_name(name))
        )
        return result.scalar_one_or_none()

    async def resolve(self, name: str) -> Category:
        normalized = normalize_category_name(name)

        category = await self.find_by_name(normalized)
        if category is not None:
            return category

        logger.debug("Creating category '%s'", normalized)
        try:
            async with self.db.begin_nested():
                category = Category(name=normalized)
                self.db.add(category)
                await self.db.flush()
            return category
        except IntegrityError:
            logger.warning("Category '%s' was created concurrently, re-reading", normalized)

        category = await self.find_by_name(normalized)
        if category is None:
            raise IntegrityViolation(f"Failed to resolve category '{normalized}'")
        return category

    async def ensure_default(self) -> Category:
        """Resolve the well-known fallback category, creating it if needed."""
        return await self.resolve(settings.DEFAULT_CATEGORY_NAME)


@log_service_calls
class CategoryService:
    """
    Category administration with default-category protection.

    Cached article views carry the category name, so renames and deletes
    drop the views of every article in the category after committing.
    """

    def __init__(self, db: AsyncSession, redis_client: redis.Redis):
        self.db = db
        self.cache = CacheService(redis_client)
        self.resolver = CategoryResolver(db)

    async def create(self, name: str) -> CategoryResponse:
        ensure_valid(validate_category_name(name))
        normalized = normalize_category_name(name)

        if await self.resolver.find_by_name(normalized) is not None:
            raise Conflict(f"Category '{normalized}' already exists")

        category = Category(name=normalized)
        self.db.add(category)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict(f"Category '{normalized}' already exists")

        logger.info("Category created id=%s name=%s", category.id, category.name)
        return CategoryResponse.model_validate(category)

    async def update(self, category_id: int, name: str) -> CategoryResponse:
        ensure_valid(validate_category_name(name))
        category = await self._get(category_id)
        normalized = normalize_category_name(name)

        if category.name == normalized:
            return CategoryResponse.model_validate(category)
        if category.name == normalize_category_name(settings.DEFAULT_CATEGORY_NAME):
            raise BusinessRuleViolation("The default category cannot be renamed")
        if await self.resolver.find_by_name(normalized) is not None:
            raise Conflict(f"Category '{normalized}' already exists")

        article_ids = await self._article_ids(category.id)
        category.name = normalized
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict(f"Category '{normalized}' already exists")

        await self.cache.invalidate_articles(article_ids)
        return CategoryResponse.model_validate(category)

    async def delete(self, category_id: int) -> int:
        """Delete a category, moving its articles to the default one. Returns the number moved."""
        category = await self._get(category_id)
        default = await self.resolver.ensure_default()

        if default.id == category.id:
            raise BusinessRuleViolation("The default category cannot be deleted")

        article_ids = await self._article_ids(category.id)
        result = await self.db.execute(
            update(Article)
            .where(Article.category_id == category.id)
            .values(category_id=default.id)
            .execution_options(synchronize_session="fetch")
        )
        moved = result.rowcount
        logger.info("Reassigning %s articles from category %s to %s", moved, category.name, default.name)

        try:
            await self.db.delete(category)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            logger.error("Integrity failure deleting category id=%s", category_id)
            raise IntegrityViolation()

        await self.cache.invalidate_articles(article_ids)
        return moved

    async def get(self, category_id: int) -> CategoryResponse:
        return CategoryResponse.model_validate(await self._get(category_id))

    async def list(self, page: int = 0, size: int = 20) -> Page[CategoryResponse]:
        total = await self.db.scalar(select(func.count()).select_from(Category))
        result = await self.db.execute(
            select(Category).order_by(Category.name).offset(page * size).limit(size)
        )
        items = [CategoryResponse.model_validate(c) for c in result.scalars().all()]
        return Page(items=items, page=page, size=size, total=total or 0)

    async def _article_ids(self, category_id: int) -> List[int]:
        result = await self.db.execute(select(Article.id).where(Article.category_id == category_id))
        return list(result.scalars().all())

    async def _get(self, category_id: int) -> Category:
        category = await self.db.get(Category, category_id)
        if category is None:
            raise NotFound("Category not found")
        return category
