import pytest
from sqlalchemy import func, select

from inkpress.exceptions import BusinessRuleViolation, Conflict, NotFound, ValidationFailed
from inkpress.models import Article, Category
from inkpress.services.articles import ArticleLifecycle
from inkpress.services.categories import CategoryResolver, CategoryService
from tests.helpers import article_data


async def count_categories(db):
    return await db.scalar(select(func.count()).select_from(Category))


class TestCategoryResolver:
    """Idempotent get-or-create"""

    async def test_resolve_normalizes_name(self, db):
        category = await CategoryResolver(db).resolve("  science ")
        await db.commit()

        assert category.name == "SCIENCE"

    async def test_resolve_is_idempotent(self, db):
        resolver = CategoryResolver(db)
        first = await resolver.resolve("Tech")
        second = await resolver.resolve("TECH")
        third = await resolver.resolve("tech ")
        await db.commit()

        assert first.id == second.id == third.id
        assert await count_categories(db) == 1

    async def test_resolve_recovers_when_another_writer_wins(self, db, monkeypatch):
        """The insert loses the race; the winner's row is returned instead of an error"""
        db.add(Category(name="TECH"))
        await db.commit()

        resolver = CategoryResolver(db)
        real_find = resolver.find_by_name
        lookups = []

        async def racing_find(name):
            lookups.append(name)
            if len(lookups) == 1:
                return None
            return await real_find(name)

        monkeypatch.setattr(resolver, "find_by_name", racing_find)

        category = await resolver.resolve("tech")
        await db.commit()

        assert category.name == "TECH"
        assert len(lookups) == 2
        assert await count_categories(db) == 1

    async def test_failed_race_keeps_outer_transaction(self, db, monkeypatch):
        """A lost race must not roll back work already done in the same transaction"""
        db.add(Category(name="TECH"))
        await db.commit()

        pending = Category(name="PENDING")
        db.add(pending)
        await db.flush()

        resolver = CategoryResolver(db)
        real_find = resolver.find_by_name
        calls = []

        async def racing_find(name):
            calls.append(name)
            return None if len(calls) == 1 else await real_find(name)

        monkeypatch.setattr(resolver, "find_by_name", racing_find)
        await resolver.resolve("tech")
        await db.commit()

        names = set((await db.execute(select(Category.name))).scalars().all())
        assert names == {"TECH", "PENDING"}

    async def test_ensure_default_creates_once(self, db):
        resolver = CategoryResolver(db)
        first = await resolver.ensure_default()
        second = await resolver.ensure_default()
        await db.commit()

        assert first.id == second.id
        assert first.name == "UNCATEGORIZED"


class TestCategoryService:
    async def test_create_and_duplicate(self, db, redis_client):
        service = CategoryService(db, redis_client)
        created = await service.create("design")

        assert created.name == "DESIGN"
        with pytest.raises(Conflict):
            await service.create("Design")

    async def test_create_rejects_short_name(self, db, redis_client):
        with pytest.raises(ValidationFailed) as exc_info:
            await CategoryService(db, redis_client).create("ab")

        assert exc_info.value.errors[0]["field"] == "name"

    async def test_update_renames(self, db, redis_client):
        service = CategoryService(db, redis_client)
        created = await service.create("design")

        renamed = await service.update(created.id, "architecture")

        assert renamed.name == "ARCHITECTURE"

    async def test_update_to_existing_name_conflicts(self, db, redis_client):
        service = CategoryService(db, redis_client)
        await service.create("design")
        other = await service.create("music")

        with pytest.raises(Conflict):
            await service.update(other.id, "DESIGN")

    async def test_update_missing_category(self, db, redis_client):
        with pytest.raises(NotFound):
            await CategoryService(db, redis_client).update(999, "anything")

    async def test_delete_reassigns_articles_to_default(self, db, redis_client, make_user):
        author = await make_user()
        article = await ArticleLifecycle(db, redis_client).create(article_data(category="music"), author)
        service = CategoryService(db, redis_client)

        moved = await service.delete(article.category_id)

        default = await CategoryResolver(db).ensure_default()
        stored = await db.get(Article, article.id)
        await db.refresh(stored)
        assert moved == 1
        assert stored.category_id == default.id
        assert await CategoryResolver(db).find_by_name("music") is None

    async def test_default_category_cannot_be_deleted(self, db, redis_client):
        default = await CategoryResolver(db).ensure_default()
        await db.commit()

        with pytest.raises(BusinessRuleViolation):
            await CategoryService(db, redis_client).delete(default.id)

    async def test_delete_missing_category(self, db, redis_client):
        with pytest.raises(NotFound):
            await CategoryService(db, redis_client).delete(12345)

    async def test_list_is_paged_by_name(self, db, redis_client):
        service = CategoryService(db, redis_client)
        for name in ("zeta", "alpha", "gamma"):
            await service.create(name)

        page = await service.list(page=0, size=2)

        assert page.total == 3
        assert [c.name for c in page.items] == ["ALPHA", "GAMMA"]

    async def test_delete_refreshes_cached_article_view(self, db, redis_client, make_user):
        author = await make_user()
        lifecycle = ArticleLifecycle(db, redis_client)
        article = await lifecycle.create(article_data(category="tech", status="PUBLISHED"), author)
        assert (await lifecycle.find_by_id(article.id)).category_name == "TECH"
        assert await redis_client.exists(f"article:{article.id}")

        await CategoryService(db, redis_client).delete(article.category_id)

        assert not await redis_client.exists(f"article:{article.id}")
        default = await CategoryResolver(db).ensure_default()
        view = await lifecycle.find_by_id(article.id)
        assert view.category_name == "UNCATEGORIZED"
        assert view.category_id == default.id

    async def test_rename_refreshes_cached_article_view(self, db, redis_client, make_user):
        author = await make_user()
        lifecycle = ArticleLifecycle(db, redis_client)
        article = await lifecycle.create(article_data(category="tech", status="PUBLISHED"), author)
        await lifecycle.find_by_id(article.id)

        await CategoryService(db, redis_client).update(article.category_id, "technology")

        assert (await lifecycle.find_by_id(article.id)).category_name == "TECHNOLOGY"
