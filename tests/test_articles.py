import pytest
from sqlalchemy import func, select

from inkpress.exceptions import BusinessRuleViolation, Conflict, Forbidden, NotFound, ValidationFailed
from inkpress.models import ArticleStatus, Comment, Notification, Reaction
from inkpress.schemas import ArticleUpdate, CommentCreate
from inkpress.services.articles import ArticleLifecycle
from inkpress.services.comments import CommentService
from inkpress.services.reactions import ReactionService
from tests.helpers import article_data


async def count_notifications(db, **filters):
    query = select(func.count()).select_from(Notification)
    for name, value in filters.items():
        query = query.where(getattr(Notification, name) == value)
    return await db.scalar(query)


class TestCreate:
    async def test_create_draft(self, db, redis_client, make_user):
        author = await make_user("alice")

        article = await ArticleLifecycle(db, redis_client).create(article_data(), author)

        assert article.status == ArticleStatus.DRAFT
        assert article.comments_count == 0
        assert article.likes_count == 0
        assert article.author_username == "alice"
        assert article.category_name == "TECH"

    async def test_status_is_case_insensitive(self, db, redis_client, make_user):
        author = await make_user()

        article = await ArticleLifecycle(db, redis_client).create(article_data(status="published"), author)

        assert article.status == ArticleStatus.PUBLISHED

    async def test_unknown_status_is_rejected(self, db, redis_client, make_user):
        author = await make_user()

        with pytest.raises(ValidationFailed) as exc_info:
            await ArticleLifecycle(db, redis_client).create(article_data(status="ARCHIVED"), author)

        assert [e["field"] for e in exc_info.value.errors] == ["status"]

    async def test_all_field_errors_reported_together(self, db, redis_client, make_user):
        author = await make_user()
        data = article_data(title="ab", content="short", category=" ", status="")

        with pytest.raises(ValidationFailed) as exc_info:
            await ArticleLifecycle(db, redis_client).create(data, author)

        fields = {e["field"] for e in exc_info.value.errors}
        assert fields == {"title", "content", "category", "status"}

    async def test_title_unique_per_author_ignoring_case(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        await service.create(article_data(title="Hello World"), author)

        with pytest.raises(Conflict):
            await service.create(article_data(title="hello world"), author)

    async def test_same_title_allowed_for_different_authors(self, db, redis_client, make_user):
        alice = await make_user()
        bob = await make_user()
        service = ArticleLifecycle(db, redis_client)

        await service.create(article_data(title="Hello World"), alice)
        other = await service.create(article_data(title="Hello World"), bob)

        assert other.author_id == bob.id

    async def test_create_published_notifies_followers(self, db, redis_client, make_user, make_follow):
        author = await make_user("alice")
        followers = [await make_user() for _ in range(3)]
        for follower in followers:
            await make_follow(follower, author)

        article = await ArticleLifecycle(db, redis_client).create(
            article_data(title="Fresh", status="PUBLISHED"), author
        )

        assert await count_notifications(db, article_id=article.id) == 3
        for follower in followers:
            assert await count_notifications(db, recipient_id=follower.id) == 1

    async def test_create_draft_notifies_nobody(self, db, redis_client, make_user, make_follow):
        author = await make_user()
        await make_follow(await make_user(), author)

        await ArticleLifecycle(db, redis_client).create(article_data(), author)

        assert await count_notifications(db) == 0


class TestUpdate:
    async def test_publish_draft_fans_out(self, db, redis_client, make_user, make_follow):
        author = await make_user("alice")
        follower = await make_user("bob")
        await make_follow(follower, author)
        service = ArticleLifecycle(db, redis_client)
        draft = await service.create(article_data(title="Later"), author)

        published = await service.update(draft.id, ArticleUpdate(status="PUBLISHED"), author)

        assert published.status == ArticleStatus.PUBLISHED
        message = await db.scalar(select(Notification.message).where(Notification.recipient_id == follower.id))
        assert message == "alice published a new article: Later"

    async def test_published_cannot_revert_to_draft(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(status="PUBLISHED"), author)

        with pytest.raises(BusinessRuleViolation):
            await service.update(article.id, ArticleUpdate(status="DRAFT"), author)

    async def test_editing_published_article_does_not_notify_again(
        self, db, redis_client, make_user, make_follow
    ):
        author = await make_user()
        await make_follow(await make_user(), author)
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(status="PUBLISHED"), author)

        await service.update(article.id, ArticleUpdate(content="Edited content, still long."), author)

        assert await count_notifications(db) == 1

    async def test_blank_fields_mean_no_change(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(title="Keep me"), author)

        updated = await service.update(
            article.id, ArticleUpdate(title="  ", content=None, category="", status=None), author
        )

        assert updated.title == "Keep me"
        assert updated.category_name == "TECH"
        assert updated.status == ArticleStatus.DRAFT

    async def test_changing_case_of_own_title_is_allowed(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(title="hello world"), author)

        updated = await service.update(article.id, ArticleUpdate(title="Hello World"), author)

        assert updated.title == "Hello World"

    async def test_title_taken_by_another_article_conflicts(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        await service.create(article_data(title="First"), author)
        second = await service.create(article_data(title="Second"), author)

        with pytest.raises(Conflict):
            await service.update(second.id, ArticleUpdate(title="FIRST"), author)

    async def test_category_change_resolves_new_category(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(), author)

        updated = await service.update(article.id, ArticleUpdate(category="cooking"), author)

        assert updated.category_name == "COOKING"

    async def test_only_author_can_update(self, db, redis_client, make_user):
        author = await make_user()
        stranger = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(), author)

        with pytest.raises(Forbidden):
            await service.update(article.id, ArticleUpdate(title="Mine now"), stranger)

    async def test_update_missing_article(self, db, redis_client, make_user):
        with pytest.raises(NotFound):
            await ArticleLifecycle(db, redis_client).update(404, ArticleUpdate(), await make_user())


class TestDelete:
    async def test_delete_cascades_children(self, db, redis_client, make_user, make_follow):
        author = await make_user()
        reader = await make_user()
        await make_follow(reader, author)
        article = await ArticleLifecycle(db, redis_client).create(article_data(status="PUBLISHED"), author)
        await CommentService(db, redis_client).create(article.id, CommentCreate(content="Nice"), reader)
        await ReactionService(db, redis_client).add_or_update(article.id, "LIKE", reader)

        await ArticleLifecycle(db, redis_client).delete(article.id, author)

        for model in (Comment, Reaction, Notification):
            remaining = await db.scalar(
                select(func.count()).select_from(model).where(model.article_id == article.id)
            )
            assert remaining == 0

    async def test_only_author_can_delete(self, db, redis_client, make_user):
        author = await make_user()
        stranger = await make_user()
        article = await ArticleLifecycle(db, redis_client).create(article_data(), author)

        with pytest.raises(Forbidden):
            await ArticleLifecycle(db, redis_client).delete(article.id, stranger)

    async def test_delete_missing(self, db, redis_client, make_user):
        with pytest.raises(NotFound):
            await ArticleLifecycle(db, redis_client).delete(1, await make_user())


class TestVisibility:
    async def test_draft_hidden_from_others(self, db, redis_client, make_user):
        author = await make_user()
        stranger = await make_user()
        service = ArticleLifecycle(db, redis_client)
        draft = await service.create(article_data(), author)

        assert (await service.find_by_id(draft.id, author)).id == draft.id
        with pytest.raises(NotFound):
            await service.find_by_id(draft.id, stranger)
        with pytest.raises(NotFound):
            await service.find_by_id(draft.id, None)

    async def test_published_visible_to_anonymous_and_cached(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(status="PUBLISHED"), author)

        found = await service.find_by_id(article.id)

        assert found.title == article.title
        assert await redis_client.get(f"article:{article.id}") is not None

    async def test_update_invalidates_cache(self, db, redis_client, make_user):
        author = await make_user()
        service = ArticleLifecycle(db, redis_client)
        article = await service.create(article_data(status="PUBLISHED"), author)
        await service.find_by_id(article.id)

        await service.update(article.id, ArticleUpdate(title="Renamed"), author)

        assert await redis_client.get(f"article:{article.id}") is None
        assert (await service.find_by_id(article.id)).title == "Renamed"

    async def test_listings(self, db, redis_client, make_user):
        author = await make_user()
        other = await make_user()
        service = ArticleLifecycle(db, redis_client)
        await service.create(article_data(title="Draft one"), author)
        await service.create(article_data(title="Public one", status="PUBLISHED"), author)
        await service.create(article_data(title="Other draft"), other)

        published = await service.list_published()
        drafts = await service.list_drafts(author)

        assert [a.title for a in published.items] == ["Public one"]
        assert [a.title for a in drafts.items] == ["Draft one"]
        assert drafts.total == 1
