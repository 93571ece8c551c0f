import pytest
from sqlalchemy import func, select

from inkpress.exceptions import BusinessRuleViolation, Conflict, NotFound
from inkpress.models import Favorite, Notification
from inkpress.schemas import ArticleUpdate
from inkpress.services.articles import ArticleLifecycle
from inkpress.services.favorites import FavoriteService
from inkpress.services.follows import FollowService
from tests.helpers import article_data


class TestFavorites:
    async def test_add_twice_conflicts(self, db, redis_client, make_user):
        author = await make_user()
        reader = await make_user()
        article = await ArticleLifecycle(db, redis_client).create(article_data(status="PUBLISHED"), author)
        service = FavoriteService(db)

        await service.add(article.id, reader)
        with pytest.raises(Conflict):
            await service.add(article.id, reader)

        assert await db.scalar(select(func.count()).select_from(Favorite)) == 1

    async def test_unique_constraint_race_is_conflict(self, db, redis_client, make_user, monkeypatch):
        author = await make_user()
        reader = await make_user()
        article = await ArticleLifecycle(db, redis_client).create(article_data(status="PUBLISHED"), author)
        service = FavoriteService(db)
        await service.add(article.id, reader)

        async def not_found(article_id, user_id):
            return None

        monkeypatch.setattr(service, "_find", not_found)

        with pytest.raises(Conflict):
            await service.add(article.id, reader)

    async def test_draft_cannot_be_favorited(self, db, redis_client, make_user):
        author = await make_user()
        draft = await ArticleLifecycle(db, redis_client).create(article_data(), author)

        with pytest.raises(BusinessRuleViolation):
            await FavoriteService(db).add(draft.id, author)

    async def test_missing_article(self, db, make_user):
        with pytest.raises(NotFound):
            await FavoriteService(db).add(404, await make_user())

    async def test_remove_and_status(self, db, redis_client, make_user):
        author = await make_user()
        reader = await make_user()
        article = await ArticleLifecycle(db, redis_client).create(article_data(status="PUBLISHED"), author)
        service = FavoriteService(db)
        await service.add(article.id, reader)

        assert (await service.is_favorite(article.id, reader)).is_favorite is True
        await service.remove(article.id, reader)
        assert (await service.is_favorite(article.id, reader)).is_favorite is False
        with pytest.raises(NotFound):
            await service.remove(article.id, reader)

    async def test_list_for_user(self, db, redis_client, make_user):
        author = await make_user("writer")
        reader = await make_user()
        lifecycle = ArticleLifecycle(db, redis_client)
        first = await lifecycle.create(article_data(title="First", status="PUBLISHED"), author)
        second = await lifecycle.create(article_data(title="Second", status="PUBLISHED"), author)
        service = FavoriteService(db)
        await service.add(first.id, reader)
        await service.add(second.id, reader)

        page = await service.list_for_user(reader)

        assert page.total == 2
        assert [a.title for a in page.items] == ["Second", "First"]
        assert page.items[0].author_username == "writer"


class TestFollows:
    async def test_follow_and_profile(self, db, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        service = FollowService(db)

        follow = await service.follow(alice.id, bob)
        profile = await service.profile(alice.id, bob)

        assert follow.follower_id == bob.id
        assert profile.follower_count == 1
        assert profile.following_count == 0
        assert profile.is_following is True

    async def test_cannot_follow_self(self, db, make_user):
        alice = await make_user()

        with pytest.raises(BusinessRuleViolation):
            await FollowService(db).follow(alice.id, alice)

    async def test_duplicate_follow_conflicts(self, db, make_user):
        alice = await make_user()
        bob = await make_user()
        service = FollowService(db)
        await service.follow(alice.id, bob)

        with pytest.raises(Conflict):
            await service.follow(alice.id, bob)

    async def test_follow_unknown_user(self, db, make_user):
        with pytest.raises(NotFound):
            await FollowService(db).follow(999, await make_user())

    async def test_unfollow(self, db, make_user):
        alice = await make_user()
        bob = await make_user()
        service = FollowService(db)
        await service.follow(alice.id, bob)

        await service.unfollow(alice.id, bob)

        assert (await service.profile(alice.id, bob)).is_following is False
        with pytest.raises(NotFound):
            await service.unfollow(alice.id, bob)

    async def test_followers_and_following(self, db, make_user):
        alice = await make_user("alice")
        bob = await make_user("bob")
        carol = await make_user("carol")
        service = FollowService(db)
        await service.follow(alice.id, bob)
        await service.follow(alice.id, carol)
        await service.follow(carol.id, bob)

        followers = await service.followers(alice.id)
        following = await service.following(bob.id)

        assert {u.username for u in followers.items} == {"bob", "carol"}
        assert following.total == 2

    async def test_unfollow_does_not_touch_existing_notifications(self, db, redis_client, make_user):
        author = await make_user()
        reader = await make_user()
        service = FollowService(db)
        await service.follow(author.id, reader)
        lifecycle = ArticleLifecycle(db, redis_client)
        draft = await lifecycle.create(article_data(), author)
        await lifecycle.update(draft.id, ArticleUpdate(status="PUBLISHED"), author)

        await service.unfollow(author.id, reader)
        second = await lifecycle.create(article_data(title="After", status="PUBLISHED"), author)

        rows = (await db.execute(select(Notification.article_id))).scalars().all()
        assert rows == [draft.id]
        assert second.id not in rows
