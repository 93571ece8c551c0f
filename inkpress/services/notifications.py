import logging
from typing import List, Optional

import redis.asyncio as redis
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.config import get_settings
from inkpress.exceptions import NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, Comment, Follow, Notification, User
from inkpress.schemas import MarkAllReadResponse, NotificationResponse, Page, UnreadCount
from inkpress.services.cache import CacheService

logger = logging.getLogger(__name__)
settings = get_settings()


def published_message(author: User, article: Article) -> str:
    return f"{author.username} published a new article: {article.title}"


def comment_message(article: Article) -> str:
    return f'New comment on your article "{article.title}"'


REPLY_MESSAGE = "New reply to your comment"


@log_service_calls
class NotificationFanout:
    """
    Writes notifications as a side effect of publishing and commenting.

    Runs inside the caller's transaction. Every write happens in a SAVEPOINT
    and nothing raised here reaches the caller: a failed delivery is logged
    and the triggering write still commits.

    Recipients collect in ``pending_recipients``; the caller drops their
    cached unread counts with ``invalidate_pending`` after it commits.
    """

    def __init__(self, db: AsyncSession, redis_client: redis.Redis, batch_size: Optional[int] = None):
        self.db = db
        self.cache = CacheService(redis_client)
        self.batch_size = batch_size or settings.FAN_OUT_BATCH_SIZE
        self.pending_recipients: List[int] = []

    async def article_published(self, article: Article, author: User) -> int:
        """Notify every follower of the author. Returns how many notifications were written."""
        message = published_message(author, article)
        delivered = 0
        last_follow_id = 0

        try:
            while True:
                result = await self.db.execute(
                    select(Follow.id, Follow.follower_id)
                    .where(Follow.following_id == author.id, Follow.id > last_follow_id)
                    .order_by(Follow.id)
                    .limit(self.batch_size)
                )
                rows = result.all()
                if not rows:
                    break

                recipients = [row.follower_id for row in rows]
                try:
                    await self._write_batch(article, recipients, message)
                except Exception:
                    logger.exception(
                        "Fan-out for article %s stopped after %s notifications",
                        article.id, delivered,
                    )
                    break

                delivered += len(recipients)
                last_follow_id = rows[-1].id
                self.pending_recipients.extend(recipients)

                if len(rows) < self.batch_size:
                    break
        except Exception:
            logger.exception("Fan-out for article %s failed", article.id)

        logger.info("Article %s published, %s followers notified", article.id, delivered)
        return delivered

    async def comment_added(self, article: Article, comment: Comment) -> bool:
        if article.author_id == comment.author_id:
            return False
        return await self._notify_one(article.author_id, article.id, comment_message(article))

    async def reply_added(self, parent: Comment, reply: Comment) -> bool:
        if parent.author_id == reply.author_id:
            return False
        return await self._notify_one(parent.author_id, reply.article_id, REPLY_MESSAGE)

    async def invalidate_pending(self) -> int:
        """Drop cached unread counts of everyone notified so far. Call after commit."""
        recipients, self.pending_recipients = self.pending_recipients, []
        if not recipients:
            return 0
        try:
            await self.cache.invalidate_unread_counts(recipients)
        except Exception:
            logger.exception("Could not invalidate unread counts for %s recipients", len(recipients))
            return 0
        return len(recipients)

    def discard_pending(self) -> None:
        """Forget recipients whose notifications were rolled back."""
        self.pending_recipients = []

    async def _notify_one(self, recipient_id: int, article_id: int, message: str) -> bool:
        try:
            async with self.db.begin_nested():
                self.db.add(Notification(recipient_id=recipient_id, article_id=article_id, message=message))
                await self.db.flush()
        except Exception:
            logger.exception("Could not notify user %s about article %s", recipient_id, article_id)
            return False
        self.pending_recipients.append(recipient_id)
        return True

    async def _write_batch(self, article: Article, recipients: List[int], message: str) -> None:
        async with self.db.begin_nested():
            self.db.add_all(
                [
                    Notification(recipient_id=recipient_id, article_id=article.id, message=message)
                    for recipient_id in recipients
                ]
            )
            await self.db.flush()


@log_service_calls
class NotificationService:
    """Inbox operations for the current user."""

    def __init__(self, db: AsyncSession, redis_client: redis.Redis):
        self.db = db
        self.cache = CacheService(redis_client)

    async def list(self, user: User, page: int = 0, size: int = 20) -> Page[NotificationResponse]:
        return await self._page(user, page, size, unread_only=False)

    async def list_unread(self, user: User, page: int = 0, size: int = 20) -> Page[NotificationResponse]:
        return await self._page(user, page, size, unread_only=True)

    async def mark_read(self, notification_id: int, user: User) -> NotificationResponse:
        notification = await self.db.get(Notification, notification_id)
        if notification is None or notification.recipient_id != user.id:
            raise NotFound("Notification not found")

        if not notification.is_read:
            notification.is_read = True
            await self.db.commit()
            await self.cache.invalidate_unread_counts([user.id])
        return NotificationResponse.model_validate(notification)

    async def mark_all_read(self, user: User) -> MarkAllReadResponse:
        result = await self.db.execute(
            update(Notification)
            .where(Notification.recipient_id == user.id, Notification.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        await self.cache.invalidate_unread_counts([user.id])
        return MarkAllReadResponse(updated=result.rowcount)

    async def unread_count(self, user: User) -> UnreadCount:
        cached = await self.cache.get_unread_count(user.id)
        if cached is not None:
            return UnreadCount(unread=cached)

        count = await self.db.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.recipient_id == user.id, Notification.is_read.is_(False))
        )
        count = count or 0
        await self.cache.set_unread_count(user.id, count)
        return UnreadCount(unread=count)

    async def _page(self, user: User, page: int, size: int, unread_only: bool) -> Page[NotificationResponse]:
        conditions = [Notification.recipient_id == user.id]
        if unread_only:
            conditions.append(Notification.is_read.is_(False))

        total = await self.db.scalar(select(func.count()).select_from(Notification).where(*conditions))
        result = await self.db.execute(
            select(Notification)
            .where(*conditions)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(page * size)
            .limit(size)
        )
        items = [NotificationResponse.model_validate(n) for n in result.scalars().all()]
        return Page(items=items, page=page, size=size, total=total or 0)
