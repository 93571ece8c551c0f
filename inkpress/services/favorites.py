from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from inkpress.exceptions import BusinessRuleViolation, Conflict, NotFound
from inkpress.logging_setup import log_service_calls
from inkpress.models import Article, ArticleStatus, Category, Favorite, User
from inkpress.schemas import ArticleResponse, FavoriteResponse, FavoriteStatus, Page
from inkpress.services.articles import to_response


@log_service_calls
class FavoriteService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, article_id: int, user: User) -> FavoriteResponse:
        article = await self.db.get(Article, article_id)
        if article is None:
            raise NotFound("Article not found")
        if article.status != ArticleStatus.PUBLISHED:
            raise BusinessRuleViolation("Only published articles can be favorited")
        if await self._find(article_id, user.id) is not None:
            raise Conflict("Article is already in favorites")

        favorite = Favorite(user_id=user.id, article_id=article_id)
        self.db.add(favorite)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise Conflict("Article is already in favorites")
        return FavoriteResponse.model_validate(favorite)

    async def remove(self, article_id: int, user: User) -> None:
        favorite = await self._find(article_id, user.id)
        if favorite is None:
            raise NotFound("Favorite not found")
        await self.db.delete(favorite)
        await self.db.commit()

    async def list_for_user(self, user: User, page: int = 0, size: int = 20) -> Page[ArticleResponse]:
        """The user's favorites, newest first. Articles still in draft are left out."""
        condition = (Favorite.user_id == user.id) & (Article.status == ArticleStatus.PUBLISHED)

        total = await self.db.scalar(
            select(func.count())
            .select_from(Favorite)
            .join(Article, Article.id == Favorite.article_id)
            .where(condition)
        )
        result = await self.db.execute(
            select(Article, User.username, Category.name)
            .join(Favorite, Favorite.article_id == Article.id)
            .join(User, User.id == Article.author_id)
            .join(Category, Category.id == Article.category_id)
            .where(condition)
            .order_by(Favorite.created_at.desc(), Favorite.id.desc())
            .offset(page * size)
            .limit(size)
        )
        items = [to_response(article, username, name) for article, username, name in result.all()]
        return Page(items=items, page=page, size=size, total=total or 0)

    async def is_favorite(self, article_id: int, user: User) -> FavoriteStatus:
        return FavoriteStatus(article_id=article_id, is_favorite=await self._find(article_id, user.id) is not None)

    async def _find(self, article_id: int, user_id: int):
        result = await self.db.execute(
            select(Favorite).where(Favorite.article_id == article_id, Favorite.user_id == user_id)
        )
        return result.scalar_one_or_none()
