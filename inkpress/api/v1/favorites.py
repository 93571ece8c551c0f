from fastapi import APIRouter, Depends, Response, status

from inkpress.api.deps import Pagination, get_current_user, get_favorite_service
from inkpress.models import User
from inkpress.schemas import ArticleResponse, FavoriteResponse, FavoriteStatus, Page
from inkpress.services.favorites import FavoriteService

router = APIRouter(tags=["Favorites"])


@router.post(
    "/articles/{article_id}/favorite",
    response_model=FavoriteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_favorite(
    article_id: int,
    user: User = Depends(get_current_user),
    favorites: FavoriteService = Depends(get_favorite_service),
):
    return await favorites.add(article_id, user)


@router.delete("/articles/{article_id}/favorite", status_code=status.HTTP_204_NO_CONTENT)
async def remove_favorite(
    article_id: int,
    user: User = Depends(get_current_user),
    favorites: FavoriteService = Depends(get_favorite_service),
):
    await favorites.remove(article_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/articles/{article_id}/favorite", response_model=FavoriteStatus)
async def favorite_status(
    article_id: int,
    user: User = Depends(get_current_user),
    favorites: FavoriteService = Depends(get_favorite_service),
):
    return await favorites.is_favorite(article_id, user)


@router.get("/users/me/favorites", response_model=Page[ArticleResponse])
async def my_favorites(
    paging: Pagination = Depends(),
    user: User = Depends(get_current_user),
    favorites: FavoriteService = Depends(get_favorite_service),
):
    return await favorites.list_for_user(user, paging.page, paging.size)
