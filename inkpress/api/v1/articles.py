from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from inkpress.api.deps import Pagination, get_article_service, get_current_user, get_optional_user
from inkpress.models import User
from inkpress.schemas import ArticleCreate, ArticleResponse, ArticleUpdate, Page
from inkpress.services.articles import ArticleLifecycle

router = APIRouter(prefix="/articles", tags=["Articles"])


@router.post("", response_model=ArticleResponse, status_code=status.HTTP_201_CREATED)
async def create_article(
    request: ArticleCreate,
    user: User = Depends(get_current_user),
    articles: ArticleLifecycle = Depends(get_article_service),
):
    """Create an article. Creating it as PUBLISHED notifies the author's followers."""
    return await articles.create(request, user)


@router.get("", response_model=Page[ArticleResponse])
async def list_published(
    paging: Pagination = Depends(),
    articles: ArticleLifecycle = Depends(get_article_service),
):
    return await articles.list_published(paging.page, paging.size)


@router.get("/drafts", response_model=Page[ArticleResponse])
async def list_my_drafts(
    paging: Pagination = Depends(),
    user: User = Depends(get_current_user),
    articles: ArticleLifecycle = Depends(get_article_service),
):
    return await articles.list_drafts(user, paging.page, paging.size)


@router.get("/{article_id}", response_model=ArticleResponse)
async def get_article(
    article_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    articles: ArticleLifecycle = Depends(get_article_service),
):
    """Published articles are public; drafts are visible to their author only."""
    return await articles.find_by_id(article_id, viewer)


@router.put("/{article_id}", response_model=ArticleResponse)
async def update_article(
    article_id: int,
    request: ArticleUpdate,
    user: User = Depends(get_current_user),
    articles: ArticleLifecycle = Depends(get_article_service),
):
    """
    Patch an article. Blank fields are left unchanged.
    DRAFT -> PUBLISHED notifies followers; PUBLISHED -> DRAFT is rejected.
    """
    return await articles.update(article_id, request, user)


@router.delete("/{article_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_article(
    article_id: int,
    user: User = Depends(get_current_user),
    articles: ArticleLifecycle = Depends(get_article_service),
):
    await articles.delete(article_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
