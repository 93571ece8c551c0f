from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from inkpress.api.deps import Pagination, get_comment_service, get_current_user, get_optional_user
from inkpress.models import User
from inkpress.schemas import CommentCreate, CommentResponse, Page, ThreadedComment
from inkpress.services.comments import CommentService

router = APIRouter(tags=["Comments"])


@router.post(
    "/articles/{article_id}/comments",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_comment(
    article_id: int,
    request: CommentCreate,
    user: User = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    """Comment on an article, or reply to a comment when parent_id is given."""
    return await comments.create(article_id, request, user)


@router.get("/articles/{article_id}/comments", response_model=Page[CommentResponse])
async def list_comments(
    article_id: int,
    paging: Pagination = Depends(),
    viewer: Optional[User] = Depends(get_optional_user),
    comments: CommentService = Depends(get_comment_service),
):
    return await comments.list_flat(article_id, viewer, paging.page, paging.size)


@router.get("/articles/{article_id}/comments/threaded", response_model=Page[ThreadedComment])
async def list_comment_threads(
    article_id: int,
    paging: Pagination = Depends(),
    viewer: Optional[User] = Depends(get_optional_user),
    comments: CommentService = Depends(get_comment_service),
):
    """Root comments are paged; each carries its whole reply tree."""
    return await comments.list_threaded(article_id, viewer, paging.page, paging.size)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment(
    comment_id: int,
    user: User = Depends(get_current_user),
    comments: CommentService = Depends(get_comment_service),
):
    await comments.delete(comment_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
