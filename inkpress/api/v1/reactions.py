from typing import Optional

from fastapi import APIRouter, Depends, Response, status

from inkpress.api.deps import Pagination, get_current_user, get_optional_user, get_reaction_service
from inkpress.models import User
from inkpress.schemas import Page, ReactionCreate, ReactionResponse, ReactionStats
from inkpress.services.reactions import ReactionService

router = APIRouter(tags=["Reactions"])


@router.put("/articles/{article_id}/reactions", response_model=ReactionResponse)
async def react(
    article_id: int,
    request: ReactionCreate,
    user: User = Depends(get_current_user),
    reactions: ReactionService = Depends(get_reaction_service),
):
    """Add a reaction, or change the type of the existing one."""
    return await reactions.add_or_update(article_id, request.type, user)


@router.delete("/articles/{article_id}/reactions", status_code=status.HTTP_204_NO_CONTENT)
async def remove_reaction(
    article_id: int,
    user: User = Depends(get_current_user),
    reactions: ReactionService = Depends(get_reaction_service),
):
    await reactions.remove(article_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/articles/{article_id}/reactions", response_model=Page[ReactionResponse])
async def list_reactions(
    article_id: int,
    paging: Pagination = Depends(),
    viewer: Optional[User] = Depends(get_optional_user),
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.list_for_article(article_id, viewer, paging.page, paging.size)


@router.get("/articles/{article_id}/reactions/stats", response_model=ReactionStats)
async def reaction_stats(
    article_id: int,
    viewer: Optional[User] = Depends(get_optional_user),
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.stats(article_id, viewer)


@router.get("/articles/{article_id}/reactions/me", response_model=Optional[ReactionResponse])
async def my_reaction(
    article_id: int,
    user: User = Depends(get_current_user),
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.user_reaction(article_id, user)


@router.get("/users/me/reactions", response_model=Page[ReactionResponse])
async def my_reactions(
    paging: Pagination = Depends(),
    user: User = Depends(get_current_user),
    reactions: ReactionService = Depends(get_reaction_service),
):
    return await reactions.list_for_user(user, paging.page, paging.size)
