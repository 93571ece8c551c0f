from fastapi import APIRouter, Depends, Response, status

from inkpress.api.deps import Pagination, get_current_user, get_follow_service
from inkpress.models import User
from inkpress.schemas import FollowResponse, Page, UserProfile, UserSummary
from inkpress.services.follows import FollowService

router = APIRouter(prefix="/users", tags=["Follows"])


@router.post("/{user_id}/follow", response_model=FollowResponse, status_code=status.HTTP_201_CREATED)
async def follow_user(
    user_id: int,
    user: User = Depends(get_current_user),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.follow(user_id, user)


@router.delete("/{user_id}/follow", status_code=status.HTTP_204_NO_CONTENT)
async def unfollow_user(
    user_id: int,
    user: User = Depends(get_current_user),
    follows: FollowService = Depends(get_follow_service),
):
    await follows.unfollow(user_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/followers", response_model=Page[UserSummary])
async def list_followers(
    user_id: int,
    paging: Pagination = Depends(),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.followers(user_id, paging.page, paging.size)


@router.get("/{user_id}/following", response_model=Page[UserSummary])
async def list_following(
    user_id: int,
    paging: Pagination = Depends(),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.following(user_id, paging.page, paging.size)


@router.get("/{user_id}/profile", response_model=UserProfile)
async def user_profile(
    user_id: int,
    user: User = Depends(get_current_user),
    follows: FollowService = Depends(get_follow_service),
):
    return await follows.profile(user_id, user)
