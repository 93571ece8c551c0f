from fastapi import APIRouter, Depends, Response, status

from inkpress.api.deps import Pagination, get_category_service, get_current_user
from inkpress.models import User
from inkpress.schemas import CategoryCreate, CategoryResponse, Page
from inkpress.services.categories import CategoryService

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=Page[CategoryResponse])
async def list_categories(
    paging: Pagination = Depends(),
    categories: CategoryService = Depends(get_category_service),
):
    return await categories.list(paging.page, paging.size)


@router.get("/{category_id}", response_model=CategoryResponse)
async def get_category(
    category_id: int,
    categories: CategoryService = Depends(get_category_service),
):
    return await categories.get(category_id)


@router.post("", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    request: CategoryCreate,
    user: User = Depends(get_current_user),
    categories: CategoryService = Depends(get_category_service),
):
    return await categories.create(request.name)


@router.put("/{category_id}", response_model=CategoryResponse)
async def rename_category(
    category_id: int,
    request: CategoryCreate,
    user: User = Depends(get_current_user),
    categories: CategoryService = Depends(get_category_service),
):
    return await categories.update(category_id, request.name)


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: int,
    user: User = Depends(get_current_user),
    categories: CategoryService = Depends(get_category_service),
):
    """Articles of the deleted category move to the default category."""
    await categories.delete(category_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
