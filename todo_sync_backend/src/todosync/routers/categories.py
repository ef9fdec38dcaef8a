from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, status

from .. import services
from ..auth import get_admin_user_dependency
from ..repositories import Repository, get_repository
from ..schemas import CategoryCreate, CategoryOut, CategoryUpdate

router = APIRouter(
    prefix="/api/v1/categories",
    tags=["categories"],
)

_admin_user = get_admin_user_dependency()

_ADMIN_RESPONSES = {403: {"description": "Admin privileges required"}}


# PUBLIC_INTERFACE
@router.get("/", response_model=List[CategoryOut], summary="List Categories")
def list_categories(repo: Repository = Depends(get_repository)) -> List[CategoryOut]:
    """All categories, newest first."""
    return [CategoryOut(**c) for c in services.list_categories(repo)]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=CategoryOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Category",
    responses={**_ADMIN_RESPONSES, 409: {"description": "Name already taken"}},
)
def create_category(
    payload: CategoryCreate,
    admin_user_id: Optional[str] = Depends(_admin_user),
    repo: Repository = Depends(get_repository),
) -> CategoryOut:
    return CategoryOut(**services.create_category(repo, payload, admin_user_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.patch(
    "/{category_id}",
    response_model=CategoryOut,
    summary="Update Category",
    responses={**_ADMIN_RESPONSES, 404: {"description": "Category not found"}, 409: {"description": "Name already taken"}},
)
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    admin_user_id: Optional[str] = Depends(_admin_user),
    repo: Repository = Depends(get_repository),
) -> CategoryOut:
    return CategoryOut(**services.update_category(repo, category_id, payload, admin_user_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{category_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Category",
    responses={
        **_ADMIN_RESPONSES,
        404: {"description": "Category not found"},
        409: {"description": "Category still assigned to todos"},
    },
)
def delete_category(
    category_id: int,
    admin_user_id: Optional[str] = Depends(_admin_user),
    repo: Repository = Depends(get_repository),
) -> None:
    services.delete_category(repo, category_id, admin_user_id)
    return None
