from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from .. import services
from ..repositories import Repository, get_repository
from ..schemas import LoginInput, UserCreate, UserOut

router = APIRouter(
    prefix="/api/v1/users",
    tags=["users"],
)


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create User",
    responses={409: {"description": "Email already registered"}},
)
def create_user(payload: UserCreate, repo: Repository = Depends(get_repository)) -> UserOut:
    return UserOut(**services.create_user(repo, payload))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.post(
    "/authenticate",
    response_model=Optional[UserOut],
    summary="Authenticate User",
    description=(
        "Look a user up by email. Google logins provision unknown users and refresh "
        "name/avatar of known ones; email logins of unknown users return null."
    ),
)
def authenticate_user(payload: LoginInput, repo: Repository = Depends(get_repository)) -> Optional[UserOut]:
    user = services.authenticate_user(repo, payload)
    return UserOut(**user) if user else None  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/{user_id}",
    response_model=UserOut,
    summary="Get User",
    responses={404: {"description": "User not found"}},
)
def get_user(user_id: str, repo: Repository = Depends(get_repository)) -> UserOut:
    return UserOut(**services.get_user(repo, user_id))  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get("/{user_id}/is-admin", summary="Verify Admin")
def verify_admin(user_id: str, repo: Repository = Depends(get_repository)) -> dict:
    """Return {"is_admin": bool}; unknown users are simply not admins."""
    return {"is_admin": services.verify_admin(repo, user_id)}
