"""
Service layer for everything around the sync core: users, categories and
single-item todo operations.

Routers stay thin and call these functions; they raise the exceptions in
`errors` and never touch HTTP.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Dict, List, Optional

from .errors import AccessDeniedError, InUseError, NotFoundError
from .models import CategoryEntity, TodoEntity, UserEntity
from .repositories import Repository, TodoQuery
from .schemas import CategoryCreate, CategoryUpdate, LoginInput, TodoCreate, TodoUpdate, UserCreate
from .sync import ensure_categories_exist, ensure_user_exists
from .utils import utcnow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


def _new_user_id(prefix: str) -> str:
    return f"{prefix}_{secrets.token_hex(8)}"


# PUBLIC_INTERFACE
def create_user(repo: Repository, data: UserCreate) -> UserEntity:
    """Register a user. Raises DuplicateError when the email is taken."""
    now = utcnow()
    user: UserEntity = {
        "id": _new_user_id("user"),
        "email": str(data.email),
        "name": data.name,
        "avatar_url": data.avatar_url,
        "auth_provider": data.auth_provider.value,
        "is_admin": data.is_admin,
        "created_at": now,
        "updated_at": now,
    }
    created = repo.create_user(user)
    logger.info("Created user %s (%s)", created["id"], created["auth_provider"])
    return created


# PUBLIC_INTERFACE
def authenticate_user(repo: Repository, data: LoginInput) -> Optional[UserEntity]:
    """
    Resolve a login to a user.

    - Known email: return the user; a google login carrying a name or avatar
      refreshes those fields first.
    - Unknown email via google: provision a new non-admin user.
    - Unknown email via email: None (registration is a separate step).
    """
    existing = repo.get_user_by_email(str(data.email))
    if existing is not None:
        if data.auth_provider.value == "google" and (data.name or data.avatar_url):
            changes: Dict[str, Any] = {}
            if data.name:
                changes["name"] = data.name
            if data.avatar_url is not None:
                changes["avatar_url"] = data.avatar_url
            return repo.update_user(existing["id"], changes)
        return existing

    if data.auth_provider.value == "google":
        now = utcnow()
        user: UserEntity = {
            "id": _new_user_id("google"),
            "email": str(data.email),
            "name": data.name if data.name is not None else "Unknown User",
            "avatar_url": data.avatar_url,
            "auth_provider": "google",
            "is_admin": False,
            "created_at": now,
            "updated_at": now,
        }
        created = repo.create_user(user)
        logger.info("Provisioned google user %s", created["id"])
        return created

    return None


# PUBLIC_INTERFACE
def get_user(repo: Repository, user_id: str) -> UserEntity:
    user = repo.get_user(user_id)
    if user is None:
        raise NotFoundError(f"User with id {user_id} not found")
    return user


# PUBLIC_INTERFACE
def verify_admin(repo: Repository, user_id: Optional[str]) -> bool:
    """Return True only for an existing user with the admin flag."""
    if not user_id:
        return False
    user = repo.get_user(user_id)
    return bool(user and user["is_admin"])


def _require_admin(repo: Repository, admin_user_id: Optional[str]) -> None:
    if not verify_admin(repo, admin_user_id):
        logger.warning("Rejected admin action by %r", admin_user_id)
        raise AccessDeniedError()


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
def list_categories(repo: Repository) -> List[CategoryEntity]:
    return repo.list_categories()


# PUBLIC_INTERFACE
def create_category(repo: Repository, data: CategoryCreate, admin_user_id: Optional[str]) -> CategoryEntity:
    _require_admin(repo, admin_user_id)
    return repo.create_category(data)


# PUBLIC_INTERFACE
def update_category(
    repo: Repository, category_id: int, data: CategoryUpdate, admin_user_id: Optional[str]
) -> CategoryEntity:
    _require_admin(repo, admin_user_id)
    updated = repo.update_category(category_id, data)
    if updated is None:
        raise NotFoundError(f"Category with id {category_id} not found")
    return updated


# PUBLIC_INTERFACE
def delete_category(repo: Repository, category_id: int, admin_user_id: Optional[str]) -> bool:
    """Delete an unreferenced category. Raises InUseError while todos still point at it."""
    _require_admin(repo, admin_user_id)
    with repo.transaction():
        if repo.get_category(category_id) is None:
            raise NotFoundError(f"Category with id {category_id} not found")
        in_use = repo.count_todos_in_category(category_id)
        if in_use:
            raise InUseError(
                f"Cannot delete category: {in_use} todo(s) are still assigned to this category"
            )
        return repo.delete_category(category_id)


# ---------------------------------------------------------------------------
# Todos (single item, outside sync batches)
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
def create_todo(repo: Repository, data: TodoCreate) -> TodoEntity:
    with repo.transaction():
        ensure_user_exists(repo, data.user_id)
        ensure_categories_exist(repo, [data.category_id])
        return repo.create_todo(
            data.user_id,
            {
                "category_id": data.category_id,
                "title": data.title,
                "description": data.description,
                "is_completed": data.is_completed,
                "due_date": data.due_date,
                "priority": data.priority.value,
                "client_updated_at": data.client_updated_at or utcnow(),
            },
        )


# PUBLIC_INTERFACE
def get_todo(repo: Repository, todo_id: int, user_id: str) -> TodoEntity:
    todo = repo.get_todo(todo_id, user_id)
    if todo is None:
        raise NotFoundError(f"Todo with id {todo_id} not found or access denied")
    return todo


# PUBLIC_INTERFACE
def update_todo(repo: Repository, todo_id: int, data: TodoUpdate) -> TodoEntity:
    """
    Partially update an owned todo. Omitted fields are kept; explicit nulls
    clear category_id, description and due_date.
    """
    changes: Dict[str, Any] = {}
    for name in ("category_id", "description", "due_date"):
        if name in data.model_fields_set:
            changes[name] = getattr(data, name)
    if data.title is not None:
        changes["title"] = data.title
    if data.is_completed is not None:
        changes["is_completed"] = data.is_completed
    if data.priority is not None:
        changes["priority"] = data.priority.value
    changes["client_updated_at"] = data.client_updated_at or utcnow()

    with repo.transaction():
        ensure_categories_exist(repo, [changes.get("category_id")])
        updated = repo.update_todo(todo_id, data.user_id, changes)
        if updated is None:
            raise NotFoundError(f"Todo with id {todo_id} not found or access denied")
        return updated


# PUBLIC_INTERFACE
def delete_todo(repo: Repository, todo_id: int, user_id: str) -> bool:
    """Delete an owned todo. False (never an error) when missing or owned by someone else."""
    return repo.delete_todo(todo_id, user_id)


# PUBLIC_INTERFACE
def query_todos(repo: Repository, user_id: str, query: Optional[TodoQuery] = None) -> List[TodoEntity]:
    """
    Filtered, always user-scoped listing. Unknown users simply get no rows.
    """
    return repo.list_todos(user_id, query)
