from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from threading import RLock
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Set

from .errors import DuplicateError
from .models import CategoryEntity, TodoEntity, UserEntity
from .schemas import CategoryCreate, CategoryUpdate
from .settings import get_settings
from .utils import utcnow

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"id", "created_at", "updated_at", "client_updated_at", "due_date"}

# Columns a todo write may set; everything else is owned by the store.
TODO_WRITABLE_FIELDS = (
    "category_id",
    "title",
    "description",
    "is_completed",
    "due_date",
    "priority",
    "client_updated_at",
)


@dataclass(frozen=True)
class TodoQuery:
    """
    Filters for listing a user's todos. All filters combine with AND.

    - due_before / due_after: inclusive bounds; rows without a due_date never match
    - last_synced_after: inclusive lower bound on client_updated_at (incremental pull)
    - sort: optional field name, '-' prefix for descending; default order is by id
    """
    category_id: Optional[int] = None
    is_completed: Optional[bool] = None
    priority: Optional[str] = None
    due_before: Optional[datetime] = None
    due_after: Optional[datetime] = None
    last_synced_after: Optional[datetime] = None
    sort: Optional[str] = None


def parse_sort(sort: Optional[str]) -> Optional[tuple]:
    """
    Split a sort key like '-updated_at' into (field, descending).
    Returns None when no sort was requested; raises ValueError on unknown fields.
    """
    if sort is None or not sort.strip():
        return None
    key = sort.strip().lower()
    descending = key.startswith("-")
    field = key[1:] if descending else key
    if field not in SORTABLE_FIELDS:
        raise ValueError(f"sort must be one of {', '.join(sorted(SORTABLE_FIELDS))}, optionally prefixed with '-'")
    return field, descending


# PUBLIC_INTERFACE
class Repository(ABC):
    """
    Abstract storage contract for users, categories and todos.

    Todo reads and writes are always scoped by owner: a todo belonging to
    another user behaves exactly like a missing one.
    """

    # Users

    @abstractmethod
    def create_user(self, user: UserEntity) -> UserEntity:
        """Insert a user. Raises DuplicateError when the email is taken."""

    @abstractmethod
    def get_user(self, user_id: str) -> Optional[UserEntity]:
        """Return a user by id, or None."""

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[UserEntity]:
        """Return a user by email, or None."""

    @abstractmethod
    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserEntity]:
        """Apply changes to a user and advance updated_at. None if not found."""

    # Categories

    @abstractmethod
    def create_category(self, data: CategoryCreate) -> CategoryEntity:
        """Insert a category. Raises DuplicateError when the name is taken."""

    @abstractmethod
    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        """Return a category by id, or None."""

    @abstractmethod
    def list_categories(self) -> List[CategoryEntity]:
        """Return all categories, newest first."""

    @abstractmethod
    def update_category(self, category_id: int, data: CategoryUpdate) -> Optional[CategoryEntity]:
        """Apply the provided fields. None if not found; DuplicateError on a taken name."""

    @abstractmethod
    def delete_category(self, category_id: int) -> bool:
        """Delete a category. Return True if deleted."""

    @abstractmethod
    def existing_category_ids(self, category_ids: Iterable[int]) -> Set[int]:
        """Return the subset of the given ids that exist."""

    @abstractmethod
    def count_todos_in_category(self, category_id: int) -> int:
        """Return how many todos reference the category."""

    # Todos

    @abstractmethod
    def create_todo(self, user_id: str, values: Dict[str, Any]) -> TodoEntity:
        """
        Insert a todo owned by user_id.
        created_at, updated_at and last_synced_at are stamped with the current time.
        """

    @abstractmethod
    def get_todo(self, todo_id: int, user_id: str) -> Optional[TodoEntity]:
        """Return the todo if it exists and is owned by user_id."""

    @abstractmethod
    def update_todo(
        self,
        todo_id: int,
        user_id: str,
        changes: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[TodoEntity]:
        """
        Apply changes to an owned todo, advancing updated_at and last_synced_at.

        When expected_updated_at is given the write only happens if the row's
        updated_at still equals it. Returns None when no row was written.
        """

    @abstractmethod
    def delete_todo(self, todo_id: int, user_id: str) -> bool:
        """Delete an owned todo. Return True if a row was removed."""

    @abstractmethod
    def list_todos(self, user_id: str, query: Optional[TodoQuery] = None) -> List[TodoEntity]:
        """Return the user's todos matching every filter in query."""

    @abstractmethod
    def transaction(self):
        """
        Context manager grouping several calls into one atomic unit.
        Writers are serialized for the duration; an exception rolls back every
        write made inside the block.
        """


class InMemoryRepository(Repository):
    """
    Thread-safe in-memory repository suitable for testing and default runtime.
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._lock = RLock()
        self._clock = clock
        self._users: Dict[str, UserEntity] = {}
        self._categories: Dict[int, CategoryEntity] = {}
        self._todos: Dict[int, TodoEntity] = {}
        self._next_category_id = 1
        self._next_todo_id = 1
        self._tx_depth = 0

    def _now(self) -> datetime:
        return self._clock()

    @contextmanager
    def transaction(self) -> Iterator["InMemoryRepository"]:
        with self._lock:
            if self._tx_depth:
                self._tx_depth += 1
                try:
                    yield self
                finally:
                    self._tx_depth -= 1
                return

            snapshot = copy.deepcopy(
                (self._users, self._categories, self._todos, self._next_category_id, self._next_todo_id)
            )
            self._tx_depth = 1
            try:
                yield self
            except BaseException:
                (
                    self._users,
                    self._categories,
                    self._todos,
                    self._next_category_id,
                    self._next_todo_id,
                ) = snapshot
                logger.debug("Rolled back in-memory transaction")
                raise
            finally:
                self._tx_depth = 0

    # Users

    def create_user(self, user: UserEntity) -> UserEntity:
        with self._lock:
            if any(u["email"] == user["email"] for u in self._users.values()):
                raise DuplicateError(f"User with email {user['email']} already exists")
            if user["id"] in self._users:
                raise DuplicateError(f"User with id {user['id']} already exists")
            self._users[user["id"]] = user.copy()  # type: ignore[assignment]
            return user.copy()  # type: ignore[return-value]

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._lock:
            item = self._users.get(user_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def get_user_by_email(self, email: str) -> Optional[UserEntity]:
        with self._lock:
            for u in self._users.values():
                if u["email"] == email:
                    return u.copy()  # type: ignore[return-value]
            return None

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserEntity]:
        with self._lock:
            existing = self._users.get(user_id)
            if existing is None:
                return None
            updated = existing.copy()
            updated.update(changes)  # type: ignore[typeddict-item]
            updated["updated_at"] = self._now()
            self._users[user_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    # Categories

    def _name_taken(self, name: str, exclude_id: Optional[int] = None) -> bool:
        return any(c["name"] == name and c["id"] != exclude_id for c in self._categories.values())

    def create_category(self, data: CategoryCreate) -> CategoryEntity:
        with self._lock:
            if self._name_taken(data.name):
                raise DuplicateError(f"Category with name {data.name} already exists")
            now = self._now()
            entity: CategoryEntity = {
                "id": self._next_category_id,
                "name": data.name,
                "description": data.description,
                "color": data.color,
                "created_at": now,
                "updated_at": now,
            }
            self._next_category_id += 1
            self._categories[entity["id"]] = entity
            return entity.copy()  # type: ignore[return-value]

    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        with self._lock:
            item = self._categories.get(category_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def list_categories(self) -> List[CategoryEntity]:
        with self._lock:
            items = sorted(self._categories.values(), key=lambda c: (c["created_at"], c["id"]), reverse=True)
            return [c.copy() for c in items]  # type: ignore[misc]

    def update_category(self, category_id: int, data: CategoryUpdate) -> Optional[CategoryEntity]:
        with self._lock:
            existing = self._categories.get(category_id)
            if existing is None:
                return None
            updated = existing.copy()
            if data.name is not None:
                if self._name_taken(data.name, exclude_id=category_id):
                    raise DuplicateError(f"Category with name {data.name} already exists")
                updated["name"] = data.name
            # Respect explicit nulling of description/color
            if "description" in data.model_fields_set:
                updated["description"] = data.description
            if "color" in data.model_fields_set:
                updated["color"] = data.color
            updated["updated_at"] = self._now()
            self._categories[category_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    def delete_category(self, category_id: int) -> bool:
        with self._lock:
            return self._categories.pop(category_id, None) is not None

    def existing_category_ids(self, category_ids: Iterable[int]) -> Set[int]:
        with self._lock:
            return {i for i in category_ids if i in self._categories}

    def count_todos_in_category(self, category_id: int) -> int:
        with self._lock:
            return sum(1 for t in self._todos.values() if t["category_id"] == category_id)

    # Todos

    def create_todo(self, user_id: str, values: Dict[str, Any]) -> TodoEntity:
        with self._lock:
            now = self._now()
            entity: TodoEntity = {
                "id": self._next_todo_id,
                "user_id": user_id,
                "category_id": values.get("category_id"),
                "title": values["title"],
                "description": values.get("description"),
                "is_completed": bool(values.get("is_completed", False)),
                "due_date": values.get("due_date"),
                "priority": values.get("priority") or "medium",
                "created_at": now,
                "updated_at": now,
                "last_synced_at": now,
                "client_updated_at": values.get("client_updated_at") or now,
            }
            self._next_todo_id += 1
            self._todos[entity["id"]] = entity
            logger.debug("Created todo %s for user %s", entity["id"], user_id)
            return entity.copy()  # type: ignore[return-value]

    def _owned(self, todo_id: int, user_id: str) -> Optional[TodoEntity]:
        item = self._todos.get(todo_id)
        if item is None or item["user_id"] != user_id:
            return None
        return item

    def get_todo(self, todo_id: int, user_id: str) -> Optional[TodoEntity]:
        with self._lock:
            item = self._owned(todo_id, user_id)
            return None if item is None else item.copy()  # type: ignore[return-value]

    def update_todo(
        self,
        todo_id: int,
        user_id: str,
        changes: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[TodoEntity]:
        with self._lock:
            existing = self._owned(todo_id, user_id)
            if existing is None:
                return None
            if expected_updated_at is not None and existing["updated_at"] != expected_updated_at:
                logger.debug("Conditional update of todo %s lost the race", todo_id)
                return None

            updated = existing.copy()
            for field in TODO_WRITABLE_FIELDS:
                if field in changes:
                    updated[field] = changes[field]  # type: ignore[literal-required]
            now = self._now()
            updated["updated_at"] = now
            updated["last_synced_at"] = now
            self._todos[todo_id] = updated  # type: ignore[assignment]
            return updated.copy()  # type: ignore[return-value]

    def delete_todo(self, todo_id: int, user_id: str) -> bool:
        with self._lock:
            if self._owned(todo_id, user_id) is None:
                return False
            del self._todos[todo_id]
            return True

    def list_todos(self, user_id: str, query: Optional[TodoQuery] = None) -> List[TodoEntity]:
        q = query or TodoQuery()
        order = parse_sort(q.sort)
        with self._lock:
            items: List[TodoEntity] = [t for t in self._todos.values() if t["user_id"] == user_id]

            # Filtering
            if q.category_id is not None:
                items = [t for t in items if t["category_id"] == q.category_id]
            if q.is_completed is not None:
                items = [t for t in items if t["is_completed"] == q.is_completed]
            if q.priority is not None:
                items = [t for t in items if t["priority"] == q.priority]
            if q.due_before is not None:
                items = [t for t in items if t["due_date"] is not None and t["due_date"] <= q.due_before]
            if q.due_after is not None:
                items = [t for t in items if t["due_date"] is not None and t["due_date"] >= q.due_after]
            if q.last_synced_after is not None:
                items = [t for t in items if t["client_updated_at"] >= q.last_synced_after]

            # Sorting: id first, then the requested key with nulls last
            items = sorted(items, key=lambda t: t["id"])
            if order is not None:
                field, descending = order
                present = [t for t in items if t[field] is not None]  # type: ignore[literal-required]
                missing = [t for t in items if t[field] is None]  # type: ignore[literal-required]
                present.sort(key=lambda t: t[field], reverse=descending)  # type: ignore[literal-required]
                items = present + missing

            # Return copies to avoid external mutation
            return [t.copy() for t in items]  # type: ignore[misc]


@lru_cache(maxsize=1)
def _repository_singleton() -> Repository:
    settings = get_settings()
    if settings.persistence_backend == "sqlite":
        from .db import SQLiteRepository

        logger.info("Using SQLite repository at %s", settings.sqlite_db_path)
        return SQLiteRepository(settings.sqlite_db_path)
    logger.info("Using in-memory repository")
    return InMemoryRepository()


# PUBLIC_INTERFACE
def get_repository() -> Repository:
    """
    Return the process-wide repository configured by settings.
    - memory: InMemoryRepository
    - sqlite: SQLiteRepository (stdlib sqlite3)
    """
    return _repository_singleton()


# PUBLIC_INTERFACE
def reset_repository() -> None:
    """Drop the cached repository so the next call re-reads settings."""
    _repository_singleton.cache_clear()
