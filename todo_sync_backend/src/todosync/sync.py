"""
Offline sync reconciliation.

A client accumulates creates, updates and deletes while offline and pushes
them as one ordered batch. Each record is classified and applied against the
server rows, with per-item last-writer-wins conflict detection:

- the server keeps its row when its `updated_at` is strictly newer than the
  client's `client_updated_at` (ties go to the client);
- a conflicting item is not applied; the current server row is handed back
  in `conflicts` so the client can resolve it.

The whole batch is one repository transaction: any failure (unknown user,
unknown category, todo missing or owned by someone else) rolls back every
write made by earlier items and surfaces as a single error.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .errors import NotFoundError
from .models import TodoEntity
from .repositories import Repository
from .schemas import SyncTodoItem

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    synced: List[TodoEntity] = field(default_factory=list)
    conflicts: List[TodoEntity] = field(default_factory=list)


_CLEARABLE_FIELDS = ("category_id", "description", "due_date")


def _item_values(item: SyncTodoItem, partial: bool = False) -> Dict[str, Any]:
    """
    Column values carried by a sync item.

    With partial=True (updates) the nullable fields are only included when the
    client sent them, so an omitted field keeps its stored value and an
    explicit null clears it.
    """
    values: Dict[str, Any] = {
        "title": item.title,
        "is_completed": item.is_completed,
        "priority": item.priority.value,
        "client_updated_at": item.client_updated_at,
    }
    for name in _CLEARABLE_FIELDS:
        if not partial or name in item.model_fields_set:
            values[name] = getattr(item, name)
    return values


def _todo_not_found(todo_id: int) -> NotFoundError:
    return NotFoundError(f"Todo with id {todo_id} not found or access denied")


# PUBLIC_INTERFACE
def ensure_user_exists(repo: Repository, user_id: str) -> None:
    """Raise NotFoundError unless the user exists."""
    if repo.get_user(user_id) is None:
        raise NotFoundError(f"User with id {user_id} not found")


# PUBLIC_INTERFACE
def ensure_categories_exist(repo: Repository, category_ids: Sequence[Optional[int]]) -> None:
    """Raise NotFoundError for the first referenced category that does not exist."""
    wanted = [c for c in category_ids if c is not None]
    if not wanted:
        return
    existing = repo.existing_category_ids(wanted)
    for category_id in wanted:
        if category_id not in existing:
            raise NotFoundError(f"Category with id {category_id} not found")


# PUBLIC_INTERFACE
def is_conflict(server: TodoEntity, client_updated_at: datetime) -> bool:
    """
    True when the server row carries a change the client has not seen.

    A row whose stored client_updated_at equals the incoming one already holds
    this exact client edit, so a re-submission of it is not a conflict.
    """
    if server["client_updated_at"] == client_updated_at:
        return False
    return server["updated_at"] > client_updated_at


def _apply_delete(repo: Repository, user_id: str, item: SyncTodoItem) -> None:
    if item.id is None:
        # Created and deleted offline: nothing ever reached the server.
        return
    if not repo.delete_todo(item.id, user_id):
        raise _todo_not_found(item.id)
    logger.debug("Sync deleted todo %s for user %s", item.id, user_id)


def _apply_update(repo: Repository, user_id: str, todo_id: int, item: SyncTodoItem, result: SyncResult) -> None:
    current = repo.get_todo(todo_id, user_id)
    if current is None:
        raise _todo_not_found(todo_id)

    if is_conflict(current, item.client_updated_at):
        logger.info(
            "Sync conflict on todo %s for user %s: server updated_at %s > client %s",
            todo_id,
            user_id,
            current["updated_at"].isoformat(),
            item.client_updated_at.isoformat(),
        )
        result.conflicts.append(current)
        return

    updated = repo.update_todo(
        todo_id, user_id, _item_values(item, partial=True), expected_updated_at=current["updated_at"]
    )
    if updated is None:
        # The row moved between our read and the conditional write.
        latest = repo.get_todo(todo_id, user_id)
        if latest is None:
            raise _todo_not_found(todo_id)
        logger.info("Sync conflict on todo %s for user %s: concurrent write", todo_id, user_id)
        result.conflicts.append(latest)
        return
    result.synced.append(updated)


# PUBLIC_INTERFACE
def reconcile(
    repo: Repository,
    user_id: str,
    items: Sequence[SyncTodoItem],
    last_sync_timestamp: Optional[datetime] = None,
) -> SyncResult:
    """
    Apply a batch of offline todo changes for one user.

    Items are processed in order:
    - is_deleted with an id removes the owned row (missing rows are an error);
      is_deleted without an id is a no-op. Deletions are never returned.
    - an id without is_deleted is an update, subject to the conflict check.
    - no id is a create.

    Returns:
        SyncResult with `synced` (created/updated rows in submission order) and
        `conflicts` (current server rows for updates that were not applied).

    Raises:
        NotFoundError when the user, any referenced category, or any targeted
        todo (under this user's ownership) does not exist. Nothing from the
        batch is kept in that case.
    """
    logger.info(
        "Sync batch for user %s: %d item(s), last_sync_timestamp=%s",
        user_id,
        len(items),
        last_sync_timestamp.isoformat() if last_sync_timestamp else None,
    )
    result = SyncResult()
    try:
        with repo.transaction():
            ensure_user_exists(repo, user_id)
            ensure_categories_exist(repo, [item.category_id for item in items])

            for item in items:
                if item.is_deleted:
                    _apply_delete(repo, user_id, item)
                elif item.id is not None:
                    _apply_update(repo, user_id, item.id, item, result)
                else:
                    result.synced.append(repo.create_todo(user_id, _item_values(item)))
    except NotFoundError as e:
        logger.warning("Sync batch for user %s rejected: %s", user_id, e)
        raise

    logger.info(
        "Sync batch for user %s done: %d synced, %d conflict(s)",
        user_id,
        len(result.synced),
        len(result.conflicts),
    )
    return result
