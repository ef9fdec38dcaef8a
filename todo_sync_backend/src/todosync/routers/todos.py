from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .. import services
from ..repositories import Repository, TodoQuery, get_repository, parse_sort
from ..schemas import Priority, TodoCreate, TodoDeleteResult, TodoOut, TodoUpdate
from ..utils import parse_timestamp

router = APIRouter(
    prefix="/api/v1/todos",
    tags=["todos"],
)


def _get_repo(repo: Repository = Depends(get_repository)) -> Repository:
    """
    Dependency wrapper for repository to keep signatures clean.
    """
    return repo


def _timestamp_param(value: Optional[str], name: str) -> Optional[datetime]:
    try:
        return parse_timestamp(value, name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


# PUBLIC_INTERFACE
@router.post(
    "/",
    response_model=TodoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create Todo",
    description="Create a new Todo item for a user outside of a sync batch.",
    responses={
        201: {"description": "Todo created successfully"},
        404: {"description": "User or category not found"},
    },
)
def create_todo(payload: TodoCreate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    """
    Create a new Todo. The server assigns id and timestamps and marks it synced.
    """
    created = services.create_todo(repo, payload)
    return TodoOut(**created)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/",
    response_model=List[TodoOut],
    summary="Query Todos",
    description=(
        "List a user's todos with optional filters combined with AND.\n\n"
        "Query parameters:\n"
        "- user_id: owner (required)\n"
        "- category_id, is_completed, priority: exact match\n"
        "- due_before / due_after: inclusive bounds on due_date (todos without one never match)\n"
        "- last_synced_after: only todos whose client_updated_at is at or after this time\n"
        "- sort: one of id, created_at, updated_at, client_updated_at, due_date; prefix '-' for descending\n\n"
        "Unknown users get an empty list."
    ),
    responses={
        200: {"description": "List retrieved successfully"},
        400: {"description": "Invalid query parameters"},
    },
)
def list_todos(
    user_id: str = Query(..., min_length=1, description="Owner of the todos"),
    category_id: Optional[int] = Query(None, description="Filter by category"),
    is_completed: Optional[bool] = Query(None, description="Filter by completion status"),
    priority: Optional[Priority] = Query(None, description="Filter by priority"),
    due_before: Optional[str] = Query(None, description="Inclusive upper bound on due_date"),
    due_after: Optional[str] = Query(None, description="Inclusive lower bound on due_date"),
    last_synced_after: Optional[str] = Query(
        None, description="Inclusive lower bound on client_updated_at, for incremental pulls"
    ),
    sort: Optional[str] = Query(None, description="Optional sort key, e.g. -updated_at"),
    repo: Repository = Depends(_get_repo),
) -> List[TodoOut]:
    """
    Filtered listing of a user's todos.
    """
    try:
        parse_sort(sort)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    query = TodoQuery(
        category_id=category_id,
        is_completed=is_completed,
        priority=priority.value if priority else None,
        due_before=_timestamp_param(due_before, "due_before"),
        due_after=_timestamp_param(due_after, "due_after"),
        last_synced_after=_timestamp_param(last_synced_after, "last_synced_after"),
        sort=sort,
    )
    items = services.query_todos(repo, user_id, query)
    return [TodoOut(**it) for it in items]  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.get(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Get Todo",
    description="Get a single Todo item owned by user_id.",
    responses={
        200: {"description": "Todo found"},
        404: {"description": "Todo not found"},
    },
)
def get_todo(
    todo_id: int,
    user_id: str = Query(..., min_length=1),
    repo: Repository = Depends(_get_repo),
) -> TodoOut:
    """
    Retrieve a single Todo item by its ID, scoped to its owner.
    """
    item = services.get_todo(repo, todo_id, user_id)
    return TodoOut(**item)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.patch(
    "/{todo_id}",
    response_model=TodoOut,
    summary="Update Todo",
    description="Partially update fields of a Todo item owned by payload.user_id.",
    responses={
        200: {"description": "Todo updated"},
        404: {"description": "Todo or category not found"},
    },
)
def patch_todo(todo_id: int, payload: TodoUpdate, repo: Repository = Depends(_get_repo)) -> TodoOut:
    """
    Partial update of a Todo item.
    """
    updated = services.update_todo(repo, todo_id, payload)
    return TodoOut(**updated)  # type: ignore[arg-type]


# PUBLIC_INTERFACE
@router.delete(
    "/{todo_id}",
    response_model=TodoDeleteResult,
    summary="Delete Todo",
    description="Delete a Todo item owned by user_id. Reports deleted=false when nothing matched.",
)
def delete_todo(
    todo_id: int,
    user_id: str = Query(..., min_length=1),
    repo: Repository = Depends(_get_repo),
) -> TodoDeleteResult:
    """
    Delete a Todo. Missing and foreign todos both yield deleted=false.
    """
    return TodoDeleteResult(deleted=services.delete_todo(repo, todo_id, user_id))
