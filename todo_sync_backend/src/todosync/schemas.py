from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from .utils import TimestampInput, parse_timestamp

_HEX_COLOR = re.compile(r"^#[0-9A-Fa-f]{6}$")


class Priority(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class AuthProvider(str, Enum):
    google = "google"
    email = "email"


def _validate_title(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    s = v.strip()
    if not (1 <= len(s) <= 200):
        raise ValueError("title length must be between 1 and 200 characters")
    return s


def _validate_color(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    if not _HEX_COLOR.match(v):
        raise ValueError("Color must be a valid hex code")
    return v


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class UserCreate(BaseModel):
    """Schema for registering a user."""

    email: EmailStr
    name: str = Field(..., min_length=1)
    avatar_url: Optional[str] = None
    auth_provider: AuthProvider
    is_admin: bool = False


# PUBLIC_INTERFACE
class LoginInput(BaseModel):
    """
    Schema for authenticating a user by email.
    Google logins may carry profile data used to provision or refresh the user.
    """

    email: EmailStr
    auth_provider: AuthProvider
    google_id: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None


# PUBLIC_INTERFACE
class UserOut(BaseModel):
    id: str
    email: str
    name: str
    avatar_url: Optional[str] = None
    auth_provider: AuthProvider
    is_admin: bool
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class CategoryCreate(BaseModel):
    """Schema for creating a category (admin only)."""

    model_config = ConfigDict(
        json_schema_extra={"example": {"name": "Work", "description": "Office tasks", "color": "#FF8800"}}
    )

    name: str = Field(..., description="Unique category name")
    description: Optional[str] = None
    color: Optional[str] = Field(default=None, description="Hex color code, e.g. #1A2B3C")

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("Category name is required")
        return s

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _validate_color(v)


# PUBLIC_INTERFACE
class CategoryUpdate(BaseModel):
    """Partial category update. Explicit nulls clear description/color."""

    name: Optional[str] = None
    description: Optional[str] = None
    color: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        s = v.strip()
        if not s:
            raise ValueError("Category name is required")
        return s

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: Optional[str]) -> Optional[str]:
        return _validate_color(v)


# PUBLIC_INTERFACE
class CategoryOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    color: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Todos
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class TodoCreate(BaseModel):
    """
    Schema for creating a new Todo item outside of a sync batch.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "user_1",
                "title": "Buy groceries",
                "description": "Milk, eggs, bread",
                "category_id": None,
                "due_date": "2025-02-01",
                "priority": "high",
                "client_updated_at": "2025-01-31T18:00:00Z",
            }
        }
    )

    user_id: str = Field(..., min_length=1)
    category_id: Optional[int] = None
    title: str = Field(..., description="Short title for the todo item")
    description: Optional[str] = Field(default=None, description="Optional detailed description")
    is_completed: bool = Field(default=False, description="Completion status flag")
    due_date: Optional[datetime] = Field(
        default=None,
        description="Due date/time of the todo item. Accepts ISO8601 date or datetime; dates are set to 00:00 UTC",
    )
    priority: Priority = Priority.medium
    client_updated_at: Optional[datetime] = Field(
        default=None, description="When the client last modified the item; defaults to the server's now"
    )

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        """
        Strip whitespace and enforce 1..200 length.
        """
        return _validate_title(v)  # type: ignore[return-value]

    @field_validator("due_date", "client_updated_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Optional[TimestampInput]) -> Optional[datetime]:
        """
        Normalize due_date/client_updated_at from str/date/datetime to aware UTC datetimes.
        """
        return parse_timestamp(v)


# PUBLIC_INTERFACE
class TodoUpdate(BaseModel):
    """
    Schema for updating an existing Todo item.
    All fields except user_id are optional; only provided fields will be updated.
    """

    user_id: str = Field(..., min_length=1, description="Owner of the todo; updates are scoped to it")
    category_id: Optional[int] = None
    title: Optional[str] = Field(default=None, description="Short title for the todo item")
    description: Optional[str] = None
    is_completed: Optional[bool] = None
    due_date: Optional[datetime] = None
    priority: Optional[Priority] = None
    client_updated_at: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: Optional[str]) -> Optional[str]:
        return _validate_title(v)

    @field_validator("due_date", "client_updated_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Optional[TimestampInput]) -> Optional[datetime]:
        return parse_timestamp(v)


# PUBLIC_INTERFACE
class TodoOut(BaseModel):
    """
    Schema returned by the API for a Todo item.
    """

    id: int = Field(..., description="Unique identifier of the todo item")
    user_id: str
    category_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    is_completed: bool
    due_date: Optional[datetime] = None
    priority: Priority
    created_at: datetime
    updated_at: datetime
    last_synced_at: Optional[datetime] = None
    client_updated_at: datetime


# PUBLIC_INTERFACE
class TodoDeleteResult(BaseModel):
    deleted: bool


# ---------------------------------------------------------------------------
# Sync
# ---------------------------------------------------------------------------


# PUBLIC_INTERFACE
class SyncTodoItem(BaseModel):
    """
    One change record in a sync batch.

    - No `id`: create (unless `is_deleted`, which makes it a no-op).
    - With `id`: update, or delete when `is_deleted` is true.
    """

    client_id: Optional[str] = Field(default=None, description="Temporary client-side identifier")
    id: Optional[int] = Field(default=None, description="Server identifier, absent for new items")
    category_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    is_completed: bool = False
    due_date: Optional[datetime] = None
    priority: Priority = Priority.medium
    client_updated_at: datetime
    is_deleted: bool = False

    @field_validator("title")
    @classmethod
    def validate_title(cls, v: str) -> str:
        return _validate_title(v)  # type: ignore[return-value]

    @field_validator("due_date", "client_updated_at", mode="before")
    @classmethod
    def parse_timestamps(cls, v: Optional[TimestampInput]) -> Optional[datetime]:
        """
        Normalize due_date/client_updated_at from str/date/datetime to aware UTC datetimes.
        """
        return parse_timestamp(v)


# PUBLIC_INTERFACE
class SyncRequest(BaseModel):
    """A batch of offline changes from one client."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "user_id": "user_1",
                "todos": [
                    {"client_id": "tmp-1", "title": "New offline item", "client_updated_at": "2024-01-01T10:00:00Z"},
                    {"id": 7, "title": "X", "client_updated_at": "2024-01-01T12:00:00Z"},
                    {"id": 9, "title": "Gone", "client_updated_at": "2024-01-01T12:05:00Z", "is_deleted": True},
                ],
                "last_sync_timestamp": "2023-12-31T00:00:00Z",
            }
        }
    )

    user_id: str = Field(..., min_length=1)
    todos: List[SyncTodoItem] = Field(default_factory=list)
    last_sync_timestamp: Optional[datetime] = None

    @field_validator("last_sync_timestamp", mode="before")
    @classmethod
    def parse_last_sync(cls, v: Optional[TimestampInput]) -> Optional[datetime]:
        return parse_timestamp(v, "last_sync_timestamp")


# PUBLIC_INTERFACE
class SyncResponse(BaseModel):
    synced: List[TodoOut]
    conflicts: List[TodoOut]
