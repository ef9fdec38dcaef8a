from __future__ import annotations

from datetime import datetime
from typing import Optional, TypedDict


# PUBLIC_INTERFACE
class UserEntity(TypedDict):
    """
    Identity record. The sync core only checks that a user exists.

    Fields:
    - id: Opaque string identifier
    - email: Unique email address
    - name: Display name
    - avatar_url: Optional avatar reference
    - auth_provider: 'google' or 'email'
    - is_admin: Admin flag, gates category management
    """

    id: str
    email: str
    name: str
    avatar_url: Optional[str]
    auth_provider: str
    is_admin: bool
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class CategoryEntity(TypedDict):
    """Optional grouping label for todos. Names are unique."""

    id: int
    name: str
    description: Optional[str]
    color: Optional[str]
    created_at: datetime
    updated_at: datetime


# PUBLIC_INTERFACE
class TodoEntity(TypedDict):
    """
    A todo row as stored by the repositories.

    Fields:
    - id: Unique integer identifier assigned by the store
    - user_id: Owning user, immutable after creation
    - category_id: Optional category reference
    - title: Short title (1..200 chars, trimmed on input via schemas)
    - description: Optional detailed description
    - is_completed: Boolean completion flag
    - due_date: Optional due datetime (UTC)
    - priority: 'low', 'medium' or 'high'
    - created_at / updated_at: server-authoritative timestamps (UTC)
    - last_synced_at: last time the server persisted a create or accepted an update
    - client_updated_at: when the client last modified its copy, stored verbatim
    """

    id: int
    user_id: str
    category_id: Optional[int]
    title: str
    description: Optional[str]
    is_completed: bool
    due_date: Optional[datetime]
    priority: str
    created_at: datetime
    updated_at: datetime
    last_synced_at: Optional[datetime]
    client_updated_at: datetime
