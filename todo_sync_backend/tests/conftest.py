import os
from datetime import datetime, timedelta, timezone

import pytest

# Tests always run against the in-memory backend unless a test builds its own repository
os.environ["PERSISTENCE_BACKEND"] = "memory"

from todosync.db import SQLiteRepository  # noqa: E402
from todosync.repositories import InMemoryRepository, reset_repository  # noqa: E402


class Clock:
    """Manually advanced clock injected into repositories."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def fresh_repository():
    """Every test starts with an empty process-wide repository."""
    reset_repository()
    yield
    reset_repository()


@pytest.fixture
def clock():
    return Clock(datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc))


@pytest.fixture(params=["memory", "sqlite"])
def repo(request, clock, tmp_path):
    if request.param == "sqlite":
        return SQLiteRepository(str(tmp_path / "todosync.db"), clock=clock)
    return InMemoryRepository(clock=clock)


def make_user(repo, user_id="u1", is_admin=False):
    now = datetime(2023, 12, 1, tzinfo=timezone.utc)
    return repo.create_user(
        {
            "id": user_id,
            "email": f"{user_id}@example.com",
            "name": user_id.upper(),
            "avatar_url": None,
            "auth_provider": "email",
            "is_admin": is_admin,
            "created_at": now,
            "updated_at": now,
        }
    )
