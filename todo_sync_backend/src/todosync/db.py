from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Generator, Iterable, List, Optional, Set

from .errors import DuplicateError
from .models import CategoryEntity, TodoEntity, UserEntity
from .repositories import TODO_WRITABLE_FIELDS, Repository, TodoQuery, parse_sort
from .schemas import CategoryCreate, CategoryUpdate
from .utils import from_db_timestamp, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        email TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        avatar_url TEXT NULL,
        auth_provider TEXT NOT NULL,
        is_admin INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS categories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        description TEXT NULL,
        color TEXT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS todos (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL REFERENCES users(id),
        category_id INTEGER NULL REFERENCES categories(id),
        title TEXT NOT NULL,
        description TEXT NULL,
        is_completed INTEGER NOT NULL DEFAULT 0,
        due_date TEXT NULL,
        priority TEXT NOT NULL DEFAULT 'medium',
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        last_synced_at TEXT NULL,
        client_updated_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_todos_user_id ON todos(user_id)",
    "CREATE INDEX IF NOT EXISTS idx_todos_category_id ON todos(category_id)",
    "CREATE INDEX IF NOT EXISTS idx_todos_client_updated_at ON todos(client_updated_at)",
)

_TIMESTAMP_COLUMNS = {"due_date", "created_at", "updated_at", "last_synced_at", "client_updated_at"}


def _to_db(field: str, value: Any) -> Any:
    if field in _TIMESTAMP_COLUMNS:
        return to_db_timestamp(value)
    if isinstance(value, bool):
        return 1 if value else 0
    return value


class SQLiteRepository(Repository):
    """
    Lightweight SQLite repository implementing the Repository interface.

    Each call opens its own connection unless a transaction() block is active
    on the current thread, in which case the block's connection is reused.
    """

    def __init__(self, db_path: str, clock: Callable[[], datetime] = utcnow) -> None:
        os.makedirs(os.path.dirname(db_path) or ".", exist_ok=True)
        self._db_path = db_path
        self._clock = clock
        self._local = threading.local()
        self._init_db()

    def _now(self) -> datetime:
        return self._clock()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        active: Optional[sqlite3.Connection] = getattr(self._local, "conn", None)
        if active is not None:
            yield active
            return
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Generator["SQLiteRepository", None, None]:
        if getattr(self._local, "conn", None) is not None:
            yield self
            return
        conn = self._connect()
        conn.isolation_level = None
        # IMMEDIATE takes the write lock up front so concurrent batches serialize.
        conn.execute("BEGIN IMMEDIATE")
        self._local.conn = conn
        try:
            yield self
            conn.execute("COMMIT")
        except BaseException:
            conn.execute("ROLLBACK")
            logger.debug("Rolled back SQLite transaction")
            raise
        finally:
            self._local.conn = None
            conn.close()

    def _init_db(self) -> None:
        with self._conn() as conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    # Row mapping

    def _row_to_user(self, row: sqlite3.Row) -> UserEntity:
        return {
            "id": str(row["id"]),
            "email": str(row["email"]),
            "name": str(row["name"]),
            "avatar_url": row["avatar_url"],
            "auth_provider": str(row["auth_provider"]),
            "is_admin": bool(row["is_admin"]),
            "created_at": from_db_timestamp(row["created_at"]),  # type: ignore
            "updated_at": from_db_timestamp(row["updated_at"]),  # type: ignore
        }

    def _row_to_category(self, row: sqlite3.Row) -> CategoryEntity:
        return {
            "id": int(row["id"]),
            "name": str(row["name"]),
            "description": row["description"],
            "color": row["color"],
            "created_at": from_db_timestamp(row["created_at"]),  # type: ignore
            "updated_at": from_db_timestamp(row["updated_at"]),  # type: ignore
        }

    def _row_to_todo(self, row: sqlite3.Row) -> TodoEntity:
        return {
            "id": int(row["id"]),
            "user_id": str(row["user_id"]),
            "category_id": int(row["category_id"]) if row["category_id"] is not None else None,
            "title": str(row["title"]),
            "description": row["description"],
            "is_completed": bool(row["is_completed"]),
            "due_date": from_db_timestamp(row["due_date"]),
            "priority": str(row["priority"]),
            "created_at": from_db_timestamp(row["created_at"]),  # type: ignore
            "updated_at": from_db_timestamp(row["updated_at"]),  # type: ignore
            "last_synced_at": from_db_timestamp(row["last_synced_at"]),
            "client_updated_at": from_db_timestamp(row["client_updated_at"]),  # type: ignore
        }

    # Users

    def create_user(self, user: UserEntity) -> UserEntity:
        with self._conn() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO users (id, email, name, avatar_url, auth_provider, is_admin, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        user["id"],
                        user["email"],
                        user["name"],
                        user["avatar_url"],
                        user["auth_provider"],
                        1 if user["is_admin"] else 0,
                        to_db_timestamp(user["created_at"]),
                        to_db_timestamp(user["updated_at"]),
                    ),
                )
            except sqlite3.IntegrityError as e:
                # sqlite names the violated column, e.g. "UNIQUE constraint failed: users.id"
                if "users.id" in str(e):
                    raise DuplicateError(f"User with id {user['id']} already exists") from e
                raise DuplicateError(f"User with email {user['email']} already exists") from e
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user["id"],)).fetchone()
            assert row is not None
            return self._row_to_user(row)

    def get_user(self, user_id: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[UserEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
            return self._row_to_user(row) if row else None

    def update_user(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserEntity]:
        fields = {k: v for k, v in changes.items() if k in {"name", "avatar_url", "is_admin"}}
        fields["updated_at"] = self._now()
        assignments = ", ".join(f"{k} = ?" for k in fields)
        with self._conn() as conn:
            cur = conn.execute(
                f"UPDATE users SET {assignments} WHERE id = ?",
                [*(_to_db(k, v) for k, v in fields.items()), user_id],
            )
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return self._row_to_user(row) if row else None

    # Categories

    def create_category(self, data: CategoryCreate) -> CategoryEntity:
        now = to_db_timestamp(self._now())
        with self._conn() as conn:
            try:
                cur = conn.execute(
                    """
                    INSERT INTO categories (name, description, color, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (data.name, data.description, data.color, now, now),
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateError(f"Category with name {data.name} already exists") from e
            row = conn.execute("SELECT * FROM categories WHERE id = ?", (cur.lastrowid,)).fetchone()
            assert row is not None
            return self._row_to_category(row)

    def get_category(self, category_id: int) -> Optional[CategoryEntity]:
        with self._conn() as conn:
            row = conn.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
            return self._row_to_category(row) if row else None

    def list_categories(self) -> List[CategoryEntity]:
        with self._conn() as conn:
            rows = conn.execute("SELECT * FROM categories ORDER BY created_at DESC, id DESC").fetchall()
            return [self._row_to_category(r) for r in rows]

    def update_category(self, category_id: int, data: CategoryUpdate) -> Optional[CategoryEntity]:
        fields: Dict[str, Any] = {}
        if data.name is not None:
            fields["name"] = data.name
        for optional in ("description", "color"):
            if optional in data.model_fields_set:
                fields[optional] = getattr(data, optional)
        fields["updated_at"] = to_db_timestamp(self._now())
        assignments = ", ".join(f"{k} = ?" for k in fields)
        with self._conn() as conn:
            try:
                cur = conn.execute(
                    f"UPDATE categories SET {assignments} WHERE id = ?",
                    [*fields.values(), category_id],
                )
            except sqlite3.IntegrityError as e:
                raise DuplicateError(f"Category with name {data.name} already exists") from e
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM categories WHERE id = ?", (category_id,)).fetchone()
            return self._row_to_category(row) if row else None

    def delete_category(self, category_id: int) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM categories WHERE id = ?", (category_id,))
            return cur.rowcount > 0

    def existing_category_ids(self, category_ids: Iterable[int]) -> Set[int]:
        ids = sorted(set(category_ids))
        if not ids:
            return set()
        placeholders = ", ".join("?" for _ in ids)
        with self._conn() as conn:
            rows = conn.execute(f"SELECT id FROM categories WHERE id IN ({placeholders})", ids).fetchall()
            return {int(r["id"]) for r in rows}

    def count_todos_in_category(self, category_id: int) -> int:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS cnt FROM todos WHERE category_id = ?", (category_id,)
            ).fetchone()
            return int(row["cnt"]) if row else 0

    # Todos

    def create_todo(self, user_id: str, values: Dict[str, Any]) -> TodoEntity:
        now = self._now()
        with self._conn() as conn:
            cur = conn.execute(
                """
                INSERT INTO todos (user_id, category_id, title, description, is_completed, due_date,
                    priority, created_at, updated_at, last_synced_at, client_updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    user_id,
                    values.get("category_id"),
                    values["title"],
                    values.get("description"),
                    1 if values.get("is_completed") else 0,
                    to_db_timestamp(values.get("due_date")),
                    values.get("priority") or "medium",
                    to_db_timestamp(now),
                    to_db_timestamp(now),
                    to_db_timestamp(now),
                    to_db_timestamp(values.get("client_updated_at") or now),
                ),
            )
            row = conn.execute("SELECT * FROM todos WHERE id = ?", (cur.lastrowid,)).fetchone()
            assert row is not None
            logger.debug("Created todo %s for user %s", cur.lastrowid, user_id)
            return self._row_to_todo(row)

    def get_todo(self, todo_id: int, user_id: str) -> Optional[TodoEntity]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT * FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id)
            ).fetchone()
            return self._row_to_todo(row) if row else None

    def update_todo(
        self,
        todo_id: int,
        user_id: str,
        changes: Dict[str, Any],
        expected_updated_at: Optional[datetime] = None,
    ) -> Optional[TodoEntity]:
        now = self._now()
        fields = {k: changes[k] for k in TODO_WRITABLE_FIELDS if k in changes}
        fields["updated_at"] = now
        fields["last_synced_at"] = now
        assignments = ", ".join(f"{k} = ?" for k in fields)
        params: List[Any] = [_to_db(k, v) for k, v in fields.items()]

        sql = f"UPDATE todos SET {assignments} WHERE id = ? AND user_id = ?"
        params.extend([todo_id, user_id])
        if expected_updated_at is not None:
            sql += " AND updated_at = ?"
            params.append(to_db_timestamp(expected_updated_at))

        with self._conn() as conn:
            cur = conn.execute(sql, params)
            if cur.rowcount == 0:
                return None
            row = conn.execute("SELECT * FROM todos WHERE id = ?", (todo_id,)).fetchone()
            return self._row_to_todo(row) if row else None

    def delete_todo(self, todo_id: int, user_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM todos WHERE id = ? AND user_id = ?", (todo_id, user_id))
            return cur.rowcount > 0

    def list_todos(self, user_id: str, query: Optional[TodoQuery] = None) -> List[TodoEntity]:
        q = query or TodoQuery()
        order = parse_sort(q.sort)
        clauses = ["user_id = ?"]
        params: List[Any] = [user_id]

        if q.category_id is not None:
            clauses.append("category_id = ?")
            params.append(q.category_id)
        if q.is_completed is not None:
            clauses.append("is_completed = ?")
            params.append(1 if q.is_completed else 0)
        if q.priority is not None:
            clauses.append("priority = ?")
            params.append(q.priority)
        # NULL due_date never satisfies a comparison
        if q.due_before is not None:
            clauses.append("due_date <= ?")
            params.append(to_db_timestamp(q.due_before))
        if q.due_after is not None:
            clauses.append("due_date >= ?")
            params.append(to_db_timestamp(q.due_after))
        if q.last_synced_after is not None:
            clauses.append("client_updated_at >= ?")
            params.append(to_db_timestamp(q.last_synced_after))

        order_sql = "ORDER BY id ASC"
        if order is not None:
            field, descending = order
            order_sql = f"ORDER BY {field} IS NULL, {field} {'DESC' if descending else 'ASC'}, id ASC"

        with self._conn() as conn:
            rows = conn.execute(
                f"SELECT * FROM todos WHERE {' AND '.join(clauses)} {order_sql}", params
            ).fetchall()
            return [self._row_to_todo(r) for r in rows]
