"""Domain exceptions raised by services and mapped to HTTP responses in main.

Conflicts detected during sync are not exceptions; they are returned to the
client alongside the synced rows.
"""

from __future__ import annotations


class TodoSyncError(Exception):
    """Base exception for all domain errors."""

    status_code = 400


class NotFoundError(TodoSyncError):
    """A referenced user, category, or owned todo does not exist.

    Todos owned by another user are reported with this error as well, so callers
    cannot distinguish "missing" from "not yours".
    """

    status_code = 404


class AccessDeniedError(TodoSyncError):
    """The acting user lacks the privileges required for the operation."""

    status_code = 403

    def __init__(self, message: str = "Access denied: Admin privileges required"):
        super().__init__(message)


class DuplicateError(TodoSyncError):
    """A unique attribute (user email, category name) is already taken."""

    status_code = 409


class InUseError(TodoSyncError):
    """The row is still referenced and cannot be removed."""

    status_code = 409
