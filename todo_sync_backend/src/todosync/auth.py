from __future__ import annotations

from typing import Optional

from fastapi import Request

from .settings import get_settings


# PUBLIC_INTERFACE
def get_admin_user_dependency():
    """
    Return a FastAPI dependency callable that yields the acting admin's user id.

    The id is read from the header configured by ADMIN_HEADER
    (default: X-Admin-User-Id). Whether that user really is an admin is
    decided by the category services, which raise AccessDeniedError otherwise.

    Usage:
        from .auth import get_admin_user_dependency
        admin_dep = get_admin_user_dependency()
        @router.post("/")
        def create(admin_user_id: Optional[str] = Depends(admin_dep)): ...
    """
    header_name = get_settings().admin_header

    async def _admin_user_id(request: Request) -> Optional[str]:
        """Return the header value, or None when it is absent or blank."""
        value = request.headers.get(header_name)
        if value is None or not value.strip():
            return None
        return value.strip()

    return _admin_user_id
