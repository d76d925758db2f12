"""Common FastAPI dependencies.

Authentication lives with the identity provider; the frontend forwards
the signed-in user's id in the ``X-User-Id`` header.
"""

from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException

from studyplanner.db.session import get_db

__all__ = ["get_db", "get_current_user_id_optional", "require_user_id"]


def get_current_user_id_optional(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
) -> Optional[str]:
    uid = (x_user_id or "").strip()
    return uid or None


def require_user_id(user_id: Optional[str] = Depends(get_current_user_id_optional)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return user_id
