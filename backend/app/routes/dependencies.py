"""Request dependencies shared by the API routers."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import Cookie

from ... import app_context

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


def current_user_id(user: Any) -> str:
    """Normalise the identity provider's user object to the store key."""

    user_id = getattr(user, "id", None)
    if user_id is None and isinstance(user, dict):
        user_id = user.get("id")
    return str(user_id)
