from __future__ import annotations

from fastapi import HTTPException, Request, status

SESSION_USER_KEY = "user_id"


def session_user_id(request: Request) -> str | None:
    if "session" not in request.scope:
        return None
    value = request.session.get(SESSION_USER_KEY)
    return str(value) if value else None


def login_session(request: Request, user_id: str) -> None:
    request.session.clear()
    request.session[SESSION_USER_KEY] = user_id


def logout_session(request: Request) -> None:
    request.session.clear()


async def require_ui_session(request: Request) -> str:
    """Gate for UI routes; a 401 here is turned into a redirect to /login."""

    user_id = session_user_id(request)
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return user_id
