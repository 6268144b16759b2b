"""Resolve the signed-in ``Actor`` from a dashboard session or a bearer JWT."""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param
from sqlalchemy.orm import Session

from ..core.security import decode_token
from ..crud.common import Actor, load_actor
from ..db.session import get_db
from ..middlewares import org_ctx_var, principal_ctx_var
from .ui_auth import require_ui_session, session_user_id


def _unauthorized(detail: str = "Authorization required") -> None:
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _bind(request: Request, actor: Actor, scheme: str) -> Actor:
    principal = f"{scheme}:{actor.user_id}"
    principal_ctx_var.set(principal)
    org_ctx_var.set(str(actor.org_id))
    request.state.principal = principal
    request.state.org_id = actor.org_id
    request.state.actor = actor
    return actor


def _actor_or_401(db: Session, user_id: str) -> Actor:
    actor = load_actor(db, user_id)
    if actor is None:
        _unauthorized("Unknown user")
    return actor


async def get_current_actor(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    db: Session = Depends(get_db),
) -> Actor:
    """API gate: a dashboard session wins, otherwise a bearer access token."""

    user_id = session_user_id(request)
    if user_id:
        return _bind(request, _actor_or_401(db, user_id), "session")

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_token(credentials, verify_type="access")
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
            return _bind(request, _actor_or_401(db, payload.sub), "jwt")
    _unauthorized()


async def get_ui_actor(
    request: Request,
    user_id: str = Depends(require_ui_session),
    db: Session = Depends(get_db),
) -> Actor:
    actor = load_actor(db, user_id)
    if actor is None:
        request.session.clear()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Login required")
    return _bind(request, actor, "session")
