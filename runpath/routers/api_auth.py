from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from ..core.security import issue_token_pair, refresh_access_token
from ..crud.common import Actor
from ..crud.users import authenticate, change_password
from ..db.session import get_db
from ..deps.auth import get_current_actor
from ..schemas.auth import LoginRequest, PasswordChange, RefreshRequest, TokenResponse
from ..schemas.common import ActionResult

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])
logger = logging.getLogger("runpath.auth")


@router.post("/token", response_model=TokenResponse, summary="Exchange email and password for JWTs")
def exchange_token(payload: LoginRequest, db: Session = Depends(get_db)):
    profile = authenticate(db, payload.email, payload.password)
    if profile is None:
        logger.warning("auth.token_rejected", extra={"extra_data": {"email": payload.email.strip().lower()}})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    pair = issue_token_pair(subject=profile.user_id, org_id=str(profile.org_id))
    return TokenResponse(**pair.model_dump())


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
def refresh_token(payload: RefreshRequest):
    try:
        pair = refresh_access_token(payload.refresh_token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return TokenResponse(**pair.model_dump())


@router.post("/password", response_model=ActionResult)
def update_password(
    payload: PasswordChange,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    change_password(db, actor, payload.current_password, payload.new_password)
    return ActionResult(success=True, message="Password updated successfully")
