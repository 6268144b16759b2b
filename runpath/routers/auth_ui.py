from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..core.jinja import get_templates
from ..crud.users import authenticate
from ..db.session import get_db
from ..deps.ui_auth import login_session, logout_session, session_user_id

router = APIRouter()
templates = get_templates()
logger = logging.getLogger("runpath.auth")


def _safe_next(value: str | None) -> str:
    # Only same-site relative paths.
    if not value or not value.startswith("/") or value.startswith("//"):
        return "/app"
    return value


@router.get("/login", response_class=HTMLResponse)
def login_page(request: Request, next: str = "/app"):
    if session_user_id(request):
        return RedirectResponse(url=_safe_next(next), status_code=302)
    return templates.TemplateResponse(request, "login.html", {"next": _safe_next(next), "error": ""})


@router.post("/login", response_class=HTMLResponse)
def login_submit(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form("/app"),
    db: Session = Depends(get_db),
):
    profile = authenticate(db, email, password)
    if profile is None:
        logger.warning("auth.login_rejected", extra={"extra_data": {"email": email.strip().lower()}})
        return templates.TemplateResponse(
            request,
            "login.html",
            {"next": _safe_next(next), "error": "Invalid email or password", "email": email},
            status_code=401,
        )
    login_session(request, profile.user_id)
    logger.info("auth.login", extra={"extra_data": {"user_id": profile.user_id}})
    return RedirectResponse(url=_safe_next(next), status_code=302)


@router.get("/logout")
def logout(request: Request):
    logout_session(request)
    return RedirectResponse(url="/login", status_code=302)
