"""Application factory and top-level wiring for Runpath OS.

Brings together configuration, database setup, middleware, routers and the
exception handlers that turn domain errors into response envelopes.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware

from .core.config import settings
from .core.errors import ActionError, action_error_handler, http_exception_handler, validation_exception_handler
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Importing the models registers their tables with the metadata.
from .models import audit as _audit  # noqa: F401
from .models import client as _client  # noqa: F401
from .models import organization as _organization  # noqa: F401
from .models import project as _project  # noqa: F401
from .models import ticket as _ticket  # noqa: F401


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME)
    app.mount("/static", StaticFiles(directory=str(settings.STATIC_DIR)), name="static")

    Base.metadata.create_all(bind=engine)
    run_migrations(engine)

    # Last added runs first: request ids wrap everything, sessions sit inside.
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.APP_SECRET,
        session_cookie=settings.SESSION_COOKIE_NAME,
        max_age=settings.SESSION_MAX_AGE,
        same_site="lax",
        https_only=settings.SESSION_HTTPS_ONLY,
    )
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, hsts=settings.SESSION_HTTPS_ONLY)
    app.add_middleware(RequestIdMiddleware)

    from .routers import api_auth, api_clients, api_projects, api_tickets, api_users, auth_ui, marketing, ui

    app.include_router(marketing.router)
    app.include_router(auth_ui.router)
    app.include_router(ui.router)
    app.include_router(api_auth.router)
    app.include_router(api_tickets.router)
    app.include_router(api_projects.router)
    app.include_router(api_clients.router)
    app.include_router(api_users.router)

    app.add_exception_handler(ActionError, action_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    return app


app = create_app()

__all__ = ["app", "create_app"]
