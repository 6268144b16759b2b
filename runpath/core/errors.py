"""Domain errors and the handlers that turn them into response envelopes.

Every ticket, project, and admin action raises one of the ``ActionError``
subclasses below. The exception handlers registered on the app convert them
into the ``{"success": false, "message": ...}`` shape the dashboard and API
clients read, so nothing raised by an action ever reaches a template.
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from markupsafe import escape
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("runpath.errors")

INSUFFICIENT_PERMISSIONS = "Insufficient permissions"
ERROR_PAGE = (
    "<!doctype html><html><head><title>{status}</title>"
    "<link rel=\"stylesheet\" href=\"/static/app.css\"></head>"
    "<body class=\"error-page\"><main><h1>{status}</h1><p>{message}</p>"
    "<p><a href=\"/app\">Back to dashboard</a></p></main></body></html>"
)


class ActionError(Exception):
    """Base class for failures of a user-triggered action."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailed(ActionError):
    """A required field is missing or invalid; raised before any write."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class PermissionDenied(ActionError):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, detail: str | None = None) -> None:
        message = f"{INSUFFICIENT_PERMISSIONS}. {detail}" if detail else INSUFFICIENT_PERMISSIONS
        super().__init__(message)


class NotFound(ActionError):
    status_code = status.HTTP_404_NOT_FOUND


class RemoteWriteFailed(ActionError):
    """The data store rejected a write; the driver message is passed through."""

    status_code = status.HTTP_409_CONFLICT


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"success": False, "code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


def _wants_html(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    path = request.url.path
    return "text/html" in accept and not path.startswith("/api") and not path.startswith("/login")


async def action_error_handler(request: Request, exc: ActionError):
    logger.warning(
        "action.failed",
        extra={
            "extra_data": {
                "error": type(exc).__name__,
                "reason": exc.message,
                "path": request.url.path,
            }
        },
    )
    code = {
        ValidationFailed: "validation_error",
        PermissionDenied: "permission_denied",
        NotFound: "not_found",
        RemoteWriteFailed: "write_failed",
    }.get(type(exc), "action_failed")
    if _wants_html(request):
        body = ERROR_PAGE.format(status=exc.status_code, message=escape(exc.message))
        return HTMLResponse(body, status_code=exc.status_code)
    return ErrorEnvelope(status_code=exc.status_code, code=code, message=exc.message)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_401_UNAUTHORIZED and _wants_html(request):
        return RedirectResponse(url=f"/login?next={request.url.path}", status_code=302)
    detail = exc.detail
    if isinstance(detail, str):
        message = detail
    else:
        message = "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )
