"""Jinja2 environment shared by every HTML page.

Filters registered here are the only way templates turn stored ticket text
into markup: ``formatted_text`` decides between rich HTML, legacy flag
formatting and sanitized plain text for the current viewer.
"""

from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from typing import Any
from zoneinfo import ZoneInfo

from fastapi.templating import Jinja2Templates

from ..services.formatting import formatting_classes, render_formatted_text
from ..services.text_sanitizer import sanitize_for_developers, strip_html
from .config import settings
from .timeutil import parse_iso

_LOCAL_TZ = ZoneInfo(settings.TZ) if settings.TZ else None

STATUS_LABELS = {
    "open": "Open",
    "in_progress": "In progress",
    "blocked": "Blocked",
    "resolved": "Resolved",
    "closed": "Closed",
}


def _to_dt(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = parse_iso(value, settings.TZ or "UTC")
        if dt is None:
            return None
    else:
        return None

    if dt.tzinfo is None and _LOCAL_TZ:
        dt = dt.replace(tzinfo=_LOCAL_TZ)
    if _LOCAL_TZ:
        dt = dt.astimezone(_LOCAL_TZ)
    return dt


def _fmt_dt(value: Any, fmt: str = "%Y-%m-%d %I:%M %p") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _fmt_date(value: Any, fmt: str = "%Y-%m-%d") -> str:
    dt = _to_dt(value)
    return dt.strftime(fmt) if dt else ""


def _status_label(value: str | None) -> str:
    return STATUS_LABELS.get(value or "", (value or "").replace("_", " ").capitalize())


def _priority_label(value: str | None) -> str:
    return (value or "").capitalize()


def _formatted_text(value: str | None, formatting: Any = None, caps: Any = None) -> Any:
    """``{{ ticket.title|formatted_text(ticket.title_formatting, caps) }}``.

    ``caps`` is the viewer's capability record; without one the text is
    escaped as-is.
    """

    return render_formatted_text(
        value,
        formatting,
        show_as_html=bool(getattr(caps, "can_see_formatting", False)),
        show_as_plain=bool(getattr(caps, "show_as_plain", False)),
    )


@lru_cache
def get_templates() -> Jinja2Templates:
    """Build the shared ``Jinja2Templates`` with our filters registered."""

    templates = Jinja2Templates(directory=str(settings.TEMPLATES_DIR))
    env = templates.env
    env.filters["fmt_dt"] = _fmt_dt
    env.filters["fmt_date"] = _fmt_date
    env.filters["formatted_text"] = _formatted_text
    env.filters["strip_html"] = strip_html
    env.filters["developer_text"] = sanitize_for_developers
    env.filters["formatting_classes"] = formatting_classes
    env.filters["status_label"] = _status_label
    env.filters["priority_label"] = _priority_label
    env.globals["app_name"] = settings.APP_NAME
    return templates
