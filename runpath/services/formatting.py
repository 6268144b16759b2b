"""Decide how a ticket title or description is shown to the current viewer.

The caller passes the two visibility flags it derived from the viewer's
capabilities. Precedence, first match wins:

1. ``show_as_plain``: developer-path plain text (escaped).
2. ``show_as_html`` and the text contains a tag: stored rich HTML, trusted
   because it was allow-list sanitized when it was written.
3. legacy formatting flags: a styled span per line.
4. otherwise the text itself, escaped.
"""

from __future__ import annotations

import re
from typing import Mapping

from markupsafe import Markup, escape

from .text_sanitizer import has_html_tag, sanitize_for_developers, strip_html

STYLE_ATTR_RE = re.compile(r'style="([^"]*background-color[^"]*)"([^>]*)>', re.IGNORECASE)
HIGHLIGHT_COLORS = ("#fef08a", "rgb(254, 240, 138)", "yellow")
HIGHLIGHT_PADDING = "; padding: 0 2px; border-radius: 2px"

FLAG_CLASSES = (
    ("bold", "font-bold"),
    ("italic", "italic"),
    ("underline", "underline"),
    ("highlight", "bg-yellow-400/20 px-1 rounded"),
)


def _pad_highlight(match: re.Match[str]) -> str:
    style, rest = match.group(1), match.group(2)
    if any(color in style for color in HIGHLIGHT_COLORS) and "padding" not in style:
        style += HIGHLIGHT_PADDING
    return f'style="{style}"{rest}>'


def normalize_highlights(html: str) -> str:
    """Give editor highlight spans a little padding so they stay visible."""

    return STYLE_ATTR_RE.sub(_pad_highlight, html)


def formatting_classes(formatting: Mapping[str, object] | None) -> str:
    if not formatting:
        return ""
    return " ".join(css for flag, css in FLAG_CLASSES if formatting.get(flag))


def _render_legacy(text: str, formatting: Mapping[str, object]) -> Markup:
    display = strip_html(text, keep_newlines=True)
    if formatting.get("allCaps"):
        display = display.upper()
    css = formatting_classes(formatting)
    class_attr = Markup(' class="{}"').format(css) if css else Markup("")
    lines = display.split("\n")
    spans = [Markup("<span{}>{}</span>").format(class_attr, line) for line in lines]
    return Markup("<br>").join(spans)


def render_formatted_text(
    text: str | None,
    formatting: Mapping[str, object] | None = None,
    show_as_html: bool = False,
    show_as_plain: bool = False,
) -> Markup:
    if not text:
        return Markup("")

    if show_as_plain:
        return escape(sanitize_for_developers(text))

    if show_as_html and has_html_tag(text):
        # Stored HTML went through clean_rich_text on write.
        return Markup('<div class="rich-text-content">{}</div>').format(Markup(normalize_highlights(text)))

    if formatting and any(formatting.values()):
        return _render_legacy(text, formatting)

    return escape(text)


__all__ = ["formatting_classes", "normalize_highlights", "render_formatted_text"]
