"""Plain-text and rich-text cleanup for ticket titles and descriptions.

Three helpers live here:

* ``sanitize_for_developers`` turns stored ticket text into calm plain text
  for developer-path viewers: no markup, no emoji, no exclamation marks, and
  shouting converted to sentence case.
* ``strip_html`` is the lighter cleanup used by list views and the legacy
  formatting path.
* ``clean_rich_text`` is the write-time allow-list applied to anything a
  user submits from the rich-text editor, so that stored HTML can later be
  rendered as-is.
"""

from __future__ import annotations

import re

import nh3

TAG_RE = re.compile(r"<[^>]*>")
WHITESPACE_RE = re.compile(r"\s+")
INLINE_SPACE_RE = re.compile(r"[ \t\f\v]+")
SENTENCE_SPLIT_RE = re.compile(r"([.!?]\s+)")

# Order matters: ``&amp;`` is decoded before ``&lt;``/``&gt;``.
HTML_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
)

# Hand-maintained emoji blocklist carried over unchanged from the first
# dashboard release. Note U+24C2..U+1F251 is one wide span that also covers
# CJK and other scripts above the enclosed alphanumerics.
EMOJI_RE = re.compile(
    "["
    "\U0001F600-\U0001F64F"  # emoticons
    "\U0001F300-\U0001F5FF"  # symbols and pictographs
    "\U0001F680-\U0001F6FF"  # transport and map
    "\U0001F1E0-\U0001F1FF"  # flags
    "\u2600-\u26FF"  # miscellaneous symbols
    "\u2700-\u27BF"  # dingbats
    "\U0001F900-\U0001F9FF"  # supplemental symbols and pictographs
    "\U0001FA00-\U0001FA6F"  # chess symbols
    "\U0001FA70-\U0001FAFF"  # symbols and pictographs extended-A
    "\u2190-\u21FF"  # arrows
    "\u2300-\u23FF"  # miscellaneous technical
    "\u2B50-\u2B55"
    "\u3030-\u303F"
    "\uFE00-\uFE0F"  # variation selectors
    "\U0001F018-\U0001F270"
    "\u24C2-\U0001F251"
    "\U0001F004-\U0001F0CF"
    "\U0001F170-\U0001F251"
    "\u200D"  # zero width joiner
    "\u20E3"  # combining enclosing keycap
    "]"
)

RICH_TEXT_TAGS = {
    "p", "br", "div", "strong", "b", "em", "i", "u", "s", "ul", "ol", "li",
    "a", "blockquote", "h1", "h2", "h3", "code", "pre", "span", "mark",
}
RICH_TEXT_ATTRIBUTES = {
    "a": {"href", "target"},
    "span": {"style"},
    "mark": {"style"},
    "p": {"style"},
}
RICH_TEXT_STYLE_PROPERTIES = {"background-color", "color"}


def decode_entities(text: str) -> str:
    for entity, replacement in HTML_ENTITIES:
        text = text.replace(entity, replacement)
    return text


def has_html_tag(text: str | None) -> bool:
    return bool(text) and re.search(r"<[^>]+>", text) is not None


def strip_html(html: str | None, keep_newlines: bool = False) -> str:
    """Remove tags, decode the common entities and collapse whitespace.

    With ``keep_newlines`` line breaks survive and only runs of spaces and
    tabs inside each line are collapsed.
    """

    if not html:
        return ""
    text = decode_entities(TAG_RE.sub("", html))
    if keep_newlines:
        lines = (INLINE_SPACE_RE.sub(" ", line).strip() for line in text.splitlines())
        return "\n".join(lines).strip("\n")
    return WHITESPACE_RE.sub(" ", text).strip()


def _strip_noise(text: str) -> str:
    text = TAG_RE.sub("", text)
    text = decode_entities(text)
    text = EMOJI_RE.sub("", text)
    return text.replace("!", "")


def _is_shouting(text: str) -> bool:
    letters = "".join(ch for ch in text if ch.isalpha())
    return len(letters) >= 2 and letters.isupper()


def _capitalize_first_letter(segment: str) -> str:
    for index, ch in enumerate(segment):
        if ch.isalpha():
            return segment[:index] + ch.upper() + segment[index + 1:].lower()
    return segment


def to_sentence_case(text: str) -> str:
    """Capitalize the first letter of every sentence and lowercase the rest."""

    parts = SENTENCE_SPLIT_RE.split(text)
    return "".join(_capitalize_first_letter(part) for part in parts)


def sanitize_for_developers(text: str | None) -> str:
    """Return plain text with markup, emoji, ``!`` and all-caps shouting removed.

    >>> sanitize_for_developers("<b>HELLO WORLD!</b>")
    'Hello world'
    """

    if not text:
        return ""

    # Decoding can reveal new tags or entities (``&lt;b&gt;``), so repeat
    # until nothing changes; the result is then stable under re-sanitizing.
    cleaned = _strip_noise(text)
    while True:
        again = _strip_noise(cleaned)
        if again == cleaned:
            break
        cleaned = again

    if _is_shouting(cleaned):
        cleaned = to_sentence_case(cleaned)

    return WHITESPACE_RE.sub(" ", cleaned).strip()


def clean_rich_text(html: str | None) -> str | None:
    """Allow-list sanitize editor HTML before it is stored."""

    if html is None:
        return None
    if not has_html_tag(html):
        return html
    return nh3.clean(
        html,
        tags=RICH_TEXT_TAGS,
        attributes=RICH_TEXT_ATTRIBUTES,
        filter_style_properties=RICH_TEXT_STYLE_PROPERTIES,
    )


__all__ = [
    "clean_rich_text",
    "decode_entities",
    "has_html_tag",
    "sanitize_for_developers",
    "strip_html",
    "to_sentence_case",
]
