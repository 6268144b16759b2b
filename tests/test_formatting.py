"""Tests for the viewer-dependent ticket text renderer."""

import os
import sys
from pathlib import Path

from markupsafe import Markup

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from runpath.services.formatting import formatting_classes, normalize_highlights, render_formatted_text


def test_plain_wins_over_html_when_both_flags_are_set():
    html = "<p><strong>LOUD</strong> NEWS!</p>"
    rendered = render_formatted_text(html, {"bold": True}, show_as_html=True, show_as_plain=True)
    assert rendered == "Loud news"
    assert "<" not in rendered


def test_plain_output_is_escaped():
    rendered = render_formatted_text("&lt;script&gt;x&lt;/script&gt; a < b", show_as_plain=True)
    assert isinstance(rendered, Markup)
    assert "<script>" not in str(rendered)


def test_html_path_wraps_stored_markup():
    rendered = render_formatted_text("<p>Hello <em>there</em></p>", show_as_html=True)
    assert rendered == Markup('<div class="rich-text-content"><p>Hello <em>there</em></p></div>')


def test_html_path_requires_a_tag():
    rendered = render_formatted_text("just words", show_as_html=True)
    assert rendered == "just words"


def test_html_is_escaped_for_viewers_without_formatting_rights():
    rendered = render_formatted_text("<b>hi</b>")
    assert str(rendered) == "&lt;b&gt;hi&lt;/b&gt;"


def test_legacy_flags_render_one_span_per_line():
    rendered = render_formatted_text("first line\nsecond line", {"bold": True, "allCaps": True})
    assert str(rendered) == (
        '<span class="font-bold">FIRST LINE</span><br><span class="font-bold">SECOND LINE</span>'
    )


def test_legacy_flags_escape_content():
    rendered = render_formatted_text("a & b", {"italic": True})
    assert str(rendered) == '<span class="italic">a &amp; b</span>'


def test_all_false_flags_fall_through_to_escaped_text():
    rendered = render_formatted_text("plain", {"bold": False})
    assert rendered == "plain"


def test_empty_text_renders_nothing():
    assert render_formatted_text(None, show_as_plain=True) == Markup("")
    assert render_formatted_text("", {"bold": True}) == Markup("")


def test_formatting_classes_join_in_flag_order():
    assert formatting_classes({"underline": True, "bold": True}) == "font-bold underline"
    assert formatting_classes(None) == ""


def test_highlight_spans_get_padding_once():
    html = '<span style="background-color: #fef08a">mark</span>'
    once = normalize_highlights(html)
    assert "padding: 0 2px" in once
    assert normalize_highlights(once) == once


def test_other_background_colors_are_untouched():
    html = '<span style="background-color: #ff0000">red</span>'
    assert normalize_highlights(html) == html
