#!/usr/bin/env python3
"""
ABOUTME: Tests for markup stripping and text normalization
"""

import pytest

import _correction_review_helpers  # noqa: F401  (sets up sys.path)
from correction_review.normalizer import normalize, strip_markup_tags


class TestStripMarkupTags:
    """Tests for strip_markup_tags"""

    def test_style_tag_and_following_space(self):
        assert strip_markup_tags("<{ch_head}> Dutch (Moroccan)") == "Dutch (Moroccan)"

    def test_inline_format_tags(self):
        assert strip_markup_tags("a <[b]>bold<[/b]> word") == "a bold word"

    def test_bracket_annotation_tags(self):
        assert strip_markup_tags("[note]see here[/note]") == "see here"

    def test_plain_brackets_are_text(self):
        """Footnote markers and bracketed prose are not markup"""
        assert strip_markup_tags("as shown [1] and [see above]") == "as shown [1] and [see above]"

    def test_nested_tags_removed_completely(self):
        assert strip_markup_tags("<{<[b]>x}>Title") == "Title"

    def test_braces_without_angle_brackets_stay(self):
        assert strip_markup_tags("3 + 5 = 9 {Author: ...}") == "3 + 5 = 9 {Author: ...}"

    def test_empty(self):
        assert strip_markup_tags("") == ""
        assert strip_markup_tags(None) == ""


class TestNormalize:
    """Tests for normalize"""

    def test_scenario_heading_marker(self):
        assert normalize("<{ch_head}> Dutch (Moroccan)") == normalize("Dutch (Moroccan)")

    def test_trims_outer_whitespace_only(self):
        assert normalize("  two  spaces  ") == "two  spaces"

    @pytest.mark.parametrize("text", [
        "",
        "   ",
        "<{ch_head}> Heading",
        "<{<[b]>x}> nested <[i]>tags<[/i]>",
        "[a][/a] [b]",
        "  keep\tinner\nwhitespace  ",
        "<{p}><{q}> stacked",
    ])
    def test_idempotent(self, text):
        once = normalize(text)
        assert normalize(once) == once
