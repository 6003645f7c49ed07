"""Tests for the comment text helpers."""

import pytest

from reviewtask_core.utils.text import (
    classify_priority,
    clean_description,
    has_suggestion,
    is_acknowledgement,
    strip_code,
    strip_markup,
)


class TestAcknowledgement:
    @pytest.mark.parametrize(
        "body",
        ["LGTM", "lgtm!", "Looks good to me, thanks!", "Thank you so much", "+1", "👍", "", "   ", "Done."],
    )
    def test_acknowledgements(self, body):
        assert is_acknowledgement(body) is True

    @pytest.mark.parametrize(
        "body",
        [
            "Please rename this variable",
            "Thanks! But please add a test for the error path as well.",
            "LGTM once the typo is fixed",
            "nit: trailing whitespace",
        ],
    )
    def test_requests_are_not_acknowledgements(self, body):
        assert is_acknowledgement(body) is False

    def test_suggestion_block_is_never_an_acknowledgement(self):
        assert is_acknowledgement("```suggestion\nreturn None\n```") is False

    def test_html_bot_markers_ignored(self):
        assert is_acknowledgement("<!-- review-bot -->\nLGTM") is True


class TestMarkup:
    def test_strip_markup_removes_comments_and_tags(self):
        assert strip_markup("<!-- meta -->Hello <b>world</b>") == "Hello world"

    def test_strip_markup_removes_details_blocks(self):
        text = "Fix this.\n<details><summary>Log</summary>\nlots of output\n</details>"
        assert strip_markup(text).strip() == "Fix this."

    def test_strip_code_removes_fences(self):
        assert strip_code("Use this:\n```python\nfoo()\n```\nthanks").split() == ["Use", "this:", "thanks"]

    def test_has_suggestion(self):
        assert has_suggestion("Try:\n```suggestion\nx = 1\n```")
        assert not has_suggestion("```python\nx = 1\n```")


class TestCleanDescription:
    def test_single_line_and_emphasis_removed(self):
        assert clean_description("**Please** rename\n\n`foo` to `bar`") == "Please rename `foo` to `bar`"

    def test_headings_and_list_markers_removed(self):
        assert clean_description("## Issues\n- fix a\n- [ ] fix b") == "Issues fix a fix b"

    def test_code_blocks_dropped(self):
        assert clean_description("Use this:\n```python\nfoo()\n```") == "Use this:"

    def test_truncates_with_ellipsis(self):
        result = clean_description("word " * 60, max_chars=40)
        assert len(result) <= 40
        assert result.endswith("…")

    def test_zero_max_chars_disables_truncation(self):
        text = "x" * 300
        assert clean_description(text, max_chars=0) == text


class TestPriority:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("This is a security hole", "critical"),
            ("This should handle None, and it's a security risk", "critical"),
            ("This should handle None", "high"),
            ("The result is wrong for empty lists", "high"),
            ("nit: trailing space", "low"),
            ("Consider extracting a helper", "low"),
            ("Rename this variable", "medium"),
            ("", "medium"),
        ],
    )
    def test_priority_levels(self, text, expected):
        assert classify_priority(text) == expected
