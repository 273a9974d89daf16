"""Tests for the shared validation module."""

from __future__ import annotations

from stagewise.validation import html_to_text, sanitize_actor, sanitize_role


class TestSanitizeActor:
    """sanitize_actor() pure function tests."""

    def test_valid_simple(self) -> None:
        assert sanitize_actor("alice") == ("alice", None)

    def test_strips_whitespace(self) -> None:
        assert sanitize_actor("  spaced  ") == ("spaced", None)

    def test_at_max_length(self) -> None:
        assert sanitize_actor("a" * 128) == ("a" * 128, None)

    def test_over_max_length(self) -> None:
        cleaned, err = sanitize_actor("a" * 129)
        assert cleaned == ""
        assert err is not None
        assert "128" in err

    def test_whitespace_only(self) -> None:
        cleaned, err = sanitize_actor("   ")
        assert cleaned == ""
        assert err is not None
        assert "empty" in err

    def test_not_a_string(self) -> None:
        _, err = sanitize_actor(None)
        assert err == "actor must be a string"

    def test_control_char(self) -> None:
        cleaned, err = sanitize_actor("\nbad")
        assert cleaned == ""
        assert err is not None
        assert "U+000A" in err

    def test_format_char(self) -> None:
        _, err = sanitize_actor("zero\u200bwidth")
        assert err is not None
        assert "control" in err


class TestSanitizeRole:
    def test_lowercases(self) -> None:
        assert sanitize_role(" Reviewer ") == ("reviewer", None)

    def test_underscores_and_digits(self) -> None:
        assert sanitize_role("tier_2") == ("tier_2", None)

    def test_must_start_with_letter(self) -> None:
        cleaned, err = sanitize_role("2nd")
        assert cleaned == ""
        assert err is not None
        assert "must match" in err

    def test_rejects_spaces(self) -> None:
        _, err = sanitize_role("client manager")
        assert err is not None

    def test_not_a_string(self) -> None:
        assert sanitize_role(7) == ("", "role must be a string")


class TestHtmlToText:
    def test_empty(self) -> None:
        assert html_to_text("") == ""

    def test_inline_tags_dropped(self) -> None:
        assert html_to_text("<p>See <b>bold</b> and <i>italic</i></p>") == "See bold and italic"

    def test_block_tags_become_lines(self) -> None:
        assert html_to_text("<p>first</p><p>second</p><ul><li>a</li><li>b</li></ul>") == "first\nsecond\na\nb"

    def test_br(self) -> None:
        assert html_to_text("one<br>two") == "one\ntwo"

    def test_entities_decoded(self) -> None:
        assert html_to_text("Fish &amp; chips &lt;3") == "Fish & chips <3"

    def test_nbsp_collapsed(self) -> None:
        assert html_to_text("a&nbsp;&nbsp; b") == "a b"

    def test_plain_text_passthrough(self) -> None:
        assert html_to_text("just words") == "just words"
