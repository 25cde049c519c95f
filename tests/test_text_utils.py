"""
Test suite for text helpers.
"""

import pytest

from tsrag.src.utils.text_utils import clean_text, generate_title, normalize_query, truncate_preview


class TestNormalizeQuery:
    @pytest.mark.parametrize("query", ["Hello World", "  hello   world ", "HELLO\tWORLD\n"])
    def test_variants_should_share_one_form(self, query: str) -> None:
        assert normalize_query(query) == "hello world"


class TestCleanText:
    def test_control_and_zero_width_characters_should_be_removed(self) -> None:
        assert clean_text("type\u200bScript\x00 is\u00ad typed") == "typeScript is typed"


    def test_newlines_should_survive_while_spaces_collapse(self) -> None:
        assert clean_text("  line   one  \nline\t\ttwo ") == "line one\nline two"


    def test_blank_line_runs_should_collapse_to_one(self) -> None:
        assert clean_text("a\n\n\n\n\nb") == "a\n\nb"


class TestTruncatePreview:
    def test_short_text_should_be_unchanged(self) -> None:
        assert truncate_preview("short", 10) == "short"


    def test_text_at_limit_should_be_unchanged(self) -> None:
        assert truncate_preview("x" * 10, 10) == "x" * 10


    def test_long_text_should_be_cut_and_marked(self) -> None:
        assert truncate_preview("abcdefghijkl", 5) == "abcde..."


class TestGenerateTitle:
    def test_short_question_should_be_kept(self) -> None:
        assert generate_title("  How do   generics work? ") == "How do generics work?"


    def test_long_question_should_cut_at_word_boundary(self) -> None:
        title = generate_title("What is the difference between an interface and an abstract class?")

        assert title == "What is the difference between an interface..."


    def test_question_without_late_space_should_be_hard_cut(self) -> None:
        assert generate_title("a " + "x" * 60, max_length=20) == "a " + "x" * 18 + "..."
