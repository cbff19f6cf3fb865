"""
Unit tests for core/markdown/inline.py - inline run tokenizer
"""
import pytest

from core.markdown.inline import tokenize_inline, strip_markdown


class TestTokenizeInline:
    """Test styled run tokenization."""

    def test_plain_text_single_run(self):
        """Text without markup is one unstyled run."""
        runs = tokenize_inline("just words")
        assert len(runs) == 1
        assert runs[0].text == "just words"
        assert not (runs[0].bold or runs[0].italic or runs[0].code)

    def test_bold_variants(self):
        """Both ** and __ mark bold."""
        assert tokenize_inline("**a**")[0].bold
        assert tokenize_inline("__a__")[0].bold

    def test_italic_variants(self):
        """Both * and _ mark italic."""
        assert tokenize_inline("*a*")[0].italic
        assert tokenize_inline("_a_")[0].italic

    def test_bold_italic(self):
        """*** marks both bold and italic."""
        run = tokenize_inline("***both***")[0]
        assert run.bold and run.italic

    def test_nested_italic_inside_bold(self):
        """Italic inside bold keeps bold on the inner run."""
        runs = tokenize_inline("**bold *and italic* text**")
        assert [(r.text, r.bold, r.italic) for r in runs] == [
            ("bold ", True, False), ("and italic", True, True), (" text", True, False),
        ]

    def test_inline_code_is_literal(self):
        """Markup inside backticks is not interpreted."""
        runs = tokenize_inline("use `**kwargs` here")
        assert runs[1].text == "**kwargs"
        assert runs[1].code is True
        assert runs[1].bold is False

    def test_link(self):
        """Links keep their text and target."""
        runs = tokenize_inline("see [docs](https://example.com/docs)")
        assert runs[1].text == "docs"
        assert runs[1].link == "https://example.com/docs"

    def test_snake_case_is_not_italic(self):
        """Underscores inside words are literal."""
        runs = tokenize_inline("call snake_case_name now")
        assert len(runs) == 1
        assert runs[0].text == "call snake_case_name now"

    def test_adjacent_same_style_runs_merge(self):
        """Neighbouring runs with one style collapse into one."""
        runs = tokenize_inline("a ![](x.png) b")
        assert len(runs) == 1
        assert runs[0].text == "a  b"

    def test_empty(self):
        """Empty text has no runs."""
        assert tokenize_inline("") == []


class TestStripMarkdown:
    """Test markup removal."""

    def test_strips_emphasis_and_code(self):
        """Emphasis and code markers are removed."""
        assert strip_markdown("**Bold** and *it* with `x`") == "Bold and it with x"

    def test_keeps_link_text(self):
        """Links collapse to their text."""
        assert strip_markdown("[Home](https://a.b)") == "Home"

    def test_removes_images(self):
        """Images disappear entirely."""
        assert strip_markdown("before ![alt](x.png)") == "before"
