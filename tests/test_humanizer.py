"""
Tests for the Content Humanizer

Tests each imperfection transform, protection of markup, and the
determinism of the non-random transforms.
"""

import pytest
import random
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.humanizer import (
    add_casual_language,
    add_contractions,
    add_personal_opinion,
    add_typo,
    humanize,
)


class FirstChoice:
    """An rng stand-in that always picks the first option."""

    def choice(self, seq):
        return seq[0]


class TestContractions:
    """Tests for add_contractions."""

    def test_basic_contractions(self):
        assert add_contractions("I do not think it is ready.") == "I don't think it's ready."

    def test_sentence_case_preserved(self):
        assert add_contractions("Do not panic. They are fine.") == "Don't panic. They're fine."

    def test_upper_case_preserved(self):
        assert add_contractions("DO NOT ENTER") == "DON'T ENTER"

    def test_word_boundaries(self):
        """Test that phrases inside longer words are left alone."""
        assert add_contractions("Edit is nothing") == "Edit is nothing"


class TestCasualLanguage:
    """Tests for add_casual_language."""

    def test_replacements(self):
        assert add_casual_language("However, we utilize tools. Therefore it works.") == \
            "But, we use tools. So it works."

    def test_html_tags_untouched(self):
        """Test that attribute values are never rewritten."""
        body = '<p class="however">However, <a href="/therefore">therefore</a>.</p>'
        assert add_casual_language(body) == '<p class="however">But, <a href="/therefore">so</a>.</p>'

    def test_markdown_link_target_untouched(self):
        body = "See [however](https://example.com/however) for more."
        assert add_casual_language(body) == "See [but](https://example.com/however) for more."


class TestTypo:
    """Tests for add_typo."""

    def test_first_the_becomes_teh(self):
        assert add_typo("the cat and the dog") == "teh cat and the dog"

    def test_every_tenth_occurrence(self):
        """Test that the 1st and 11th occurrences change and the rest do not."""
        words = add_typo(" ".join(["the"] * 12)).split()
        assert [i for i, w in enumerate(words) if w == "teh"] == [0, 10]

    def test_case_preserved(self):
        assert add_typo("The end.") == "Teh end."

    def test_other_words_untouched(self):
        assert add_typo("there them other") == "there them other"


class TestProtectedText:
    """Tests for the text the transforms must never rewrite."""

    def test_code_fence_untouched(self):
        body = "The intro.\n```\nx = the\nit is not\n```\nThe end."
        assert add_typo(body) == "Teh intro.\n```\nx = the\nit is not\n```\nThe end."
        assert add_contractions(body) == body

    def test_unclosed_code_fence_untouched(self):
        body = "```python\nvalue = the_default or the"
        assert add_typo(body) == body

    def test_inline_code_untouched(self):
        assert add_casual_language("Use `however()` however you like.") == "Use `however()` but you like."

    def test_html_code_elements_untouched(self):
        body = "<p>It is fine.</p><pre>it is not</pre><code>do not</code>"
        assert add_contractions(body) == "<p>It's fine.</p><pre>it is not</pre><code>do not</code>"

    def test_comparison_is_not_a_tag(self):
        """Test that prose with < and > is still transformed."""
        assert add_contractions("If a < b and it is > c, stop.") == "If a < b and it's > c, stop."


class TestPersonalOpinion:
    """Tests for add_personal_opinion."""

    def test_markdown_first_prose_paragraph(self):
        """Test that headers are skipped and the lead-in opens the first paragraph."""
        body = "# Brewing Basics\n\nThe grind matters most.\n\nSecond paragraph."
        assert add_personal_opinion(body, FirstChoice()) == \
            "# Brewing Basics\n\nIn my experience, the grind matters most.\n\nSecond paragraph."

    def test_html_first_paragraph(self):
        body = "<h2>Brewing Basics</h2><p>The grind matters most.</p>"
        assert add_personal_opinion(body, FirstChoice()) == \
            "<h2>Brewing Basics</h2><p>In my experience, the grind matters most.</p>"

    def test_pronoun_not_lowercased(self):
        assert add_personal_opinion("I grind daily.", FirstChoice()) == "In my experience, I grind daily."

    def test_acronym_not_lowercased(self):
        assert add_personal_opinion("SCA standards matter.", FirstChoice()) == \
            "In my experience, SCA standards matter."

    def test_lists_and_code_skipped(self):
        body = "- item one\n```\ncode here\n```\nThis is actual prose."
        assert add_personal_opinion(body, FirstChoice()).endswith("In my experience, this is actual prose.")

    def test_proper_noun_keeps_capital(self):
        assert add_personal_opinion("Python is my favourite language.", FirstChoice()) == \
            "In my experience, Python is my favourite language."

    def test_word_used_in_lowercase_elsewhere_is_lowercased(self):
        body = "Coffee is best fresh. Buy coffee weekly."
        assert add_personal_opinion(body, FirstChoice()) == \
            "In my experience, coffee is best fresh. Buy coffee weekly."

    def test_no_prose_unchanged(self):
        body = "## Only a header\n- and a list"
        assert add_personal_opinion(body, FirstChoice()) == body


class TestHumanize:
    """Tests for humanize."""

    BODY = ("## Why the grind matters\n\n"
            "However, the grind is the key. It is the first thing to fix.\n\n"
            "[the guide](https://example.com/the-guide) does not cover it.")

    def test_empty_list_returns_input(self):
        assert humanize(self.BODY, []) == self.BODY

    def test_none_list_returns_input(self):
        assert humanize(self.BODY, None) == self.BODY

    def test_deterministic_without_opinion(self):
        """Test that the non-random transforms give identical output on repeated runs."""
        imperfections = ["add_typo", "add_casual_language", "add_contractions"]
        first = humanize(self.BODY, imperfections, random.Random(1))
        second = humanize(self.BODY, imperfections, random.Random(99))
        assert first == second

    def test_newlines_preserved(self):
        imperfections = ["add_personal_opinion", "add_typo", "add_casual_language", "add_contractions"]
        result = humanize(self.BODY, imperfections, random.Random(3))
        assert result.count("\n") == self.BODY.count("\n")

    def test_link_target_preserved(self):
        result = humanize(self.BODY, ["add_typo"])
        assert "(https://example.com/the-guide)" in result

    def test_unknown_tag_ignored(self, capture_logs):
        assert humanize(self.BODY, ["add_emoji"]) == self.BODY
        assert any("add_emoji" in r.getMessage() for r in capture_logs)

    def test_applied_in_order(self):
        """Test that transforms run in list order."""
        result = humanize("It is the plan.", ["add_contractions", "add_typo"])
        assert result == "It's teh plan."
