"""Unit tests for the lexical tables and the scope keyword filter."""

import dataclasses

import pytest

from taskplan.lexicon import (
    ACTION_VERBS,
    DEFAULT_LEXICON,
    STOP_WORDS,
    Lexicon,
    filter_words,
    is_keyword_candidate,
)
from taskplan.models import TaskIntent


class TestFilterWords:
    """Test cases for filter_words."""

    def test_example_with_injected_tables(self):
        """Stop words and action verbs from the injected lexicon are dropped."""
        lexicon = Lexicon(stop_words={"to", "the"}, action_verbs={"add"})
        tokens = ["Add", "user", "authentication", "to", "the", "API"]

        assert filter_words(tokens, lexicon) == ["user", "authentication", "api"]

    def test_drops_short_and_letterless_tokens(self):
        assert filter_words(["x", "42", "v2", "db"]) == ["v2", "db"]

    def test_domain_nouns_survive(self):
        assert filter_words(["feature", "bug", "test"]) == ["feature", "bug", "test"]

    def test_preserves_order_and_duplicates(self):
        assert filter_words(["parser", "API", "api", "cache"]) == ["parser", "api", "api", "cache"]

    def test_default_tables_exclude_common_words(self):
        result = filter_words(["Implement", "the", "cache", "and", "update", "it", "should", "work"])
        assert result == ["cache", "work"]

    def test_never_returns_table_members(self):
        tokens = sorted(STOP_WORDS | ACTION_VERBS) + ["router"]
        assert filter_words(tokens) == ["router"]


class TestKeywordCandidate:
    @pytest.mark.parametrize(
        "word, expected",
        [("ab", True), ("a", False), ("12", False), ("h2", True), ("naïve", True), ("__", False)],
    )
    def test_is_keyword_candidate(self, word, expected):
        assert is_keyword_candidate(word) is expected


class TestLexicon:
    """Test cases for the immutable Lexicon."""

    def test_tables_are_lowercased(self):
        lexicon = Lexicon(stop_words={"FOO"}, action_verbs={"Bar"}, intent_keywords={"Fix": "bugfix"})

        assert "foo" in lexicon.stop_words
        assert "bar" in lexicon.action_verbs
        assert lexicon.intent_for("FIX") is TaskIntent.BUGFIX

    def test_lexicon_is_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            DEFAULT_LEXICON.stop_words = frozenset()

    def test_intent_table_is_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_LEXICON.intent_keywords["deploy"] = TaskIntent.FEATURE

    def test_with_overrides_replaces_only_given_tables(self):
        custom = DEFAULT_LEXICON.with_overrides(intent_keywords={"deploy": TaskIntent.FEATURE})

        assert custom.intent_for("deploy") is TaskIntent.FEATURE
        assert custom.intent_for("fix") is None
        assert custom.stop_words == DEFAULT_LEXICON.stop_words
        assert DEFAULT_LEXICON.intent_for("fix") is TaskIntent.BUGFIX

    def test_default_intent_table(self):
        assert DEFAULT_LEXICON.intent_for("crash") is TaskIntent.BUGFIX
        assert DEFAULT_LEXICON.intent_for("readme") is TaskIntent.DOCUMENTATION
        assert DEFAULT_LEXICON.intent_for("coverage") is TaskIntent.TEST
        assert DEFAULT_LEXICON.intent_for("restructure") is TaskIntent.REFACTOR
        assert DEFAULT_LEXICON.intent_for("new") is TaskIntent.FEATURE
        assert DEFAULT_LEXICON.intent_for("login") is None
