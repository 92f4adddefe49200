"""Lexical tables and the scope keyword filter.

The stop-word, action-verb and intent-keyword tables are immutable
configuration. Classifiers receive a :class:`Lexicon` at construction so
alternate tables can be injected without touching process-wide state.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional

from .models import TaskIntent

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "from", "as", "is", "was", "are", "were", "be",
        "been", "being", "have", "has", "had", "do", "does", "did", "will",
        "would", "should", "could", "can", "may", "might", "must", "this",
        "that", "these", "those", "it", "its",
    }
)

# Verbs describing the act of changing code. Domain nouns such as "feature",
# "bug" or "test" are deliberately absent so they survive filtering.
ACTION_VERBS = frozenset(
    {
        "add", "create", "implement", "build", "fix", "improve", "optimize",
        "clean", "restructure", "reorganize", "document", "update", "remove",
        "delete", "refactor", "modify", "change", "write", "make",
    }
)

# Insertion order matters only for readability; lookups are per token.
INTENT_KEYWORDS: Mapping[str, TaskIntent] = MappingProxyType(
    {
        **dict.fromkeys(
            ("add", "create", "implement", "build", "new", "feature", "features"),
            TaskIntent.FEATURE,
        ),
        **dict.fromkeys(
            ("fix", "bug", "bugs", "broken", "error", "errors", "issue", "issues", "crash"),
            TaskIntent.BUGFIX,
        ),
        **dict.fromkeys(
            ("refactor", "improve", "optimize", "clean", "restructure", "reorganize"),
            TaskIntent.REFACTOR,
        ),
        **dict.fromkeys(
            ("document", "docs", "readme", "guide", "comment", "comments"),
            TaskIntent.DOCUMENTATION,
        ),
        **dict.fromkeys(
            ("test", "tests", "spec", "specs", "testing", "coverage", "unit", "integration"),
            TaskIntent.TEST,
        ),
    }
)

_HAS_LETTER = re.compile(r"[^\W\d_]")


@dataclass(frozen=True, slots=True)
class Lexicon:
    """Immutable word tables used by the filter and the classifier."""

    stop_words: frozenset = STOP_WORDS
    action_verbs: frozenset = ACTION_VERBS
    intent_keywords: Mapping[str, TaskIntent] = field(default_factory=lambda: INTENT_KEYWORDS)

    def __post_init__(self) -> None:
        object.__setattr__(self, "stop_words", frozenset(w.lower() for w in self.stop_words))
        object.__setattr__(self, "action_verbs", frozenset(w.lower() for w in self.action_verbs))
        object.__setattr__(
            self,
            "intent_keywords",
            MappingProxyType({k.lower(): TaskIntent(v) for k, v in self.intent_keywords.items()}),
        )

    def with_overrides(
        self,
        *,
        stop_words: Optional[Iterable[str]] = None,
        action_verbs: Optional[Iterable[str]] = None,
        intent_keywords: Optional[Mapping[str, TaskIntent | str]] = None,
    ) -> "Lexicon":
        """Return a copy with any of the three tables replaced."""
        return Lexicon(
            stop_words=frozenset(stop_words) if stop_words is not None else self.stop_words,
            action_verbs=frozenset(action_verbs) if action_verbs is not None else self.action_verbs,
            intent_keywords=intent_keywords if intent_keywords is not None else self.intent_keywords,
        )

    def intent_for(self, token: str) -> Optional[TaskIntent]:
        return self.intent_keywords.get(token.lower())


DEFAULT_LEXICON = Lexicon()


def is_keyword_candidate(word: str) -> bool:
    """At least two characters and at least one letter."""
    return len(word) >= 2 and _HAS_LETTER.search(word) is not None


def filter_words(tokens: Iterable[str], lexicon: Lexicon = DEFAULT_LEXICON) -> List[str]:
    """Return the lowercased tokens that are meaningful scope signals.

    Order of occurrence is preserved; duplicates are kept for the caller to
    collapse.
    """
    kept: List[str] = []
    for token in tokens:
        word = token.lower()
        if word in lexicon.stop_words or word in lexicon.action_verbs:
            continue
        if is_keyword_candidate(word):
            kept.append(word)
    return kept
