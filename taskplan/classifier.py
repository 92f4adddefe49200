"""Task classification: free text to a structured TaskDescription."""

from __future__ import annotations

import logging
import re
from typing import List

from .errors import ValidationError
from .lexicon import DEFAULT_LEXICON, Lexicon, filter_words
from .models import TaskDescription, TaskIntent

logger = logging.getLogger("taskplan.classifier")

DEFAULT_MAX_LENGTH = 10_000

_WORD = re.compile(r"[^\W_]+")
_WHITESPACE = re.compile(r"\s+")
_ALNUM = re.compile(r"[^\W_]")


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text).strip()


def extract_words(text: str) -> List[str]:
    """Split text into runs of letters and digits, keeping original case."""
    return _WORD.findall(text)


def extract_intent(words: List[str], lexicon: Lexicon = DEFAULT_LEXICON) -> TaskIntent:
    """First token found in the intent table wins; defaults to feature."""
    for word in words:
        intent = lexicon.intent_for(word)
        if intent is not None:
            return intent
    return TaskIntent.FEATURE


def identify_scope(words: List[str], lexicon: Lexicon = DEFAULT_LEXICON) -> List[str]:
    """Filtered scope keywords, deduplicated in first-seen order."""
    return list(dict.fromkeys(filter_words(words, lexicon)))


class TaskClassifier:
    """Derive intent and scope from a raw task description."""

    def __init__(self, lexicon: Lexicon = DEFAULT_LEXICON, max_length: int = DEFAULT_MAX_LENGTH):
        if max_length < 1:
            raise ValueError("max_length must be positive")
        self.lexicon = lexicon
        self.max_length = max_length

    def classify(self, raw_text: str) -> TaskDescription:
        """Classify ``raw_text``.

        Raises:
            ValidationError: if the text is empty, whitespace-only, longer than
                ``max_length`` after trimming, or has no letters or digits.
        """
        if not isinstance(raw_text, str) or not raw_text.strip():
            raise ValidationError("Task description cannot be empty")

        trimmed = raw_text.strip()
        if len(trimmed) > self.max_length:
            raise ValidationError(f"Task description too long (max {self.max_length} characters)")
        if not _ALNUM.search(trimmed):
            raise ValidationError("Task description must contain letters or numbers")

        text = normalize_whitespace(trimmed)
        words = extract_words(text)
        intent = extract_intent(words, self.lexicon)
        scope = identify_scope(words, self.lexicon)

        logger.debug("Classified task as %s with %d scope keywords", intent.value, len(scope))
        return TaskDescription(title=text, description=text, intent=intent, scope=tuple(scope))
