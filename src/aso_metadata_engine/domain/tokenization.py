"""ASO-aware tokenization, stopword filtering and token relevance.

Usage example:
    from aso_metadata_engine.domain.tokenization import filter_stopwords, tokenize

    tokens = tokenize("Pimsleur | Language Learning")
    assert tokens == ("pimsleur", "language", "learning")
    assert filter_stopwords(tokens).noise_ratio == 0.0
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

_APOSTROPHES = re.compile(r"['’`]")
_SEPARATORS = re.compile(r"[^\w\s#+-]|[_–—]")
_HYPHEN_RUNS = re.compile(r"(?<!\w)-+|-+(?!\w)")
_WHITESPACE = re.compile(r"\s+")

MIN_KEYWORD_LENGTH = 3

ENGLISH_STOPWORDS = frozenset(
    {
        "a", "about", "after", "all", "also", "an", "and", "any", "are", "as", "at",
        "be", "been", "before", "but", "by", "can", "could", "did", "do", "does",
        "for", "from", "had", "has", "have", "how", "if", "in", "into", "is", "it",
        "its", "just", "may", "might", "more", "most", "must", "no", "not", "of",
        "on", "or", "our", "out", "over", "shall", "should", "so", "than", "that",
        "the", "their", "them", "then", "there", "these", "they", "this", "to", "up",
        "us", "was", "we", "were", "what", "when", "which", "while", "who", "will",
        "with", "would", "you", "your",
    }
)  # fmt: skip

ASO_STOPWORDS = frozenset(
    {
        "app", "apps", "application", "best", "free", "get", "great", "latest", "lite",
        "new", "official", "plus", "premium", "pro", "top", "ultimate", "version",
    }
)  # fmt: skip

# Combo enumeration drops these outright
LOW_VALUE_STOPWORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "from", "as", "is", "was", "are", "be", "been", "have", "has",
        "had", "do", "does", "did", "will", "would", "should", "could", "may",
        "might", "can", "must", "shall",
    }
)  # fmt: skip

_FILLER_TOKEN = re.compile(
    r"^(best|top|great|good|new|latest|free|premium|pro|plus|lite|\d+|one|two|three)$"
)

LANGUAGES = frozenset(
    {
        "english", "spanish", "french", "german", "italian", "chinese", "japanese",
        "korean", "portuguese", "russian", "arabic", "hindi", "mandarin",
    }
)  # fmt: skip

CORE_VERBS = frozenset(
    {
        "learn", "speak", "study", "master", "practice", "improve", "understand",
        "read", "write", "listen", "teach",
    }
)  # fmt: skip

DOMAIN_NOUNS = frozenset(
    {
        "lesson", "lessons", "course", "courses", "class", "classes", "grammar",
        "vocabulary", "pronunciation", "conversation", "fluency", "language",
        "languages", "learning", "tutorial", "training", "education", "skill",
        "skills", "method", "techniques", "guide",
    }
)  # fmt: skip


@dataclass(frozen=True)
class StopwordFilterResult:
    """Keywords kept after filtering, the ignored tokens and their share."""

    keywords: tuple[str, ...]
    ignored: tuple[str, ...]
    noise_ratio: float


def tokenize(text: str | None) -> tuple[str, ...]:
    """Lower-case and split listing text on whitespace, punctuation and visual separators."""
    if not text:
        return ()
    lowered = _APOSTROPHES.sub("", text.lower())
    spaced = _SEPARATORS.sub(" ", lowered)
    spaced = _HYPHEN_RUNS.sub(" ", spaced)
    return tuple(token for token in _WHITESPACE.split(spaced) if token)


def parse_keyword_field(text: str | None) -> tuple[str, ...]:
    """Tokenize a comma-separated keyword field, dropping duplicates in order."""
    if not text:
        return ()
    tokens: list[str] = []
    for entry in text.split(","):
        tokens.extend(tokenize(entry))
    return tuple(dict.fromkeys(tokens))


def is_stopword(token: str, extra: Iterable[str] = ()) -> bool:
    lowered = token.lower()
    return lowered in ENGLISH_STOPWORDS or lowered in ASO_STOPWORDS or lowered in set(extra)


def filter_stopwords(tokens: Iterable[str], extra: Iterable[str] = ()) -> StopwordFilterResult:
    """Split tokens into keywords and ignored noise (stopwords and short tokens)."""
    extra_set = frozenset(word.lower() for word in extra)
    keywords: list[str] = []
    ignored: list[str] = []
    for token in tokens:
        if len(token) < MIN_KEYWORD_LENGTH or is_stopword(token, extra_set):
            ignored.append(token)
        else:
            keywords.append(token)
    total = len(keywords) + len(ignored)
    return StopwordFilterResult(
        keywords=tuple(keywords),
        ignored=tuple(ignored),
        noise_ratio=len(ignored) / total if total else 0.0,
    )


def is_combo_token(token: str) -> bool:
    """True when a token may take part in keyword combinations."""
    return len(token) > 1 and token not in LOW_VALUE_STOPWORDS


def token_relevance(token: str, overrides: Mapping[str, int] | None = None) -> int:
    """Ordinal relevance of a token: 0 filler, 1 neutral, 2 domain noun, 3 core term."""
    lowered = token.lower()
    if overrides and lowered in overrides:
        return max(0, min(3, overrides[lowered]))
    if _FILLER_TOKEN.match(lowered):
        return 0
    if lowered in LANGUAGES or lowered in CORE_VERBS:
        return 3
    if lowered in DOMAIN_NOUNS or lowered in {"app", "application"}:
        return 2
    return 1
