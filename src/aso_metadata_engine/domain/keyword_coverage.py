"""Keyword coverage across the title, subtitle and description.

Each element contributes the keywords that survive stopword filtering. The subtitle
and description only report keywords the earlier elements did not already use, and
every list is ordered by token relevance (highest first, ties in listing order).

Usage example:
    from aso_metadata_engine.domain.keyword_coverage import analyze_keyword_coverage

    coverage = analyze_keyword_coverage("Pimsleur Language Learning", "Speak Spanish Fast")
    assert coverage.subtitle_new_keywords == ("speak", "spanish", "fast")
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from .tokenization import filter_stopwords, token_relevance, tokenize

DESCRIPTION_KEYWORD_LIMIT = 20


@dataclass(frozen=True)
class KeywordCoverage:
    """Keywords each element adds, with per-element ignored-token counts."""

    total_unique_keywords: int
    title_keywords: tuple[str, ...]
    subtitle_new_keywords: tuple[str, ...]
    description_new_keywords: tuple[str, ...]
    title_ignored_count: int
    subtitle_ignored_count: int
    description_ignored_count: int


def _by_relevance(
    keywords: Sequence[str], relevance_table: Mapping[str, int] | None
) -> tuple[str, ...]:
    return tuple(
        sorted(keywords, key=lambda token: -token_relevance(token, relevance_table))
    )


def analyze_keyword_coverage(
    title: str | None,
    subtitle: str | None,
    description: str | None = None,
    *,
    relevance_table: Mapping[str, int] | None = None,
    description_limit: int = DESCRIPTION_KEYWORD_LIMIT,
) -> KeywordCoverage:
    """Report which keywords each listing element contributes.

    Args:
        title: Listing title.
        subtitle: Listing subtitle.
        description: Listing description.
        relevance_table: Optional per-token relevance overrides used for ordering.
        description_limit: Cap on new description keywords, applied before ordering.

    Returns:
        KeywordCoverage for the listing.
    """
    title_filtered = filter_stopwords(tokenize(title))
    subtitle_filtered = filter_stopwords(tokenize(subtitle))
    description_filtered = filter_stopwords(tokenize(description))

    title_set = set(title_filtered.keywords)
    subtitle_new = [token for token in subtitle_filtered.keywords if token not in title_set]
    listing_set = title_set | set(subtitle_filtered.keywords)
    description_new = [
        token for token in description_filtered.keywords if token not in listing_set
    ]
    unique = listing_set | set(description_filtered.keywords)

    return KeywordCoverage(
        total_unique_keywords=len(unique),
        title_keywords=_by_relevance(title_filtered.keywords, relevance_table),
        subtitle_new_keywords=_by_relevance(subtitle_new, relevance_table),
        description_new_keywords=_by_relevance(
            description_new[: max(0, description_limit)], relevance_table
        ),
        title_ignored_count=len(title_filtered.ignored),
        subtitle_ignored_count=len(subtitle_filtered.ignored),
        description_ignored_count=len(description_filtered.ignored),
    )
