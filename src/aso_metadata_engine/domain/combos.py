"""Keyword combination enumeration and classification.

Combos are drawn from the title, subtitle and keyword-field tokens. Each is
deduplicated by its canonical key (sorted, lower-cased tokens), checked against
the current listing text, labelled with the fields it came from, and classified
as branded, generic or low value.

Usage example:
    from aso_metadata_engine.domain.brand import build_brand_aliases
    from aso_metadata_engine.domain.combos import generate_combos

    combos = generate_combos(
        ("duolingo", "spanish"),
        ("learn", "fast"),
        (),
        "Duolingo Spanish\\nLearn Fast",
        brand_aliases=build_brand_aliases("duolingo"),
    )
    assert any(combo.text == "duolingo learn" for combo in combos)
"""

from __future__ import annotations

import itertools
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum

from .brand import BrandAliases
from .numbers import round_half_up
from .tokenization import is_combo_token, token_relevance, tokenize

DEFAULT_MAX_COMBO_LENGTH = 3
DEFAULT_MAX_COMBOS = 1500
_MAX_PERMUTATION_LENGTH = 4

_TIME_BOUND_TOKEN = re.compile(
    r"^(days?|weeks?|months?|years?|trial|limited|offer|sale|deals?|today)$"
)
_VERSION_TOKEN = re.compile(r"^(new|latest|updated|update|version|v\d+)$")
_NUMERIC_TOKEN = re.compile(r"^\d+")


class ComboClassification(StrEnum):
    BRANDED = "branded"
    GENERIC = "generic"
    LOW_VALUE = "low_value"


class BrandClassification(StrEnum):
    BRAND = "brand"
    GENERIC = "generic"


class ListingField(StrEnum):
    TITLE = "title"
    SUBTITLE = "subtitle"
    KEYWORDS = "keywords"


class ComboSource(StrEnum):
    """Which listing field(s) supplied a combo's tokens."""

    TITLE = "title"
    SUBTITLE = "subtitle"
    KEYWORDS = "keywords"
    TITLE_SUBTITLE = "title+subtitle"
    TITLE_KEYWORDS = "title+keywords"
    SUBTITLE_KEYWORDS = "subtitle+keywords"
    ALL_FIELDS = "title+subtitle+keywords"

    @property
    def spans_title_and_subtitle(self) -> bool:
        return self in (ComboSource.TITLE_SUBTITLE, ComboSource.ALL_FIELDS)


_SOURCE_BY_FIELDS = {
    frozenset({ListingField.TITLE}): ComboSource.TITLE,
    frozenset({ListingField.SUBTITLE}): ComboSource.SUBTITLE,
    frozenset({ListingField.KEYWORDS}): ComboSource.KEYWORDS,
    frozenset({ListingField.TITLE, ListingField.SUBTITLE}): ComboSource.TITLE_SUBTITLE,
    frozenset({ListingField.TITLE, ListingField.KEYWORDS}): ComboSource.TITLE_KEYWORDS,
    frozenset({ListingField.SUBTITLE, ListingField.KEYWORDS}): ComboSource.SUBTITLE_KEYWORDS,
    frozenset(ListingField): ComboSource.ALL_FIELDS,
}


@dataclass(frozen=True)
class ClassifiedCombo:
    """A candidate keyword combination and its classification."""

    text: str
    keywords: tuple[str, ...]
    source: ComboSource
    exists: bool = False
    classification: ComboClassification | None = None
    brand_classification: BrandClassification | None = None
    matched_brand_alias: str | None = None
    relevance_score: int | None = None

    @property
    def length(self) -> int:
        return len(self.keywords)

    @property
    def canonical_key(self) -> str:
        return canonical_key(self.keywords)


@dataclass(frozen=True)
class ComboCoverage:
    """How many enumerated combos already appear in the listing."""

    total: int
    existing: int
    missing: int
    coverage_pct: float


def canonical_key(keywords: Iterable[str]) -> str:
    """Dedup key: lower-cased tokens in sorted order, space-joined."""
    return " ".join(sorted(keyword.lower() for keyword in keywords))


def _canonical_segments(listing_text: str) -> tuple[str, ...]:
    segments = (" ".join(tokenize(line)) for line in (listing_text or "").splitlines())
    return tuple(f" {segment} " for segment in segments if segment)


def combo_exists(keywords: Sequence[str], segments: tuple[str, ...]) -> bool:
    """True when some ordering of ``keywords`` is a whole-word phrase in one segment."""
    if not segments:
        return False
    if len(keywords) <= _MAX_PERMUTATION_LENGTH:
        orderings: Iterable[Sequence[str]] = itertools.permutations(keywords)
    else:
        orderings = (tuple(keywords), tuple(sorted(keywords)))
    for ordering in orderings:
        phrase = f" {' '.join(ordering)} "
        if any(phrase in segment for segment in segments):
            return True
    return False


def _is_low_value(keywords: Sequence[str], relevances: Sequence[int]) -> bool:
    if relevances and sum(relevances) == 0:
        return True
    for keyword in keywords:
        if _NUMERIC_TOKEN.match(keyword):
            return True
        if _TIME_BOUND_TOKEN.match(keyword) or _VERSION_TOKEN.match(keyword):
            return True
    return False


def classify_keywords(
    keywords: Sequence[str],
    *,
    brand_aliases: BrandAliases | None = None,
    relevance_table: Mapping[str, int] | None = None,
) -> tuple[ComboClassification, BrandClassification, str | None]:
    """Classify a keyword group as low value, branded or generic."""
    relevances = [token_relevance(keyword, relevance_table) for keyword in keywords]
    alias = brand_aliases.match(keywords) if brand_aliases else None
    brand_classification = BrandClassification.BRAND if alias else BrandClassification.GENERIC
    if _is_low_value(keywords, relevances):
        return ComboClassification.LOW_VALUE, brand_classification, alias
    if alias:
        return ComboClassification.BRANDED, brand_classification, alias
    return ComboClassification.GENERIC, brand_classification, alias


def _collect_vocabulary(
    fields: Iterable[tuple[ListingField, Iterable[str]]],
) -> dict[str, ListingField]:
    origins: dict[str, ListingField] = {}
    for listing_field, tokens in fields:
        for raw in tokens:
            for token in tokenize(raw):
                if is_combo_token(token):
                    origins.setdefault(token, listing_field)
    return origins


def generate_combos(
    title_keywords: Iterable[str],
    subtitle_keywords: Iterable[str],
    field_keywords: Iterable[str],
    current_listing_text: str,
    *,
    brand_aliases: BrandAliases | None = None,
    relevance_table: Mapping[str, int] | None = None,
    max_length: int = DEFAULT_MAX_COMBO_LENGTH,
    max_combos: int = DEFAULT_MAX_COMBOS,
) -> tuple[ClassifiedCombo, ...]:
    """Enumerate unique keyword pairs (and triples) across the listing fields.

    Args:
        title_keywords: Title tokens.
        subtitle_keywords: Subtitle tokens.
        field_keywords: Keyword-field tokens.
        current_listing_text: Listing text to check existence against; each line is
            matched separately so phrases never straddle two fields.
        brand_aliases: Known brand aliases for branded classification.
        relevance_table: Optional external token relevance (0-3). When given, each
            combo carries the rounded mean relevance of its tokens.
        max_length: Largest combination size (2 for pairs only).
        max_combos: Enumeration stops once this many combos exist.

    Returns:
        Combos in enumeration order, unique by canonical key.
    """
    origins = _collect_vocabulary(
        (
            (ListingField.TITLE, title_keywords),
            (ListingField.SUBTITLE, subtitle_keywords),
            (ListingField.KEYWORDS, field_keywords),
        )
    )
    vocabulary = tuple(origins)
    segments = _canonical_segments(current_listing_text)

    seen: set[str] = set()
    combos: list[ClassifiedCombo] = []
    for size in range(2, max(2, max_length) + 1):
        for keywords in itertools.combinations(vocabulary, size):
            key = canonical_key(keywords)
            if key in seen:
                continue
            seen.add(key)
            classification, brand_classification, alias = classify_keywords(
                keywords, brand_aliases=brand_aliases, relevance_table=relevance_table
            )
            relevance_score = None
            if relevance_table is not None:
                relevances = [token_relevance(keyword, relevance_table) for keyword in keywords]
                relevance_score = round_half_up(sum(relevances) / len(relevances))
            combos.append(
                ClassifiedCombo(
                    text=" ".join(keywords),
                    keywords=keywords,
                    source=_SOURCE_BY_FIELDS[frozenset(origins[keyword] for keyword in keywords)],
                    exists=combo_exists(keywords, segments),
                    classification=classification,
                    brand_classification=brand_classification,
                    matched_brand_alias=alias,
                    relevance_score=relevance_score,
                )
            )
            if len(combos) >= max_combos:
                return tuple(combos)
    return tuple(combos)


def analyze_combo_coverage(combos: Sequence[ClassifiedCombo]) -> ComboCoverage:
    total = len(combos)
    existing = sum(1 for combo in combos if combo.exists)
    return ComboCoverage(
        total=total,
        existing=existing,
        missing=total - existing,
        coverage_pct=round(existing / total * 100, 2) if total else 0.0,
    )


def filter_combos_by_keyword(
    combos: Sequence[ClassifiedCombo], keyword: str
) -> tuple[ClassifiedCombo, ...]:
    needle = keyword.lower()
    return tuple(combo for combo in combos if needle in combo.keywords)


def count_combos_with_keyword(combos: Sequence[ClassifiedCombo], keyword: str) -> int:
    return len(filter_combos_by_keyword(combos, keyword))


def group_combos_by_length(
    combos: Sequence[ClassifiedCombo],
) -> dict[int, tuple[ClassifiedCombo, ...]]:
    grouped: dict[int, list[ClassifiedCombo]] = {}
    for combo in combos:
        grouped.setdefault(combo.length, []).append(combo)
    return {length: tuple(items) for length, items in sorted(grouped.items())}
