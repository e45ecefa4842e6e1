"""Rule-based scoring of the title, subtitle and description elements.

Each element runs a fixed set of rules. A rule yields a 0-100 score and a pass
flag; the element score is the rule scores weighted by the registry's rule weights.
The metadata score weights the element scores by the registry's element weights,
so the description (weight 0 by default) informs conversion insights only.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass

from .combos import ClassifiedCombo, ComboClassification, ComboSource
from .formula_registry import (
    FormulaRegistry,
    Platform,
    ScoreBand,
    character_limits_for,
    get_interpretation,
)
from .numbers import clamp, round_half_up
from .tokenization import filter_stopwords, token_relevance, tokenize

DESCRIPTION_MAX_CHARACTERS = 4000
HOOK_WORDS = (
    "discover",
    "experience",
    "transform",
    "achieve",
    "unlock",
    "revolutionize",
    "master",
)
CTA_VERBS = ("download", "try", "start", "get", "join", "subscribe")

_FEATURE_MENTION = re.compile(r"\b(feature|tool|function|capability|benefit)\b", re.IGNORECASE)
_SENTENCE_END = re.compile(r"[.!?]+")
_NON_ALPHA = re.compile(r"[^a-z]")
_VOWELS = frozenset("aeiouy")


@dataclass(frozen=True)
class RuleResult:
    rule_id: str
    score: float
    weight: float
    passed: bool
    message: str
    evidence: tuple[str, ...] = ()


@dataclass(frozen=True)
class ElementScore:
    element: str
    score: int
    max_characters: int
    character_count: int
    rules: tuple[RuleResult, ...]


@dataclass(frozen=True)
class ElementScores:
    """Per-element scores plus the weighted metadata score and its band."""

    title: ElementScore
    subtitle: ElementScore
    description: ElementScore
    metadata_score: int
    band: ScoreBand

    @property
    def elements(self) -> tuple[ElementScore, ...]:
        return (self.title, self.subtitle, self.description)


@dataclass(frozen=True)
class _RuleOutcome:
    score: float
    passed: bool
    message: str
    evidence: tuple[str, ...] = ()


def _relevant(
    tokens: Sequence[str], relevance_table: Mapping[str, int] | None, minimum: int
) -> list[str]:
    return [token for token in tokens if token_relevance(token, relevance_table) >= minimum]


def _char_usage_score(usage_pct: float) -> float:
    if usage_pct < 50:
        return 40
    if usage_pct < 70:
        return 60
    if usage_pct < 90:
        return 85
    if usage_pct <= 100:
        return 100
    return 0


def _character_usage(text: str, limit: int, *, empty_scores_zero: bool) -> _RuleOutcome:
    count = len(text)
    if count == 0 and empty_scores_zero:
        return _RuleOutcome(0, False, "No subtitle set")
    usage = count / limit * 100 if limit > 0 else 0.0
    return _RuleOutcome(
        score=_char_usage_score(usage),
        passed=70 <= usage <= 100,
        message=f"Using {count}/{limit} characters ({round_half_up(usage)}%)",
    )


def _unique_keywords(title: str, relevance_table: Mapping[str, int] | None) -> _RuleOutcome:
    keywords = filter_stopwords(tokenize(title)).keywords
    relevant = _relevant(keywords, relevance_table, 1)
    unique = tuple(dict.fromkeys(relevant))
    average = (
        sum(token_relevance(token, relevance_table) for token in relevant) / len(relevant)
        if relevant
        else 0.0
    )
    return _RuleOutcome(
        score=min(100.0, min(80, len(unique) * 20) + average * 10),
        passed=len(unique) >= 2,
        message=f"{len(unique)} unique keywords (avg relevance: {average:.1f})",
        evidence=unique,
    )


def _meaningful_combo_texts(
    combos: Sequence[ClassifiedCombo], sources: frozenset[ComboSource]
) -> tuple[str, ...]:
    return tuple(
        combo.text
        for combo in combos
        if combo.source in sources and combo.classification is not ComboClassification.LOW_VALUE
    )


def _title_combo_coverage(combos: Sequence[ClassifiedCombo]) -> _RuleOutcome:
    texts = _meaningful_combo_texts(combos, frozenset({ComboSource.TITLE}))
    count = len(texts)
    if count == 0:
        score = 20
    elif count <= 2:
        score = 50
    elif count <= 5:
        score = 75
    else:
        score = 90
    return _RuleOutcome(score, count >= 2, f"{count} meaningful keyword combinations", texts[:5])


def _filler_penalty(title: str) -> _RuleOutcome:
    analysis = filter_stopwords(tokenize(title))
    ratio = analysis.noise_ratio
    penalty = 30 if ratio > 0.5 else 15 if ratio > 0.3 else 0
    noise_pct = round_half_up(ratio * 100)
    return _RuleOutcome(
        score=100 - penalty,
        passed=ratio <= 0.3,
        message=f"{len(analysis.ignored)} filler tokens ({noise_pct}% noise ratio)",
        evidence=analysis.ignored,
    )


def _incremental_value(
    title: str, subtitle: str, relevance_table: Mapping[str, int] | None
) -> _RuleOutcome:
    if not subtitle:
        return _RuleOutcome(0, False, "No subtitle provided")
    title_relevant = set(_relevant(tokenize(title), relevance_table, 2))
    keywords = filter_stopwords(tokenize(subtitle)).keywords
    new_tokens = tuple(
        token for token in _relevant(keywords, relevance_table, 2) if token not in title_relevant
    )
    count = len(new_tokens)
    score = {0: 20, 1: 50, 2: 75}.get(count, 95)
    return _RuleOutcome(score, count >= 2, f"{count} new high-value keywords", new_tokens)


def _subtitle_combo_coverage(subtitle: str, combos: Sequence[ClassifiedCombo]) -> _RuleOutcome:
    if not subtitle:
        return _RuleOutcome(0, False, "No subtitle provided")
    texts = _meaningful_combo_texts(
        combos, frozenset({ComboSource.SUBTITLE, ComboSource.TITLE_SUBTITLE})
    )
    count = len(texts)
    if count == 0:
        score = 20
    elif count <= 2:
        score = 50
    elif count <= 5:
        score = 80
    else:
        score = 95
    return _RuleOutcome(score, count >= 2, f"{count} new keyword combinations", texts[:5])


def _complementarity(
    title: str, subtitle: str, relevance_table: Mapping[str, int] | None
) -> _RuleOutcome:
    if not subtitle:
        return _RuleOutcome(0, False, "No subtitle provided")
    title_relevant = set(_relevant(tokenize(title), relevance_table, 2))
    subtitle_relevant = _relevant(filter_stopwords(tokenize(subtitle)).keywords, relevance_table, 2)
    overlap = tuple(token for token in subtitle_relevant if token in title_relevant)
    ratio = len(overlap) / len(subtitle_relevant) if subtitle_relevant else 0.0
    if ratio < 0.3:
        message = "Excellent complementarity with title"
    elif ratio < 0.5:
        message = "Good complementarity"
    else:
        message = "Too much overlap with title"
    return _RuleOutcome(max(0.0, (1 - ratio) * 100), ratio < 0.4, message, overlap)


def _hook_strength(description: str) -> _RuleOutcome:
    if not description:
        return _RuleOutcome(0, False, "No description provided")
    first_paragraph = description.split("\n")[0].lower()
    hooks = tuple(word for word in HOOK_WORDS if word in first_paragraph)
    first_sentence = first_paragraph.split(".")[0]
    strong_opening = 50 <= len(first_sentence) <= 150
    if hooks and strong_opening:
        score = 90
    elif hooks:
        score = 75
    elif strong_opening:
        score = 70
    else:
        score = 60
    message = (
        "Strong opening hook detected"
        if hooks
        else "Consider adding compelling hook words in first sentence"
    )
    return _RuleOutcome(score, score >= 70, message, hooks)


def _feature_mentions(description: str) -> _RuleOutcome:
    if not description:
        return _RuleOutcome(0, False, "No description provided")
    count = len(_FEATURE_MENTION.findall(description))
    plural = "" if count == 1 else "s"
    return _RuleOutcome(min(100, count * 15), count >= 3, f"{count} feature mention{plural}")


def _call_to_action(description: str) -> _RuleOutcome:
    if not description:
        return _RuleOutcome(0, False, "No description provided")
    lowered = description.lower()
    found = tuple(verb for verb in CTA_VERBS if verb in lowered)
    plural = "" if len(found) == 1 else "s"
    return _RuleOutcome(
        min(100, len(found) * 25), len(found) >= 2, f"{len(found)} CTA{plural} detected", found
    )


def count_syllables(word: str) -> int:
    """Vowel-group syllable estimate; silent trailing ``e`` is dropped."""
    letters = _NON_ALPHA.sub("", word.lower())
    if not letters:
        return 0
    if len(letters) <= 3:
        return 1
    count = 0
    previous_vowel = False
    for letter in letters:
        is_vowel = letter in _VOWELS
        if is_vowel and not previous_vowel:
            count += 1
        previous_vowel = is_vowel
    if letters.endswith("e") and count > 1:
        count -= 1
    return max(1, count)


def flesch_reading_ease(text: str) -> float | None:
    """Flesch reading ease, or None when there are no sentences or words."""
    sentences = [sentence for sentence in _SENTENCE_END.split(text) if sentence.strip()]
    words = text.split()
    if not sentences or not words:
        return None
    syllables = sum(count_syllables(word) for word in words)
    return 206.835 - 1.015 * (len(words) / len(sentences)) - 84.6 * (syllables / len(words))


def _readability(description: str) -> _RuleOutcome:
    if not description:
        return _RuleOutcome(0, False, "No description provided")
    ease = flesch_reading_ease(description)
    if ease is None:
        return _RuleOutcome(0, False, "Insufficient content for readability analysis")
    score = int(clamp(round_half_up(ease)))
    if score >= 80:
        level = "Very easy"
    elif score >= 60:
        level = "Easy"
    elif score >= 40:
        level = "Moderate"
    else:
        level = "Difficult"
    return _RuleOutcome(score, score >= 60, f"Flesch reading ease: {score}/100 ({level})")


def _score_element(
    element: str,
    text: str,
    max_characters: int,
    rules: Mapping[str, Callable[[], _RuleOutcome]],
    weights: Mapping[str, float],
) -> ElementScore:
    results = []
    for rule_key, evaluate in rules.items():
        outcome = evaluate()
        results.append(
            RuleResult(
                rule_id=f"{element}_{rule_key}",
                score=outcome.score,
                weight=weights[rule_key],
                passed=outcome.passed,
                message=outcome.message,
                evidence=outcome.evidence,
            )
        )
    total = sum(result.score * result.weight for result in results)
    return ElementScore(
        element=element,
        score=int(clamp(round_half_up(total))),
        max_characters=max_characters,
        character_count=len(text),
        rules=tuple(results),
    )


def score_elements(
    title: str | None,
    subtitle: str | None,
    description: str | None,
    combos: Sequence[ClassifiedCombo],
    registry: FormulaRegistry,
    *,
    platform: Platform = Platform.IOS,
    relevance_table: Mapping[str, int] | None = None,
) -> ElementScores:
    """Score the three listing elements and combine them into the metadata score."""
    config = registry.metadata_scoring
    limits = character_limits_for(config, platform)
    title = (title or "").strip()
    subtitle = (subtitle or "").strip()
    description = (description or "").strip()

    title_score = _score_element(
        "title",
        title,
        limits.title,
        {
            "character_usage": lambda: _character_usage(
                title, limits.title, empty_scores_zero=False
            ),
            "unique_keywords": lambda: _unique_keywords(title, relevance_table),
            "combo_coverage": lambda: _title_combo_coverage(combos),
            "filler_penalty": lambda: _filler_penalty(title),
        },
        config.rule_weights["title"],
    )
    subtitle_score = _score_element(
        "subtitle",
        subtitle,
        limits.subtitle,
        {
            "character_usage": lambda: _character_usage(
                subtitle, limits.subtitle, empty_scores_zero=True
            ),
            "incremental_value": lambda: _incremental_value(title, subtitle, relevance_table),
            "combo_coverage": lambda: _subtitle_combo_coverage(subtitle, combos),
            "complementarity": lambda: _complementarity(title, subtitle, relevance_table),
        },
        config.rule_weights["subtitle"],
    )
    description_score = _score_element(
        "description",
        description,
        DESCRIPTION_MAX_CHARACTERS,
        {
            "hook_strength": lambda: _hook_strength(description),
            "feature_mentions": lambda: _feature_mentions(description),
            "call_to_action": lambda: _call_to_action(description),
            "readability": lambda: _readability(description),
        },
        config.rule_weights["description"],
    )

    elements = (title_score, subtitle_score, description_score)
    weight_total = sum(config.element_weights[item.element] for item in elements)
    weighted = sum(item.score * config.element_weights[item.element] for item in elements)
    metadata_score = int(clamp(round_half_up(weighted / weight_total))) if weight_total else 0
    return ElementScores(
        title=title_score,
        subtitle=subtitle_score,
        description=description_score,
        metadata_score=metadata_score,
        band=get_interpretation(metadata_score, config.bands),
    )
