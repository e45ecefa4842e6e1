"""Combo priority scoring.

Each combo gets five factor scores, combined with the registry's factor weights
into a 0-100 total:

    total = semantic * 0.30 + length * 0.25 + brand_hybrid * 0.20
            + novelty * 0.15 + (100 - noise) * 0.10

Scoring is pure with respect to the registry, so batches can be fanned out over a
thread pool; output order always mirrors input order.

Usage example:
    from aso_metadata_engine.domain.combos import ClassifiedCombo, ComboSource
    from aso_metadata_engine.domain.formula_defaults import build_default_registry
    from aso_metadata_engine.domain.priority import score_combo

    combo = ClassifiedCombo(
        text="duolingo spanish",
        keywords=("duolingo", "spanish"),
        source=ComboSource.TITLE_SUBTITLE,
        matched_brand_alias="duolingo",
    )
    factors = score_combo(combo, build_default_registry())
    assert factors.total == 72
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from types import MappingProxyType

from .combos import ClassifiedCombo, ComboClassification
from .formula_registry import ComboPriorityConfig, FormulaRegistry, Priority, get_priority
from .numbers import clamp, clamp_score, round_half_up
from .tokenization import tokenize

DEFAULT_PARALLEL_THRESHOLD = 500


def _empty_overrides() -> MappingProxyType[str, float]:
    return MappingProxyType({})


@dataclass(frozen=True)
class PriorityContext:
    """Caller overrides for noise confidence.

    ``noise_overrides`` is keyed by combo canonical key and wins over
    ``noise_confidence``, which applies to every combo.
    """

    noise_confidence: float | None = None
    noise_overrides: Mapping[str, float] = field(default_factory=_empty_overrides)


@dataclass(frozen=True)
class PriorityScoreFactors:
    """The five factor scores and the weighted total."""

    semantic_relevance: int
    length_score: int
    brand_hybrid_bonus: int
    novelty_score: int
    noise_confidence: int
    total: int

    @property
    def inverse_noise(self) -> int:
        return 100 - self.noise_confidence


@dataclass(frozen=True)
class ScoredCombo:
    """A classified combo extended with its priority factors."""

    combo: ClassifiedCombo
    factors: PriorityScoreFactors
    is_high_value: bool
    is_long_tail: bool
    priority: Priority

    @property
    def text(self) -> str:
        return self.combo.text

    @property
    def total_score(self) -> int:
        return self.factors.total


@dataclass(frozen=True)
class TopComboSelection:
    """The best-ranked combos and whether the limit cut the list short."""

    top: tuple[ScoredCombo, ...]
    total_generated: int
    limit_reached: bool


def semantic_relevance_score(combo: ClassifiedCombo, config: ComboPriorityConfig) -> int:
    """Rescale prior relevance (0..max) to 0-100, else fall back by classification."""
    if combo.relevance_score is not None:
        bounded = clamp(combo.relevance_score, 0, config.max_relevance)
        return round_half_up(bounded / config.max_relevance * 100)
    fallbacks = config.semantic_fallbacks
    match combo.classification:
        case ComboClassification.BRANDED:
            return round_half_up(fallbacks["branded"])
        case ComboClassification.GENERIC:
            return round_half_up(fallbacks["generic"])
        case ComboClassification.LOW_VALUE:
            return round_half_up(fallbacks["low_value"])
        case None:
            return round_half_up(fallbacks["unknown"])


def length_score(word_count: int, config: ComboPriorityConfig) -> int:
    """Fixed band lookup; three words is the optimum."""
    if word_count in config.length_scores:
        return round_half_up(config.length_scores[word_count])
    if word_count > max(config.length_scores):
        return round_half_up(config.long_length_score)
    return round_half_up(config.length_scores[min(config.length_scores)])


def _has_non_brand_token(combo: ClassifiedCombo) -> bool:
    if not combo.matched_brand_alias:
        return False
    brand_tokens = set(tokenize(combo.matched_brand_alias))
    return any(keyword not in brand_tokens for keyword in combo.keywords)


def is_brand_hybrid(combo: ClassifiedCombo) -> bool:
    """A brand alias alongside at least one non-brand token.

    Without an explicit brand classification, a combo typed ``branded`` also counts
    as a hybrid, even when every token is a brand token.
    """
    if _has_non_brand_token(combo):
        return True
    if combo.brand_classification is None:
        return combo.classification is ComboClassification.BRANDED
    return False


def novelty_score(combo: ClassifiedCombo, config: ComboPriorityConfig) -> int:
    novelty = config.novelty
    cross_field = combo.source.spans_title_and_subtitle
    if combo.length >= 3:
        value = novelty.long_cross_field if cross_field else novelty.long_single_field
    elif combo.length == 2:
        value = novelty.pair_cross_field if cross_field else novelty.pair_single_field
    else:
        value = novelty.single_word
    return round_half_up(value)


def noise_confidence(
    combo: ClassifiedCombo,
    config: ComboPriorityConfig,
    context: PriorityContext | None = None,
) -> int:
    if context is not None:
        override = context.noise_overrides.get(combo.canonical_key, context.noise_confidence)
        if override is not None:
            return clamp_score(override)
    if combo.classification is ComboClassification.LOW_VALUE:
        return round_half_up(config.noise.low_value)
    if combo.relevance_score == 0:
        return round_half_up(config.noise.zero_relevance)
    return round_half_up(config.noise.default)


def score_combo(
    combo: ClassifiedCombo,
    registry: FormulaRegistry,
    context: PriorityContext | None = None,
) -> PriorityScoreFactors:
    """Compute the five factor scores and the clamped weighted total."""
    config = registry.combo_priority
    weights = config.weights
    semantic = semantic_relevance_score(combo, config)
    length = length_score(combo.length, config)
    brand_hybrid = 100 if is_brand_hybrid(combo) else 0
    novelty = novelty_score(combo, config)
    noise = noise_confidence(combo, config, context)
    total = (
        semantic * weights["semantic_relevance"]
        + length * weights["length"]
        + brand_hybrid * weights["brand_hybrid"]
        + novelty * weights["novelty"]
        + (100 - noise) * weights["inverse_noise"]
    )
    return PriorityScoreFactors(
        semantic_relevance=semantic,
        length_score=length,
        brand_hybrid_bonus=brand_hybrid,
        novelty_score=novelty,
        noise_confidence=noise,
        total=clamp_score(total),
    )


def _to_scored(
    combo: ClassifiedCombo,
    registry: FormulaRegistry,
    context: PriorityContext | None,
) -> ScoredCombo:
    config = registry.combo_priority
    factors = score_combo(combo, registry, context)
    return ScoredCombo(
        combo=combo,
        factors=factors,
        is_high_value=factors.total > config.high_value_threshold,
        is_long_tail=combo.length >= config.long_tail_min_length,
        priority=get_priority(factors.total, config.priority),
    )


def score_combos(
    combos: Sequence[ClassifiedCombo],
    registry: FormulaRegistry,
    context: PriorityContext | None = None,
    *,
    max_workers: int | None = None,
    parallel_threshold: int = DEFAULT_PARALLEL_THRESHOLD,
) -> tuple[ScoredCombo, ...]:
    """Score a batch of combos, preserving input order.

    Batches of at least ``parallel_threshold`` combos are mapped over a thread pool
    when ``max_workers`` allows more than one worker.
    """
    scorer: Callable[[ClassifiedCombo], ScoredCombo] = partial(
        _to_scored, registry=registry, context=context
    )
    use_pool = len(combos) >= parallel_threshold and (max_workers is None or max_workers > 1)
    if not use_pool:
        return tuple(scorer(combo) for combo in combos)
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return tuple(executor.map(scorer, combos))


def rank_scored_combos(scored: Sequence[ScoredCombo]) -> tuple[ScoredCombo, ...]:
    """Sort by total score descending, ties broken by combo text."""
    return tuple(sorted(scored, key=lambda item: (-item.total_score, item.text)))


def filter_high_value(scored: Sequence[ScoredCombo]) -> tuple[ScoredCombo, ...]:
    return tuple(item for item in scored if item.is_high_value)


def filter_long_tail(scored: Sequence[ScoredCombo]) -> tuple[ScoredCombo, ...]:
    return tuple(item for item in scored if item.is_long_tail)


def filter_missing(scored: Sequence[ScoredCombo]) -> tuple[ScoredCombo, ...]:
    return tuple(item for item in scored if not item.combo.exists)


def filter_by_priority(
    scored: Sequence[ScoredCombo], priority: Priority
) -> tuple[ScoredCombo, ...]:
    return tuple(item for item in scored if item.priority is priority)


def select_top_combos(scored: Sequence[ScoredCombo], limit: int) -> TopComboSelection:
    ranked = rank_scored_combos(scored)
    return TopComboSelection(
        top=ranked[: max(0, limit)],
        total_generated=len(ranked),
        limit_reached=len(ranked) > limit,
    )


def format_priority_breakdown(scored: ScoredCombo) -> str:
    """Human-readable factor breakdown for one combo."""
    factors = scored.factors
    lines = [
        f"{scored.text}: {factors.total}/100 ({scored.priority})",
        f"  semantic relevance: {factors.semantic_relevance}",
        f"  length: {factors.length_score}",
        f"  brand hybrid bonus: {factors.brand_hybrid_bonus}",
        f"  novelty: {factors.novelty_score}",
        f"  inverse noise: {factors.inverse_noise}",
    ]
    flags = [
        label
        for label, enabled in (
            ("high value", scored.is_high_value),
            ("long tail", scored.is_long_tail),
            ("already in listing", scored.combo.exists),
        )
        if enabled
    ]
    if flags:
        lines.append(f"  flags: {', '.join(flags)}")
    return "\n".join(lines)
