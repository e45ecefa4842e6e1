"""KPI evaluation for title and subtitle metadata.

Primitive metrics are computed once per listing into ``KpiListingData``. Each KPI
then reads its raw value from those primitives and is normalised to 0-100 according
to its own direction and bounds. Families aggregate member KPIs with renormalised
effective weights; the overall score aggregates families by family weight.

Usage example:
    from aso_metadata_engine.domain.formula_defaults import build_default_registry
    from aso_metadata_engine.domain.formula_registry import Platform, character_limits_for
    from aso_metadata_engine.domain.kpi import build_listing_data, evaluate_kpis
    from aso_metadata_engine.domain.kpi_registry import DEFAULT_KPI_REGISTRY

    scoring = build_default_registry().metadata_scoring
    limits = character_limits_for(scoring, Platform.IOS)
    data = build_listing_data(
        "Pimsleur Language Learning", "Speak Spanish Fast", (), limits=limits
    )
    result = evaluate_kpis(data, DEFAULT_KPI_REGISTRY)
    assert 0 <= result.overall_score <= 100
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType

from .brand import BrandAliases
from .combos import ClassifiedCombo, ComboClassification, ComboSource
from .formula_registry import CharacterLimits, Platform
from .kpi_registry import (
    Direction,
    EffectiveWeight,
    KpiDefinition,
    KpiFamilyDefinition,
    KpiRegistry,
    OverrideContext,
    OverrideProvenance,
    effective_weight,
)
from .numbers import round_half_up
from .tokenization import LANGUAGES, filter_stopwords, token_relevance, tokenize

ACTION_VERBS = frozenset(
    {
        "learn", "master", "speak", "practice", "improve", "discover", "unlock",
        "transform", "achieve", "build", "create", "track", "save", "boost", "gain",
        "reach", "grow", "start", "get",
    }
)  # fmt: skip

BENEFIT_KEYWORDS = frozenset(
    {
        "free", "easy", "fast", "simple", "powerful", "advanced", "professional",
        "complete", "ultimate", "perfect", "quick", "effective", "proven", "guaranteed",
        "unlimited", "premium",
    }
)  # fmt: skip

URGENCY_WORDS = frozenset(
    {
        "now", "today", "instant", "instantly", "immediate", "immediately", "quick",
        "quickly", "fast", "rapid", "rapidly",
    }
)  # fmt: skip

SOCIAL_PROOF_WORDS = frozenset(
    {
        "million", "millions", "thousand", "thousands", "top", "best", "trusted",
        "popular", "leading", "#1", "rated", "award",
    }
)  # fmt: skip

MEANINGFUL_TOKEN_MIN_LENGTH = 3
HIGH_VALUE_RELEVANCE = 2
OVERBRANDING_RATIO = 0.7

_SUBTITLE_INCREMENTAL_SOURCES = frozenset({ComboSource.SUBTITLE, ComboSource.TITLE_SUBTITLE})
_TITLE_SUBTITLE_SOURCES = frozenset(
    {ComboSource.TITLE, ComboSource.SUBTITLE, ComboSource.TITLE_SUBTITLE}
)


@dataclass(frozen=True)
class KpiListingData:
    """Primitive metrics shared by every KPI for one listing."""

    title: str
    subtitle: str
    platform: Platform
    title_tokens: tuple[str, ...]
    subtitle_tokens: tuple[str, ...]
    title_noise_ratio: float
    subtitle_noise_ratio: float
    title_high_value_count: int
    subtitle_incremental_high_value_count: int
    title_generic_combos: int
    title_branded_combos: int
    subtitle_incremental_generic_combos: int
    low_value_combo_ratio: float
    brand_ratio: float
    generic_ratio: float
    brand_in_title: bool
    brand_in_subtitle: bool
    limits: CharacterLimits

    @property
    def title_meaningful(self) -> tuple[str, ...]:
        return _meaningful(self.title_tokens)

    @property
    def subtitle_meaningful(self) -> tuple[str, ...]:
        return _meaningful(self.subtitle_tokens)

    @property
    def all_tokens(self) -> tuple[str, ...]:
        return self.title_tokens + self.subtitle_tokens


@dataclass(frozen=True)
class KpiResult:
    id: str
    family_id: str
    label: str
    value: float
    normalized: float
    effective_weight: float
    override_multiplier: float = 1.0
    provenance: tuple[OverrideProvenance, ...] = ()


@dataclass(frozen=True)
class KpiFamilyResult:
    id: str
    label: str
    weight: float
    score: float
    kpi_ids: tuple[str, ...]


@dataclass(frozen=True)
class KpiEngineResult:
    """Normalised vector, per-KPI and per-family breakdown and the overall score."""

    version: str
    vector: tuple[float, ...]
    kpis: Mapping[str, KpiResult]
    families: Mapping[str, KpiFamilyResult]
    overall_score: float


def _meaningful(tokens: Sequence[str]) -> tuple[str, ...]:
    return tuple(token for token in tokens if len(token) >= MEANINGFUL_TOKEN_MIN_LENGTH)


def _word_count(text: str) -> int:
    return len(text.split())


def _contains_brand(tokens: Sequence[str], brand_aliases: BrandAliases | None) -> bool:
    if not brand_aliases:
        return False
    return brand_aliases.match(tokens) is not None


def build_listing_data(
    title: str | None,
    subtitle: str | None,
    combos: Sequence[ClassifiedCombo],
    *,
    limits: CharacterLimits,
    brand_aliases: BrandAliases | None = None,
    platform: Platform = Platform.IOS,
    relevance_table: Mapping[str, int] | None = None,
) -> KpiListingData:
    """Compute the primitive metrics once for a listing's title and subtitle.

    ``limits`` are the platform's character limits from the formula registry.
    """
    title = (title or "").strip()
    subtitle = (subtitle or "").strip()
    title_tokens = tokenize(title)
    subtitle_tokens = tokenize(subtitle)

    title_high_value = [
        token
        for token in _meaningful(title_tokens)
        if token_relevance(token, relevance_table) >= HIGH_VALUE_RELEVANCE
    ]
    subtitle_high_value = [
        token
        for token in _meaningful(subtitle_tokens)
        if token_relevance(token, relevance_table) >= HIGH_VALUE_RELEVANCE
    ]
    title_high_value_set = set(title_high_value)
    incremental = [token for token in subtitle_high_value if token not in title_high_value_set]

    title_combos = [combo for combo in combos if combo.source is ComboSource.TITLE]
    classified = Counter(combo.classification for combo in title_combos)
    branded = classified[ComboClassification.BRANDED]
    generic = classified[ComboClassification.GENERIC]
    brand_total = branded + generic

    listing_combos = [combo for combo in combos if combo.source in _TITLE_SUBTITLE_SOURCES]
    low_value = sum(
        1 for combo in listing_combos if combo.classification is ComboClassification.LOW_VALUE
    )
    incremental_generic = sum(
        1
        for combo in combos
        if combo.source in _SUBTITLE_INCREMENTAL_SOURCES
        and combo.classification is ComboClassification.GENERIC
    )

    return KpiListingData(
        title=title,
        subtitle=subtitle,
        platform=platform,
        title_tokens=title_tokens,
        subtitle_tokens=subtitle_tokens,
        title_noise_ratio=filter_stopwords(title_tokens).noise_ratio,
        subtitle_noise_ratio=filter_stopwords(subtitle_tokens).noise_ratio,
        title_high_value_count=len(title_high_value),
        subtitle_incremental_high_value_count=len(incremental),
        title_generic_combos=generic,
        title_branded_combos=branded,
        subtitle_incremental_generic_combos=incremental_generic,
        low_value_combo_ratio=low_value / len(listing_combos) if listing_combos else 0.0,
        brand_ratio=branded / brand_total if brand_total else 0.0,
        generic_ratio=generic / brand_total if brand_total else 0.0,
        brand_in_title=_contains_brand(title_tokens, brand_aliases),
        brand_in_subtitle=_contains_brand(subtitle_tokens, brand_aliases),
        limits=limits,
    )


def noise_penalty(noise_ratio: float) -> float:
    """Extra deduction for severe noise on top of the linear noise ratio."""
    if noise_ratio >= 0.5:
        return 20.0
    if noise_ratio >= 0.3:
        return 10.0
    return 0.0


def _signal_to_noise(noise_ratio: float) -> float:
    base = max(0.0, min(100.0, 100.0 - noise_ratio * 100.0))
    return max(0.0, base - noise_penalty(noise_ratio))


def _density(tokens: Sequence[str]) -> float:
    return len(_meaningful(tokens)) / len(tokens) if tokens else 0.0


def _count_in(tokens: Sequence[str], words: frozenset[str]) -> int:
    return sum(1 for token in tokens if token in words)


def hook_strength(action_verbs: int, benefit_words: int, meaningful_tokens: int) -> float:
    """Action verbs and benefit words, plus their density among meaningful tokens."""
    if meaningful_tokens == 0:
        return 0.0
    action = min(action_verbs * 30, 50)
    benefit = min(benefit_words * 20, 30)
    density = min((action_verbs + benefit_words) / meaningful_tokens * 100, 20)
    return min(action + benefit + density, 100.0)


def semantic_keyword_pairs(tokens: Sequence[str]) -> int:
    """Adjacent token pairs joining a language and an action verb ("learn spanish")."""
    count = 0
    for first, second in zip(tokens, tokens[1:]):
        has_language = first in LANGUAGES or second in LANGUAGES
        has_verb = first in ACTION_VERBS or second in ACTION_VERBS
        if has_language and has_verb:
            count += 1
    return count


def _specificity(data: KpiListingData) -> float:
    from_keywords = min(
        (data.title_high_value_count + data.subtitle_incremental_high_value_count) * 15, 60
    )
    from_pairs = min(semantic_keyword_pairs(data.title_tokens) * 20, 40)
    return float(min(from_keywords + from_pairs, 100))


def _log_signal(count: int) -> float:
    return float(min(100, round_half_up(math.log(count + 1) * 40)))


def _benefit_count(data: KpiListingData) -> int:
    return _count_in(data.all_tokens, BENEFIT_KEYWORDS)


def _per_meaningful(count: int, data: KpiListingData) -> float:
    meaningful = len(data.title_meaningful) + len(data.subtitle_meaningful)
    return count / meaningful if meaningful else 0.0


def _repeated_tokens(data: KpiListingData) -> int:
    return sum(1 for count in Counter(data.all_tokens).values() if count > 1)


def _char_usage(characters: int, limit: int) -> float:
    return characters / limit * 100 if limit > 0 else 0.0


KPI_METRICS: Mapping[str, Callable[[KpiListingData], float]] = MappingProxyType(
    {
        "title_char_usage": lambda d: _char_usage(len(d.title), d.limits.title),
        "subtitle_char_usage": lambda d: _char_usage(len(d.subtitle), d.limits.subtitle),
        "title_word_count": lambda d: _word_count(d.title),
        "subtitle_word_count": lambda d: _word_count(d.subtitle),
        "title_token_density": lambda d: _density(d.title_tokens),
        "subtitle_token_density": lambda d: _density(d.subtitle_tokens),
        "title_high_value_keyword_count": lambda d: d.title_high_value_count,
        "subtitle_high_value_incremental_keywords": (
            lambda d: d.subtitle_incremental_high_value_count
        ),
        "title_noise_ratio": lambda d: _signal_to_noise(d.title_noise_ratio),
        "subtitle_noise_ratio": lambda d: _signal_to_noise(d.subtitle_noise_ratio),
        "title_combo_count_generic": lambda d: d.title_generic_combos,
        "title_combo_count_branded": lambda d: d.title_branded_combos,
        "subtitle_combo_incremental_generic": lambda d: d.subtitle_incremental_generic_combos,
        "subtitle_low_value_combo_ratio": lambda d: d.low_value_combo_ratio,
        "title_semantic_keyword_pairs": lambda d: semantic_keyword_pairs(d.title_tokens),
        "total_unique_keyword_coverage": (
            lambda d: len(set(d.title_meaningful) | set(d.subtitle_meaningful))
        ),
        "hook_strength_title": lambda d: hook_strength(
            _count_in(d.title_tokens, ACTION_VERBS),
            _count_in(d.title_tokens, BENEFIT_KEYWORDS),
            len(d.title_meaningful),
        ),
        "hook_strength_subtitle": lambda d: hook_strength(
            _count_in(d.subtitle_tokens, ACTION_VERBS),
            _count_in(d.subtitle_tokens, BENEFIT_KEYWORDS),
            len(d.subtitle_meaningful),
        ),
        "specificity_score": _specificity,
        "benefit_density": lambda d: _per_meaningful(_benefit_count(d), d),
        "redundancy_penalty": lambda d: _repeated_tokens(d) * 10,
        "brand_presence_title": lambda d: 1.0 if d.brand_in_title else 0.0,
        "brand_presence_subtitle": lambda d: 1.0 if d.brand_in_subtitle else 0.0,
        "brand_combo_ratio": lambda d: d.brand_ratio,
        "generic_discovery_combo_ratio": lambda d: d.generic_ratio,
        "overbranding_indicator": lambda d: 1.0 if d.brand_ratio > OVERBRANDING_RATIO else 0.0,
        "urgency_signal": lambda d: _log_signal(_count_in(d.all_tokens, URGENCY_WORDS)),
        "social_proof_signal": lambda d: _log_signal(_count_in(d.all_tokens, SOCIAL_PROOF_WORDS)),
        "benefit_keyword_count": _benefit_count,
        "action_verb_density": lambda d: _per_meaningful(_count_in(d.all_tokens, ACTION_VERBS), d),
    }
)


def normalize_value(value: float, kpi: KpiDefinition) -> float:
    """Map a raw KPI value onto 0-100 using the KPI's bounds and direction."""
    low, high = kpi.min_value, kpi.max_value
    clamped = max(low, min(high, value))
    if high == low:
        return 100.0
    match kpi.direction:
        case Direction.HIGHER_IS_BETTER:
            return (clamped - low) / (high - low) * 100
        case Direction.LOWER_IS_BETTER:
            return (high - clamped) / (high - low) * 100
        case Direction.TARGET_RANGE:
            if kpi.target_value is None or kpi.target_tolerance is None:
                return (clamped - low) / (high - low) * 100
            distance = abs(clamped - kpi.target_value)
            if distance <= kpi.target_tolerance:
                return 100.0
            max_distance = max(abs(high - kpi.target_value), abs(low - kpi.target_value))
            return max(0.0, (max_distance - distance) / max_distance * 100)


def compute_kpi(
    kpi: KpiDefinition,
    data: KpiListingData,
    weight: EffectiveWeight | None = None,
) -> KpiResult:
    """Evaluate one KPI's raw value and normalise it.

    KPIs without a known metric score a raw value of zero.
    """
    metric = KPI_METRICS.get(kpi.id)
    value = float(metric(data)) if metric is not None else 0.0
    weight = weight or EffectiveWeight(base_weight=kpi.weight, multiplier=1.0, provenance=())
    return KpiResult(
        id=kpi.id,
        family_id=kpi.family_id,
        label=kpi.label,
        value=value,
        normalized=normalize_value(value, kpi),
        effective_weight=weight.weight,
        override_multiplier=weight.multiplier,
        provenance=weight.provenance,
    )


def _weighted_mean(pairs: Sequence[tuple[float, float]]) -> float:
    if not pairs:
        return 0.0
    total_weight = sum(weight for _, weight in pairs)
    if total_weight <= 0:
        return sum(score for score, _ in pairs) / len(pairs)
    return sum(score * weight / total_weight for score, weight in pairs)


def compute_family(
    family: KpiFamilyDefinition, kpi_results: Sequence[KpiResult]
) -> KpiFamilyResult:
    """Weight-normalised average of the family's member KPIs.

    Results for other families are ignored. When every member weight is zero, the
    members count equally.
    """
    members = [result for result in kpi_results if result.family_id == family.id]
    score = _weighted_mean([(result.normalized, result.effective_weight) for result in members])
    return KpiFamilyResult(
        id=family.id,
        label=family.label,
        weight=family.weight,
        score=round(score, 2),
        kpi_ids=tuple(result.id for result in members),
    )


def compute_overall(family_results: Sequence[KpiFamilyResult]) -> float:
    """Family scores averaged by family weight."""
    score = _weighted_mean([(family.score, family.weight) for family in family_results])
    return round(score, 2)


def evaluate_kpis(
    data: KpiListingData,
    registry: KpiRegistry,
    context: OverrideContext | None = None,
) -> KpiEngineResult:
    """Evaluate every KPI in registry order, then every family and the overall score."""
    results = tuple(
        compute_kpi(kpi, data, effective_weight(kpi, registry.overrides, context))
        for kpi in registry.kpis
    )
    families = tuple(compute_family(family, results) for family in registry.families)
    return KpiEngineResult(
        version=registry.version,
        vector=tuple(result.normalized for result in results),
        kpis=MappingProxyType({result.id: result for result in results}),
        families=MappingProxyType({family.id: family for family in families}),
        overall_score=compute_overall(families),
    )
