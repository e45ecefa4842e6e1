"""Domain model and invariant checks for the versioned formula registry.

The registry is the single source of truth for every weight, threshold, band and
multiplier used by the scoring modules. It is built once (see
``domain.formula_defaults`` and ``application.formula_registry``), validated
eagerly, and passed explicitly into scoring functions. Nothing here mutates it.

Usage example:
    from aso_metadata_engine.domain.formula_defaults import build_default_registry
    from aso_metadata_engine.domain.formula_registry import get_interpretation

    registry = build_default_registry()
    band = get_interpretation(72, registry.stability.bands)
    assert band.label == "Stable"
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType

WEIGHT_TOLERANCE = 0.001

STABILITY_METRICS = ("impressions", "downloads", "cvr", "direct_share")
COMBO_PRIORITY_FACTORS = (
    "semantic_relevance",
    "length",
    "brand_hybrid",
    "novelty",
    "inverse_noise",
)
METADATA_ELEMENTS = ("title", "subtitle", "description")
ELEMENT_RULES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "title": ("character_usage", "unique_keywords", "combo_coverage", "filler_penalty"),
        "subtitle": ("character_usage", "incremental_value", "combo_coverage", "complementarity"),
        "description": ("hook_strength", "feature_mentions", "call_to_action", "readability"),
    }
)


class BandColor(StrEnum):
    """Semantic colour tag attached to an interpretation band."""

    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"


class Priority(StrEnum):
    """Two-cut priority classification."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Confidence(StrEnum):
    """Confidence level attached to simulated outcomes."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Platform(StrEnum):
    """Store platform; selects title and subtitle character limits."""

    IOS = "ios"
    ANDROID = "android"


@dataclass(frozen=True)
class ScoreBand:
    """An inclusive score range with a label and colour tag."""

    label: str
    min_score: float
    max_score: float
    color: BandColor


@dataclass(frozen=True)
class PriorityThresholds:
    """Minimum scores for high and medium priority."""

    high: float
    medium: float


@dataclass(frozen=True)
class DataRequirements:
    """Days of history needed for a meaningful stability score."""

    minimum_days: int
    recommended_days: int
    optimal_days: int


@dataclass(frozen=True)
class StabilityConfig:
    """Weights and bands for the metric stability score."""

    weights: MappingProxyType[str, float]
    cv_cap: float
    bands: tuple[ScoreBand, ...]
    data_requirements: DataRequirements


@dataclass(frozen=True)
class OpportunityLimits:
    """Output limits for the opportunity map."""

    max_score: float
    max_opportunities: int
    min_data_threshold: int


@dataclass(frozen=True)
class OpportunityConfig:
    """Threshold ladders and gap multipliers for opportunity mapping."""

    thresholds: MappingProxyType[str, tuple[float, ...]]
    multipliers: MappingProxyType[str, float]
    limits: OpportunityLimits
    priority: PriorityThresholds


@dataclass(frozen=True)
class SimulationConfig:
    """Presets, caps and confidence rules for outcome simulation."""

    presets: MappingProxyType[str, float]
    caps: MappingProxyType[str, float]
    high_confidence: tuple[str, ...]
    medium_confidence: tuple[str, ...]
    max_scenarios: int
    min_impact: float
    disclaimer: str


@dataclass(frozen=True)
class AttributionConfig:
    """Thresholds and confidence weights for anomaly attribution."""

    pattern_thresholds: MappingProxyType[str, float]
    confidence_weights: MappingProxyType[str, float]
    max_attributions: int
    min_signals_for_high_confidence: int


@dataclass(frozen=True)
class NoveltyScores:
    """Novelty factor values by word count and cross-field source."""

    long_cross_field: float
    long_single_field: float
    pair_cross_field: float
    pair_single_field: float
    single_word: float


@dataclass(frozen=True)
class NoiseDefaults:
    """Default noise confidence by combo classification."""

    low_value: float
    zero_relevance: float
    default: float


@dataclass(frozen=True)
class ComboPriorityConfig:
    """Factor weights and lookup tables for combo priority scoring."""

    weights: MappingProxyType[str, float]
    length_scores: MappingProxyType[int, float]
    long_length_score: float
    semantic_fallbacks: MappingProxyType[str, float]
    novelty: NoveltyScores
    noise: NoiseDefaults
    max_relevance: int
    high_value_threshold: float
    long_tail_min_length: int
    priority: PriorityThresholds


@dataclass(frozen=True)
class CharacterLimits:
    """Character limits for the title and subtitle on one platform."""

    title: int
    subtitle: int


@dataclass(frozen=True)
class MetadataScoringConfig:
    """Element weights, per-element rule weights and score bands."""

    element_weights: MappingProxyType[str, float]
    rule_weights: MappingProxyType[str, MappingProxyType[str, float]]
    character_limits: MappingProxyType[str, CharacterLimits]
    bands: tuple[ScoreBand, ...]


@dataclass(frozen=True)
class ChangelogEntry:
    """One released registry version."""

    version: str
    date: str
    changes: tuple[str, ...]


@dataclass(frozen=True)
class FormulaRegistry:
    """Versioned, validated configuration for every scoring module."""

    version: str
    last_updated: str
    stability: StabilityConfig
    opportunity: OpportunityConfig
    simulation: SimulationConfig
    attribution: AttributionConfig
    combo_priority: ComboPriorityConfig
    metadata_scoring: MetadataScoringConfig
    changelog: tuple[ChangelogEntry, ...]


@dataclass(frozen=True)
class RegistryValidationResult:
    """Outcome of registry validation."""

    valid: bool
    errors: tuple[str, ...]


_UNRATED_BAND = ScoreBand(label="Unrated", min_score=0.0, max_score=100.0, color=BandColor.RED)


def get_interpretation(score: float, bands: tuple[ScoreBand, ...]) -> ScoreBand:
    """Return the band containing ``score``, falling back to the lowest band."""
    for band in bands:
        if band.min_score <= score <= band.max_score:
            return band
    if not bands:
        return _UNRATED_BAND
    return min(bands, key=lambda band: band.min_score)


def get_priority(score: float, thresholds: PriorityThresholds) -> Priority:
    """Classify a score as high, medium or low priority."""
    if score >= thresholds.high:
        return Priority.HIGH
    if score >= thresholds.medium:
        return Priority.MEDIUM
    return Priority.LOW


def get_simulation_confidence(scenario: str, config: SimulationConfig) -> Confidence:
    """Return the configured confidence for a simulation scenario type."""
    if scenario in config.high_confidence:
        return Confidence.HIGH
    if scenario in config.medium_confidence:
        return Confidence.MEDIUM
    return Confidence.LOW


def normalize_cv(cv: float, cap: float) -> float:
    """Map a coefficient of variation onto 0-100 where lower variation scores higher."""
    if not math.isfinite(cv) or cv < 0 or cap <= 0:
        return 0.0
    return 100.0 * (1.0 - min(cv, cap) / cap)


def compute_stability_score(metric_cvs: Mapping[str, float], config: StabilityConfig) -> int:
    """Weighted stability score over the metrics that have a coefficient of variation.

    Weights of missing metrics are redistributed across the available ones.
    """
    available = {name: cv for name, cv in metric_cvs.items() if name in config.weights}
    total_weight = sum(config.weights[name] for name in available)
    if total_weight <= 0:
        return 0
    weighted = sum(
        normalize_cv(cv, config.cv_cap) * config.weights[name] for name, cv in available.items()
    )
    return max(0, min(100, round(weighted / total_weight)))


def _weight_errors(name: str, weights: Mapping[str, float]) -> list[str]:
    errors: list[str] = []
    if any(weight < 0 for weight in weights.values()):
        errors.append(f"{name} contain a negative weight")
    total = sum(weights.values())
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        errors.append(f"{name} sum to {round(total, 4)}, expected 1.0")
    return errors


def _key_errors(name: str, weights: Mapping[str, float], expected: tuple[str, ...]) -> list[str]:
    errors: list[str] = []
    missing = [key for key in expected if key not in weights]
    unknown = sorted(key for key in weights if key not in expected)
    if missing:
        errors.append(f"{name} missing keys: {', '.join(missing)}")
    if unknown:
        errors.append(f"{name} have unknown keys: {', '.join(unknown)}")
    return errors


def _band_errors(name: str, bands: tuple[ScoreBand, ...]) -> list[str]:
    if not bands:
        return [f"{name} must define at least one band"]
    errors: list[str] = []
    for band in bands:
        if band.min_score > band.max_score:
            errors.append(f"{name}: '{band.label}' has min above max")
    for upper, lower in zip(bands, bands[1:], strict=False):
        if lower.min_score >= upper.min_score:
            errors.append(f"{name} are not sorted descending at '{lower.label}'")
        elif upper.min_score <= lower.max_score:
            errors.append(f"{name} '{upper.label}' and '{lower.label}' overlap")
    return errors


def _priority_errors(name: str, thresholds: PriorityThresholds) -> list[str]:
    if thresholds.high <= thresholds.medium:
        return [f"{name} high threshold must be above medium"]
    return []


def validate_registry(registry: FormulaRegistry) -> RegistryValidationResult:
    """Check weight-sum, key-set, band-ordering and threshold invariants.

    Every weight map must name exactly the keys the scoring code reads.
    Never raises; callers decide whether a failure is fatal (it is at startup).
    """
    scoring = registry.metadata_scoring
    errors: list[str] = []
    errors.extend(_weight_errors("Stability weights", registry.stability.weights))
    errors.extend(_key_errors("Stability weights", registry.stability.weights, STABILITY_METRICS))
    errors.extend(_weight_errors("Combo priority weights", registry.combo_priority.weights))
    errors.extend(
        _key_errors(
            "Combo priority weights", registry.combo_priority.weights, COMBO_PRIORITY_FACTORS
        )
    )
    errors.extend(_weight_errors("Metadata element weights", scoring.element_weights))
    errors.extend(
        _key_errors("Metadata element weights", scoring.element_weights, METADATA_ELEMENTS)
    )
    for element, weights in scoring.rule_weights.items():
        name = f"{element.capitalize()} rule weights"
        errors.extend(_weight_errors(name, weights))
        if element in ELEMENT_RULES:
            errors.extend(_key_errors(name, weights, ELEMENT_RULES[element]))
        else:
            errors.append(f"Rule weights defined for unknown element: {element}")

    errors.extend(_band_errors("Stability bands", registry.stability.bands))
    errors.extend(_band_errors("Metadata score bands", registry.metadata_scoring.bands))

    errors.extend(_priority_errors("Opportunity priority", registry.opportunity.priority))
    errors.extend(_priority_errors("Combo priority", registry.combo_priority.priority))

    if registry.stability.cv_cap <= 0:
        errors.append("Stability CV cap must be positive")
    if not registry.combo_priority.length_scores:
        errors.append("Combo priority length scores must not be empty")
    if registry.combo_priority.max_relevance < 1:
        errors.append("Combo priority max relevance must be at least 1")
    missing_platforms = sorted(
        platform.value
        for platform in Platform
        if platform.value not in registry.metadata_scoring.character_limits
    )
    if missing_platforms:
        errors.append(f"Character limits missing for: {', '.join(missing_platforms)}")
    for element in METADATA_ELEMENTS:
        if element not in scoring.rule_weights:
            errors.append(f"Rule weights missing for element: {element}")

    return RegistryValidationResult(valid=not errors, errors=tuple(errors))


def character_limits_for(config: MetadataScoringConfig, platform: Platform) -> CharacterLimits:
    return config.character_limits[platform.value]
