"""Loading, strict validation and export of formula registry documents.

The built-in registry is used unless an alternate JSON document is supplied, which
lets a CLI or test harness run what-if scoring without touching scoring code.
Structural problems are reported as ``FormulaRegistryDocumentError``; invariant
breaches (weight sums, band ordering) as ``FormulaRegistryValidationError``.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..domain.formula_defaults import build_default_registry
from ..domain.formula_registry import (
    AttributionConfig,
    BandColor,
    ChangelogEntry,
    CharacterLimits,
    ComboPriorityConfig,
    DataRequirements,
    FormulaRegistry,
    MetadataScoringConfig,
    NoiseDefaults,
    NoveltyScores,
    OpportunityConfig,
    OpportunityLimits,
    PriorityThresholds,
    ScoreBand,
    SimulationConfig,
    StabilityConfig,
    validate_registry,
)
from ..exceptions import (
    FormulaRegistryDocumentError,
    FormulaRegistryFileNotFoundError,
    FormulaRegistryValidationError,
)
from ..infrastructure import LocalFileSystem
from ..observability import get_logger
from ..protocols import FileSystem

_SCHEMA_VERSION = 1
_SEMANTIC_FALLBACK_KEYS = frozenset({"branded", "generic", "low_value", "unknown"})

_K = TypeVar("_K")
_V = TypeVar("_V")


class _ScoreBandModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    label: str
    min_score: float
    max_score: float
    color: BandColor

    @field_validator("label")
    @classmethod
    def _validate_label(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError
        return text

    @field_validator("min_score", "max_score")
    @classmethod
    def _validate_range(cls, value: float) -> float:
        if value < 0.0 or value > 100.0:
            raise ValueError
        return value


class _PriorityThresholdsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    high: float
    medium: float


class _DataRequirementsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    minimum_days: int
    recommended_days: int
    optimal_days: int


class _StabilityModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    weights: dict[str, float]
    cv_cap: float
    bands: tuple[_ScoreBandModel, ...]
    data_requirements: _DataRequirementsModel


class _OpportunityLimitsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    max_score: float
    max_opportunities: int
    min_data_threshold: int


class _OpportunityModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    thresholds: dict[str, tuple[float, ...]]
    multipliers: dict[str, float]
    limits: _OpportunityLimitsModel
    priority: _PriorityThresholdsModel


class _SimulationModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    presets: dict[str, float]
    caps: dict[str, float]
    high_confidence: tuple[str, ...]
    medium_confidence: tuple[str, ...]
    max_scenarios: int
    min_impact: float
    disclaimer: str


class _AttributionModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    pattern_thresholds: dict[str, float]
    confidence_weights: dict[str, float]
    max_attributions: int
    min_signals_for_high_confidence: int


class _NoveltyModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    long_cross_field: float
    long_single_field: float
    pair_cross_field: float
    pair_single_field: float
    single_word: float


class _NoiseModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    low_value: float
    zero_relevance: float
    default: float


class _ComboPriorityModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    weights: dict[str, float]
    length_scores: dict[int, float]
    long_length_score: float
    semantic_fallbacks: dict[str, float]
    novelty: _NoveltyModel
    noise: _NoiseModel
    max_relevance: int
    high_value_threshold: float
    long_tail_min_length: int
    priority: _PriorityThresholdsModel

    @field_validator("length_scores")
    @classmethod
    def _validate_length_scores(cls, value: dict[int, float]) -> dict[int, float]:
        if any(length < 1 for length in value):
            raise ValueError
        return value

    @field_validator("semantic_fallbacks")
    @classmethod
    def _validate_fallbacks(cls, value: dict[str, float]) -> dict[str, float]:
        if set(value) != _SEMANTIC_FALLBACK_KEYS:
            raise ValueError
        return value


class _CharacterLimitsModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    title: int
    subtitle: int


class _MetadataScoringModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    element_weights: dict[str, float]
    rule_weights: dict[str, dict[str, float]]
    character_limits: dict[str, _CharacterLimitsModel]
    bands: tuple[_ScoreBandModel, ...]


class _ChangelogEntryModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    version: str
    date: str
    changes: tuple[str, ...]


class _FormulaRegistryModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int
    version: str
    last_updated: str
    stability: _StabilityModel
    opportunity: _OpportunityModel
    simulation: _SimulationModel
    attribution: _AttributionModel
    combo_priority: _ComboPriorityModel
    metadata_scoring: _MetadataScoringModel
    changelog: tuple[_ChangelogEntryModel, ...]

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != _SCHEMA_VERSION:
            raise ValueError
        return value

    @field_validator("version")
    @classmethod
    def _validate_version(cls, value: str) -> str:
        text = value.strip()
        if not text:
            raise ValueError
        return text


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def _readonly(values: Mapping[_K, _V]) -> MappingProxyType[_K, _V]:
    return MappingProxyType(dict(values))


def _to_band(model: _ScoreBandModel) -> ScoreBand:
    return ScoreBand(
        label=model.label,
        min_score=model.min_score,
        max_score=model.max_score,
        color=model.color,
    )


def _to_priority(model: _PriorityThresholdsModel) -> PriorityThresholds:
    return PriorityThresholds(high=model.high, medium=model.medium)


def _to_domain_registry(model: _FormulaRegistryModel) -> FormulaRegistry:
    stability = model.stability
    opportunity = model.opportunity
    simulation = model.simulation
    attribution = model.attribution
    combo = model.combo_priority
    metadata = model.metadata_scoring
    return FormulaRegistry(
        version=model.version,
        last_updated=model.last_updated,
        stability=StabilityConfig(
            weights=_readonly(stability.weights),
            cv_cap=stability.cv_cap,
            bands=tuple(_to_band(band) for band in stability.bands),
            data_requirements=DataRequirements(
                minimum_days=stability.data_requirements.minimum_days,
                recommended_days=stability.data_requirements.recommended_days,
                optimal_days=stability.data_requirements.optimal_days,
            ),
        ),
        opportunity=OpportunityConfig(
            thresholds=_readonly(opportunity.thresholds),
            multipliers=_readonly(opportunity.multipliers),
            limits=OpportunityLimits(
                max_score=opportunity.limits.max_score,
                max_opportunities=opportunity.limits.max_opportunities,
                min_data_threshold=opportunity.limits.min_data_threshold,
            ),
            priority=_to_priority(opportunity.priority),
        ),
        simulation=SimulationConfig(
            presets=_readonly(simulation.presets),
            caps=_readonly(simulation.caps),
            high_confidence=simulation.high_confidence,
            medium_confidence=simulation.medium_confidence,
            max_scenarios=simulation.max_scenarios,
            min_impact=simulation.min_impact,
            disclaimer=simulation.disclaimer,
        ),
        attribution=AttributionConfig(
            pattern_thresholds=_readonly(attribution.pattern_thresholds),
            confidence_weights=_readonly(attribution.confidence_weights),
            max_attributions=attribution.max_attributions,
            min_signals_for_high_confidence=attribution.min_signals_for_high_confidence,
        ),
        combo_priority=ComboPriorityConfig(
            weights=_readonly(combo.weights),
            length_scores=_readonly(combo.length_scores),
            long_length_score=combo.long_length_score,
            semantic_fallbacks=_readonly(combo.semantic_fallbacks),
            novelty=NoveltyScores(
                long_cross_field=combo.novelty.long_cross_field,
                long_single_field=combo.novelty.long_single_field,
                pair_cross_field=combo.novelty.pair_cross_field,
                pair_single_field=combo.novelty.pair_single_field,
                single_word=combo.novelty.single_word,
            ),
            noise=NoiseDefaults(
                low_value=combo.noise.low_value,
                zero_relevance=combo.noise.zero_relevance,
                default=combo.noise.default,
            ),
            max_relevance=combo.max_relevance,
            high_value_threshold=combo.high_value_threshold,
            long_tail_min_length=combo.long_tail_min_length,
            priority=_to_priority(combo.priority),
        ),
        metadata_scoring=MetadataScoringConfig(
            element_weights=_readonly(metadata.element_weights),
            rule_weights=MappingProxyType(
                {element: _readonly(weights) for element, weights in metadata.rule_weights.items()}
            ),
            character_limits=MappingProxyType(
                {
                    platform: CharacterLimits(title=limits.title, subtitle=limits.subtitle)
                    for platform, limits in metadata.character_limits.items()
                }
            ),
            bands=tuple(_to_band(band) for band in metadata.bands),
        ),
        changelog=tuple(
            ChangelogEntry(version=entry.version, date=entry.date, changes=entry.changes)
            for entry in model.changelog
        ),
    )


def ensure_valid_registry(registry: FormulaRegistry) -> FormulaRegistry:
    """Return the registry unchanged, or raise if any invariant is broken."""
    result = validate_registry(registry)
    if not result.valid:
        logger = get_logger("aso_metadata_engine.formula_registry")
        for error in result.errors:
            logger.error("Formula registry invariant failed: %s", error)
        raise FormulaRegistryValidationError(result.errors)
    return registry


def parse_registry_document(payload: str, *, source: str = "<document>") -> FormulaRegistry:
    """Parse a JSON registry document into a domain registry (not yet validated)."""
    try:
        model = _FormulaRegistryModel.model_validate_json(payload)
    except ValidationError as exc:
        raise FormulaRegistryDocumentError(source, _format_validation_error(exc)) from exc
    return _to_domain_registry(model)


def load_registry(path: Path | None = None, *, fs: FileSystem | None = None) -> FormulaRegistry:
    """Build the built-in registry, or load an alternate JSON document, and validate it.

    Args:
        path: Optional path to an alternate registry document.
        fs: Optional filesystem for testing.

    Returns:
        A validated, read-only registry.

    Raises:
        FormulaRegistryFileNotFoundError: The document path does not exist.
        FormulaRegistryDocumentError: The document does not match the schema.
        FormulaRegistryValidationError: A weight sum or band invariant is broken.
    """
    logger = get_logger("aso_metadata_engine.formula_registry")
    if path is None:
        registry = build_default_registry()
    else:
        fs = fs or LocalFileSystem()
        if not fs.exists(path):
            raise FormulaRegistryFileNotFoundError(str(path))
        registry = parse_registry_document(fs.read_text(path), source=str(path))

    ensure_valid_registry(registry)
    logger.info("Formula registry %s loaded (%s)", registry.version, path or "built-in")
    return registry


def _to_plain(value: object) -> object:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: _to_plain(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(key): _to_plain(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_to_plain(item) for item in value]
    return value


def registry_to_document(registry: FormulaRegistry) -> dict[str, object]:
    """Serialise a registry into the JSON document shape accepted by ``load_registry``."""
    plain = _to_plain(registry)
    document: dict[str, object] = {"schema_version": _SCHEMA_VERSION}
    if isinstance(plain, dict):
        document.update(plain)
    return document
