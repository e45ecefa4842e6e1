"""KPI and KPI family definitions, override multipliers and registry invariants.

Every KPI belongs to exactly one family. Family weights across the registry sum to
1.0; KPI weights are relative within their family and are renormalised at
aggregation time, so they only need to be non-negative.

Override multipliers scale a KPI's base weight for a vertical, market or client.
The most specific applicable override wins (client, then market, then vertical)
and every applicable entry is kept as provenance.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import StrEnum

from .formula_registry import WEIGHT_TOLERANCE

MIN_OVERRIDE_MULTIPLIER = 0.5
MAX_OVERRIDE_MULTIPLIER = 2.0


class Direction(StrEnum):
    """How a KPI's raw value maps onto 0-100."""

    HIGHER_IS_BETTER = "higher_is_better"
    LOWER_IS_BETTER = "lower_is_better"
    TARGET_RANGE = "target_range"


class OverrideScope(StrEnum):
    BASE = "base"
    VERTICAL = "vertical"
    MARKET = "market"
    CLIENT = "client"


@dataclass(frozen=True)
class KpiFamilyDefinition:
    id: str
    label: str
    weight: float


@dataclass(frozen=True)
class KpiDefinition:
    """One scoring rule: where its raw value lives and how it is normalised."""

    id: str
    label: str
    family_id: str
    weight: float
    min_value: float
    max_value: float
    direction: Direction
    target_value: float | None = None
    target_tolerance: float | None = None


@dataclass(frozen=True)
class KpiOverride:
    """A weight multiplier for one KPI, scoped to a vertical, market or client id."""

    kpi_id: str
    scope: OverrideScope
    scope_value: str
    multiplier: float


@dataclass(frozen=True)
class KpiRegistry:
    version: str
    families: tuple[KpiFamilyDefinition, ...]
    kpis: tuple[KpiDefinition, ...]
    overrides: tuple[KpiOverride, ...] = ()

    def family_kpis(self, family_id: str) -> tuple[KpiDefinition, ...]:
        return tuple(kpi for kpi in self.kpis if kpi.family_id == family_id)


@dataclass(frozen=True)
class OverrideContext:
    """Tags used to look up override multipliers."""

    vertical: str | None = None
    market: str | None = None
    client_id: str | None = None

    def value_for(self, scope: OverrideScope) -> str | None:
        match scope:
            case OverrideScope.VERTICAL:
                return self.vertical
            case OverrideScope.MARKET:
                return self.market
            case OverrideScope.CLIENT:
                return self.client_id
            case OverrideScope.BASE:
                return None


@dataclass(frozen=True)
class OverrideProvenance:
    scope: OverrideScope
    multiplier: float
    source: str | None = None


@dataclass(frozen=True)
class EffectiveWeight:
    """A KPI's base weight, the applied multiplier and where it came from."""

    base_weight: float
    multiplier: float
    provenance: tuple[OverrideProvenance, ...]

    @property
    def weight(self) -> float:
        return self.base_weight * self.multiplier


_SCOPE_PRECEDENCE = (OverrideScope.VERTICAL, OverrideScope.MARKET, OverrideScope.CLIENT)


def clamp_multiplier(multiplier: float) -> float:
    return max(MIN_OVERRIDE_MULTIPLIER, min(MAX_OVERRIDE_MULTIPLIER, multiplier))


def effective_weight(
    kpi: KpiDefinition,
    overrides: tuple[KpiOverride, ...],
    context: OverrideContext | None = None,
) -> EffectiveWeight:
    """Apply the most specific matching override to a KPI's base weight.

    Without a context, or without a matching override, the multiplier is 1.0 and the
    effective weight equals the base weight.
    """
    provenance = [OverrideProvenance(scope=OverrideScope.BASE, multiplier=1.0)]
    multiplier = 1.0
    if context is not None:
        for scope in _SCOPE_PRECEDENCE:
            tag = context.value_for(scope)
            if tag is None:
                continue
            for override in overrides:
                if (
                    override.kpi_id == kpi.id
                    and override.scope is scope
                    and override.scope_value == tag
                ):
                    applied = clamp_multiplier(override.multiplier)
                    provenance.append(
                        OverrideProvenance(scope=scope, multiplier=applied, source=tag)
                    )
                    multiplier = applied
    return EffectiveWeight(
        base_weight=kpi.weight, multiplier=multiplier, provenance=tuple(provenance)
    )


def validate_kpi_registry(registry: KpiRegistry) -> tuple[str, ...]:
    """Return every invariant breach in the registry; empty when valid."""
    errors: list[str] = []
    family_ids = [family.id for family in registry.families]
    duplicate_families = sorted(
        family_id for family_id, count in Counter(family_ids).items() if count > 1
    )
    if duplicate_families:
        errors.append(f"Duplicate KPI family ids: {', '.join(duplicate_families)}")

    total = sum(family.weight for family in registry.families)
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        errors.append(f"KPI family weights sum to {round(total, 4)}, expected 1.0")

    kpi_ids = [kpi.id for kpi in registry.kpis]
    duplicate_kpis = sorted(kpi_id for kpi_id, count in Counter(kpi_ids).items() if count > 1)
    if duplicate_kpis:
        errors.append(f"Duplicate KPI ids: {', '.join(duplicate_kpis)}")

    known_families = set(family_ids)
    for kpi in registry.kpis:
        if kpi.family_id not in known_families:
            errors.append(f"KPI {kpi.id} references unknown family {kpi.family_id}")
        if kpi.weight < 0:
            errors.append(f"KPI {kpi.id} has a negative weight")
        if kpi.min_value >= kpi.max_value:
            errors.append(f"KPI {kpi.id} min_value must be below max_value")
        if kpi.direction is Direction.TARGET_RANGE and (
            kpi.target_value is None or kpi.target_tolerance is None
        ):
            errors.append(f"KPI {kpi.id} needs target_value and target_tolerance")

    known_kpis = set(kpi_ids)
    for override in registry.overrides:
        if override.kpi_id not in known_kpis:
            errors.append(f"Override references unknown KPI {override.kpi_id}")
        if override.scope is OverrideScope.BASE:
            errors.append(f"Override for {override.kpi_id} cannot use the base scope")
        if override.multiplier <= 0:
            errors.append(f"Override for {override.kpi_id} must have a positive multiplier")
    return tuple(errors)


def _kpi(
    kpi_id: str,
    label: str,
    family_id: str,
    weight: float,
    bounds: tuple[float, float],
    direction: Direction = Direction.HIGHER_IS_BETTER,
    target: tuple[float, float] | None = None,
) -> KpiDefinition:
    target_value, target_tolerance = target if target is not None else (None, None)
    return KpiDefinition(
        id=kpi_id,
        label=label,
        family_id=family_id,
        weight=weight,
        min_value=bounds[0],
        max_value=bounds[1],
        direction=direction,
        target_value=target_value,
        target_tolerance=target_tolerance,
    )


_TARGET = Direction.TARGET_RANGE
_LOWER = Direction.LOWER_IS_BETTER

DEFAULT_KPI_REGISTRY = KpiRegistry(
    version="v1",
    families=(
        KpiFamilyDefinition("clarity_structure", "Clarity & Structure", 0.25),
        KpiFamilyDefinition("keyword_architecture", "Keyword Architecture", 0.30),
        KpiFamilyDefinition("hook_strength", "Hook Strength", 0.20),
        KpiFamilyDefinition("brand_vs_generic", "Brand vs Generic Balance", 0.15),
        KpiFamilyDefinition("psychology_alignment", "Psychology Alignment", 0.10),
    ),
    kpis=(
        _kpi("title_char_usage", "Title character usage", "clarity_structure", 0.25,
             (0, 100), _TARGET, (90, 10)),
        _kpi("subtitle_char_usage", "Subtitle character usage", "clarity_structure", 0.20,
             (0, 100), _TARGET, (90, 10)),
        _kpi("title_word_count", "Title word count", "clarity_structure", 0.20,
             (0, 8), _TARGET, (4, 1)),
        _kpi("subtitle_word_count", "Subtitle word count", "clarity_structure", 0.10,
             (0, 10), _TARGET, (5, 2)),
        _kpi("title_token_density", "Title token density", "clarity_structure", 0.15,
             (0, 1)),
        _kpi("subtitle_token_density", "Subtitle token density", "clarity_structure", 0.10,
             (0, 1)),
        _kpi("title_high_value_keyword_count", "High-value title keywords",
             "keyword_architecture", 0.15, (0, 5)),
        _kpi("subtitle_high_value_incremental_keywords", "Incremental subtitle keywords",
             "keyword_architecture", 0.15, (0, 5)),
        _kpi("title_noise_ratio", "Title signal-to-noise", "keyword_architecture", 0.10,
             (0, 100)),
        _kpi("subtitle_noise_ratio", "Subtitle signal-to-noise", "keyword_architecture", 0.10,
             (0, 100)),
        _kpi("title_combo_count_generic", "Generic title combos", "keyword_architecture", 0.10,
             (0, 10)),
        _kpi("subtitle_combo_incremental_generic", "Incremental generic subtitle combos",
             "keyword_architecture", 0.10, (0, 10)),
        _kpi("subtitle_low_value_combo_ratio", "Low-value combo ratio", "keyword_architecture",
             0.10, (0, 1), _LOWER),
        _kpi("title_semantic_keyword_pairs", "Semantic keyword pairs in title",
             "keyword_architecture", 0.10, (0, 3)),
        _kpi("total_unique_keyword_coverage", "Unique keyword coverage",
             "keyword_architecture", 0.10, (0, 10)),
        _kpi("hook_strength_title", "Title hook strength", "hook_strength", 0.25, (0, 100)),
        _kpi("hook_strength_subtitle", "Subtitle hook strength", "hook_strength", 0.25,
             (0, 100)),
        _kpi("specificity_score", "Specificity", "hook_strength", 0.20, (0, 100)),
        _kpi("benefit_density", "Benefit density", "hook_strength", 0.15, (0, 1)),
        _kpi("redundancy_penalty", "Repeated tokens", "hook_strength", 0.15, (0, 50), _LOWER),
        _kpi("brand_presence_title", "Brand in title", "brand_vs_generic", 0.20, (0, 1)),
        _kpi("brand_presence_subtitle", "Brand in subtitle", "brand_vs_generic", 0.10,
             (0, 1), _LOWER),
        _kpi("brand_combo_ratio", "Branded combo ratio", "brand_vs_generic", 0.20,
             (0, 1), _TARGET, (0.3, 0.2)),
        _kpi("generic_discovery_combo_ratio", "Generic discovery combo ratio",
             "brand_vs_generic", 0.30, (0, 1)),
        _kpi("overbranding_indicator", "Overbranding", "brand_vs_generic", 0.15, (0, 1), _LOWER),
        _kpi("title_combo_count_branded", "Branded title combos", "brand_vs_generic", 0.05,
             (0, 6), _TARGET, (2, 1)),
        _kpi("urgency_signal", "Urgency signal", "psychology_alignment", 0.25, (0, 100)),
        _kpi("social_proof_signal", "Social proof signal", "psychology_alignment", 0.25,
             (0, 100)),
        _kpi("benefit_keyword_count", "Benefit keywords", "psychology_alignment", 0.25, (0, 5)),
        _kpi("action_verb_density", "Action verb density", "psychology_alignment", 0.25,
             (0, 1)),
    ),
)  # fmt: skip
