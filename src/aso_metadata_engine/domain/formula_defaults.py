"""Static default definition of the formula registry."""

from __future__ import annotations

from types import MappingProxyType

from .formula_registry import (
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
)

REGISTRY_VERSION = "2.0.0"
REGISTRY_LAST_UPDATED = "2025-01-15"

SIMULATION_DISCLAIMER = (
    "Simulated outcomes are directional estimates based on historical benchmarks "
    "and do not guarantee future performance."
)


def _stability() -> StabilityConfig:
    return StabilityConfig(
        weights=MappingProxyType(
            {
                "impressions": 0.25,
                "downloads": 0.35,
                "cvr": 0.30,
                "direct_share": 0.10,
            }
        ),
        cv_cap=2.0,
        bands=(
            ScoreBand("Very Stable", 80, 100, BandColor.GREEN),
            ScoreBand("Stable", 60, 79, BandColor.GREEN),
            ScoreBand("Moderate Volatility", 40, 59, BandColor.YELLOW),
            ScoreBand("Unstable", 20, 39, BandColor.ORANGE),
            ScoreBand("Highly Volatile", 0, 19, BandColor.RED),
        ),
        data_requirements=DataRequirements(minimum_days=7, recommended_days=30, optimal_days=90),
    )


def _opportunity() -> OpportunityConfig:
    return OpportunityConfig(
        thresholds=MappingProxyType(
            {
                # excellent / good / weak
                "first_impression": (30.0, 20.0, 15.0),
                "pdp_cvr_search": (50.0, 35.0, 25.0),
                "pdp_cvr_browse": (60.0, 45.0, 35.0),
                # inverted: lower leak is better
                "funnel_leak": (40.0, 60.0, 75.0),
                "search_browse_ratio": (0.3, 0.8, 3.0, 5.0),
                "direct_propensity": (40.0, 20.0, 10.0),
                "metadata_strength": (2.5, 1.5, 1.0),
                "creative_strength": (2.5, 1.5, 1.0),
            }
        ),
        multipliers=MappingProxyType(
            {
                "icon_title": 5.0,
                "pdp_cvr": 2.0,
                "funnel_leak": 1.5,
                "search_browse_ratio": 50.0,
                "direct_propensity": 3.0,
                "channel_imbalance": 30.0,
            }
        ),
        limits=OpportunityLimits(max_score=100.0, max_opportunities=4, min_data_threshold=100),
        priority=PriorityThresholds(high=70.0, medium=40.0),
    )


def _simulation() -> SimulationConfig:
    return SimulationConfig(
        presets=MappingProxyType(
            {
                "ttr_improvement_pct": 1.0,
                "cvr_improvement_pct": 0.10,
                "funnel_leak_reduction_pct": 5.0,
                "search_impression_growth_pct": 0.10,
            }
        ),
        caps=MappingProxyType(
            {
                "max_ttr_pct": 70.0,
                "max_cvr_improvement_pct": 30.0,
                "max_funnel_leak_reduction_pct": 10.0,
                "max_impression_growth_pct": 50.0,
            }
        ),
        high_confidence=("improve_ttr", "improve_pdp_cvr"),
        medium_confidence=("reduce_funnel_leak", "increase_search_impressions"),
        max_scenarios=3,
        min_impact=10.0,
        disclaimer=SIMULATION_DISCLAIMER,
    )


def _attribution() -> AttributionConfig:
    return AttributionConfig(
        pattern_thresholds=MappingProxyType(
            {
                "impression_drop_pct": -15.0,
                "impression_spike_pct": 20.0,
                "cvr_drop_pct": -10.0,
                "cvr_spike_pct": 15.0,
                "download_drop_pct": -15.0,
                "download_spike_pct": 20.0,
                "ttr_drop_pct": -10.0,
                "search_share_shift_pct": 10.0,
                "browse_share_shift_pct": 10.0,
                "direct_share_shift_pct": 5.0,
                "min_baseline_impressions": 1000.0,
                "min_baseline_downloads": 50.0,
            }
        ),
        confidence_weights=MappingProxyType({"high": 3.0, "medium": 2.0, "low": 1.0}),
        max_attributions=5,
        min_signals_for_high_confidence=3,
    )


def _combo_priority() -> ComboPriorityConfig:
    return ComboPriorityConfig(
        weights=MappingProxyType(
            {
                "semantic_relevance": 0.30,
                "length": 0.25,
                "brand_hybrid": 0.20,
                "novelty": 0.15,
                "inverse_noise": 0.10,
            }
        ),
        # 3 words is the optimum; the table is deliberately non-monotonic
        length_scores=MappingProxyType({1: 50.0, 2: 80.0, 3: 100.0, 4: 90.0, 5: 70.0}),
        long_length_score=60.0,
        semantic_fallbacks=MappingProxyType(
            {"branded": 80.0, "generic": 60.0, "low_value": 20.0, "unknown": 50.0}
        ),
        novelty=NoveltyScores(
            long_cross_field=90.0,
            long_single_field=70.0,
            pair_cross_field=60.0,
            pair_single_field=40.0,
            single_word=20.0,
        ),
        noise=NoiseDefaults(low_value=70.0, zero_relevance=60.0, default=20.0),
        max_relevance=3,
        high_value_threshold=70.0,
        long_tail_min_length=3,
        priority=PriorityThresholds(high=70.0, medium=40.0),
    )


def _metadata_scoring() -> MetadataScoringConfig:
    return MetadataScoringConfig(
        element_weights=MappingProxyType({"title": 0.65, "subtitle": 0.35, "description": 0.0}),
        rule_weights=MappingProxyType(
            {
                "title": MappingProxyType(
                    {
                        "character_usage": 0.25,
                        "unique_keywords": 0.30,
                        "combo_coverage": 0.30,
                        "filler_penalty": 0.15,
                    }
                ),
                "subtitle": MappingProxyType(
                    {
                        "character_usage": 0.20,
                        "incremental_value": 0.40,
                        "combo_coverage": 0.25,
                        "complementarity": 0.15,
                    }
                ),
                "description": MappingProxyType(
                    {
                        "hook_strength": 0.30,
                        "feature_mentions": 0.25,
                        "call_to_action": 0.20,
                        "readability": 0.25,
                    }
                ),
            }
        ),
        character_limits=MappingProxyType(
            {
                "ios": CharacterLimits(title=30, subtitle=30),
                "android": CharacterLimits(title=50, subtitle=80),
            }
        ),
        bands=(
            ScoreBand("Excellent", 85, 100, BandColor.GREEN),
            ScoreBand("Good", 70, 84, BandColor.GREEN),
            ScoreBand("Fair", 50, 69, BandColor.YELLOW),
            ScoreBand("Weak", 30, 49, BandColor.ORANGE),
            ScoreBand("Poor", 0, 29, BandColor.RED),
        ),
    )


def _changelog() -> tuple[ChangelogEntry, ...]:
    return (
        ChangelogEntry(
            version="2.0.0",
            date="2025-01-15",
            changes=(
                "Added combo priority and metadata scoring sections",
                "Added opportunity priority thresholds",
                "Moved stability bands to non-overlapping integer ranges",
            ),
        ),
        ChangelogEntry(
            version="1.0.0",
            date="2025-01-10",
            changes=("Initial registry with stability, opportunity, simulation and attribution",),
        ),
    )


def build_default_registry() -> FormulaRegistry:
    """Construct the built-in registry definition (unvalidated)."""
    return FormulaRegistry(
        version=REGISTRY_VERSION,
        last_updated=REGISTRY_LAST_UPDATED,
        stability=_stability(),
        opportunity=_opportunity(),
        simulation=_simulation(),
        attribution=_attribution(),
        combo_priority=_combo_priority(),
        metadata_scoring=_metadata_scoring(),
        changelog=_changelog(),
    )
