"""Tests for formula registry invariants and lookups."""

from __future__ import annotations

import math
from dataclasses import replace
from types import MappingProxyType

import pytest

from aso_metadata_engine.domain.formula_registry import (
    BandColor,
    Confidence,
    FormulaRegistry,
    Platform,
    Priority,
    PriorityThresholds,
    ScoreBand,
    character_limits_for,
    compute_stability_score,
    get_interpretation,
    get_priority,
    get_simulation_confidence,
    normalize_cv,
    validate_registry,
)


def _with_stability_weights(registry: FormulaRegistry, **weights: float) -> FormulaRegistry:
    stability = replace(registry.stability, weights=MappingProxyType(weights))
    return replace(registry, stability=stability)


class TestValidateRegistry:
    def test_default_registry_is_valid(self, registry: FormulaRegistry) -> None:
        result = validate_registry(registry)

        assert result.valid
        assert result.errors == ()

    def test_stability_weights_must_sum_to_one(self, registry: FormulaRegistry) -> None:
        broken = _with_stability_weights(
            registry, impressions=0.25, downloads=0.34, cvr=0.30, direct_share=0.10
        )

        result = validate_registry(broken)

        assert not result.valid
        assert "Stability weights sum to 0.99, expected 1.0" in result.errors

    def test_weight_sum_within_tolerance_passes(self, registry: FormulaRegistry) -> None:
        nearly = _with_stability_weights(
            registry, impressions=0.25, downloads=0.3505, cvr=0.30, direct_share=0.10
        )

        assert validate_registry(nearly).valid

    def test_overlapping_bands_fail(self, registry: FormulaRegistry) -> None:
        bands = (
            ScoreBand("High", 50, 100, BandColor.GREEN),
            ScoreBand("Low", 0, 60, BandColor.RED),
        )
        scoring = replace(registry.metadata_scoring, bands=bands)

        result = validate_registry(replace(registry, metadata_scoring=scoring))

        assert "Metadata score bands 'High' and 'Low' overlap" in result.errors

    def test_unsorted_bands_fail(self, registry: FormulaRegistry) -> None:
        bands = (
            ScoreBand("Low", 0, 49, BandColor.RED),
            ScoreBand("High", 50, 100, BandColor.GREEN),
        )
        stability = replace(registry.stability, bands=bands)

        result = validate_registry(replace(registry, stability=stability))

        assert "Stability bands are not sorted descending at 'High'" in result.errors

    def test_priority_thresholds_must_be_ordered(self, registry: FormulaRegistry) -> None:
        combo_priority = replace(
            registry.combo_priority, priority=PriorityThresholds(high=40, medium=70)
        )

        result = validate_registry(replace(registry, combo_priority=combo_priority))

        assert "Combo priority high threshold must be above medium" in result.errors

    def test_missing_platform_limits_fail(self, registry: FormulaRegistry) -> None:
        scoring = replace(
            registry.metadata_scoring,
            character_limits=MappingProxyType(
                {"ios": registry.metadata_scoring.character_limits["ios"]}
            ),
        )

        result = validate_registry(replace(registry, metadata_scoring=scoring))

        assert "Character limits missing for: android" in result.errors

    def test_stability_weights_must_name_every_metric(self, registry: FormulaRegistry) -> None:
        renamed = _with_stability_weights(
            registry, impressions=0.25, installs=0.35, cvr=0.30, direct_share=0.10
        )

        errors = validate_registry(renamed).errors

        assert "Stability weights missing keys: downloads" in errors
        assert "Stability weights have unknown keys: installs" in errors

    def test_rule_weights_for_unknown_element_fail(self, registry: FormulaRegistry) -> None:
        rule_weights = dict(registry.metadata_scoring.rule_weights)
        rule_weights["icon"] = MappingProxyType({"contrast": 1.0})
        scoring = replace(registry.metadata_scoring, rule_weights=MappingProxyType(rule_weights))

        result = validate_registry(replace(registry, metadata_scoring=scoring))

        assert result.errors == ("Rule weights defined for unknown element: icon",)

    def test_collects_every_error(self, registry: FormulaRegistry) -> None:
        broken = _with_stability_weights(registry, impressions=-0.5, downloads=0.2)

        errors = validate_registry(broken).errors

        assert "Stability weights contain a negative weight" in errors
        assert "Stability weights sum to -0.3, expected 1.0" in errors


class TestInterpretation:
    @pytest.mark.parametrize(
        ("score", "label"),
        [(100, "Very Stable"), (80, "Very Stable"), (79, "Stable"), (45, "Moderate Volatility")],
    )
    def test_inclusive_band_lookup(
        self, registry: FormulaRegistry, score: float, label: str
    ) -> None:
        assert get_interpretation(score, registry.stability.bands).label == label

    def test_out_of_range_falls_back_to_lowest_band(self, registry: FormulaRegistry) -> None:
        assert get_interpretation(150, registry.stability.bands).label == "Highly Volatile"
        assert get_interpretation(-5, registry.stability.bands).label == "Highly Volatile"

    def test_gap_between_integer_bands_falls_back(self, registry: FormulaRegistry) -> None:
        assert get_interpretation(79.5, registry.stability.bands).label == "Highly Volatile"

    def test_empty_band_table(self) -> None:
        assert get_interpretation(50, ()).label == "Unrated"


@pytest.mark.parametrize(
    ("score", "expected"),
    [(70, Priority.HIGH), (69.9, Priority.MEDIUM), (40, Priority.MEDIUM), (39, Priority.LOW)],
)
def test_get_priority(score: float, expected: Priority) -> None:
    assert get_priority(score, PriorityThresholds(high=70, medium=40)) is expected


def test_simulation_confidence(registry: FormulaRegistry) -> None:
    config = registry.simulation

    assert get_simulation_confidence("improve_ttr", config) is Confidence.HIGH
    assert get_simulation_confidence("reduce_funnel_leak", config) is Confidence.MEDIUM
    assert get_simulation_confidence("something_else", config) is Confidence.LOW


class TestStability:
    def test_normalize_cv(self) -> None:
        assert normalize_cv(0.0, 2.0) == 100.0
        assert normalize_cv(1.0, 2.0) == 50.0
        assert normalize_cv(5.0, 2.0) == 0.0
        assert normalize_cv(math.nan, 2.0) == 0.0
        assert normalize_cv(-1.0, 2.0) == 0.0

    def test_missing_metrics_redistribute_weight(self, registry: FormulaRegistry) -> None:
        # impressions and downloads only: (100 * .25 + 50 * .35) / .60 = 70.83
        score = compute_stability_score(
            {"impressions": 0.0, "downloads": 1.0}, registry.stability
        )

        assert score == 71

    def test_no_metrics_scores_zero(self, registry: FormulaRegistry) -> None:
        assert compute_stability_score({}, registry.stability) == 0


def test_character_limits_for_platform(registry: FormulaRegistry) -> None:
    limits = character_limits_for(registry.metadata_scoring, Platform.ANDROID)

    assert (limits.title, limits.subtitle) == (50, 80)
