"""Tests for title, subtitle and description element scoring."""

from __future__ import annotations

import pytest

from aso_metadata_engine.domain.brand import build_brand_aliases
from aso_metadata_engine.domain.combos import ClassifiedCombo, generate_combos
from aso_metadata_engine.domain.elements import (
    ElementScore,
    RuleResult,
    count_syllables,
    flesch_reading_ease,
    score_elements,
)
from aso_metadata_engine.domain.formula_registry import FormulaRegistry, Platform
from aso_metadata_engine.domain.tokenization import tokenize

TITLE = "Pimsleur Language Learning"
SUBTITLE = "Speak Spanish Fast"
DESCRIPTION = (
    "Discover Spanish with lessons built for busy people who want results.\n"
    "Download now and start today. Join our community."
)


def _combos() -> tuple[ClassifiedCombo, ...]:
    return generate_combos(
        tokenize(TITLE),
        tokenize(SUBTITLE),
        (),
        f"{TITLE}\n{SUBTITLE}",
        brand_aliases=build_brand_aliases("pimsleur"),
    )


def _rule(element: ElementScore, rule_id: str) -> RuleResult:
    return next(rule for rule in element.rules if rule.rule_id == rule_id)


class TestScoreElements:
    def test_title_and_subtitle_scores(self, registry: FormulaRegistry) -> None:
        scores = score_elements(TITLE, SUBTITLE, None, _combos(), registry)

        # 85 * .25 + 76.67 * .30 + 75 * .30 + 100 * .15 = 81.75
        assert scores.title.score == 82
        # 60 * .20 + 75 * .40 + 95 * .25 + 100 * .15 = 80.75
        assert scores.subtitle.score == 81
        assert scores.metadata_score == 82
        assert scores.band.label == "Good"

    def test_rule_details(self, registry: FormulaRegistry) -> None:
        scores = score_elements(TITLE, SUBTITLE, None, _combos(), registry)

        usage = _rule(scores.title, "title_character_usage")
        assert usage.score == 85
        assert usage.passed
        assert usage.message == "Using 26/30 characters (87%)"

        incremental = _rule(scores.subtitle, "subtitle_incremental_value")
        assert incremental.evidence == ("speak", "spanish")
        assert incremental.weight == 0.40

        complementarity = _rule(scores.subtitle, "subtitle_complementarity")
        assert complementarity.message == "Excellent complementarity with title"

    def test_description_does_not_move_metadata_score(self, registry: FormulaRegistry) -> None:
        without = score_elements(TITLE, SUBTITLE, None, _combos(), registry)
        with_description = score_elements(TITLE, SUBTITLE, DESCRIPTION, _combos(), registry)

        assert with_description.description.score > 0
        assert with_description.metadata_score == without.metadata_score

    def test_description_rules(self, registry: FormulaRegistry) -> None:
        description = score_elements(TITLE, SUBTITLE, DESCRIPTION, (), registry).description

        hook = _rule(description, "description_hook_strength")
        assert hook.score == 90
        assert hook.evidence == ("discover",)

        cta = _rule(description, "description_call_to_action")
        assert cta.score == 75
        assert cta.evidence == ("download", "start", "join")
        assert cta.message == "3 CTAs detected"

        features = _rule(description, "description_feature_mentions")
        assert features.message == "0 feature mentions"
        assert not features.passed

    def test_missing_subtitle(self, registry: FormulaRegistry) -> None:
        subtitle = score_elements(TITLE, "", None, (), registry).subtitle

        assert subtitle.score == 0
        assert _rule(subtitle, "subtitle_character_usage").message == "No subtitle set"
        assert _rule(subtitle, "subtitle_incremental_value").message == "No subtitle provided"

    def test_empty_listing_lands_in_lowest_band(self, registry: FormulaRegistry) -> None:
        scores = score_elements(None, None, None, (), registry)

        # title: 40 * .25 + 0 + 20 * .30 + 100 * .15 = 31; 31 * .65 = 20.15
        assert scores.title.score == 31
        assert scores.metadata_score == 20
        assert scores.band.label == "Poor"

    def test_android_limits(self, registry: FormulaRegistry) -> None:
        scores = score_elements(TITLE, SUBTITLE, None, (), registry, platform=Platform.ANDROID)

        assert scores.title.max_characters == 50
        assert scores.subtitle.max_characters == 80
        assert scores.title.character_count == 26

    def test_overlong_title_scores_zero_usage(self, registry: FormulaRegistry) -> None:
        title = "Pimsleur Language Learning For Everyone"

        scores = score_elements(title, SUBTITLE, None, (), registry)

        usage = _rule(scores.title, "title_character_usage")
        assert usage.score == 0
        assert not usage.passed


@pytest.mark.parametrize(
    ("word", "expected"),
    [("the", 1), ("language", 2), ("learning", 2), ("beautiful", 3), ("", 0), ("42", 0)],
)
def test_count_syllables(word: str, expected: int) -> None:
    assert count_syllables(word) == expected


def test_flesch_reading_ease() -> None:
    # 206.835 - 1.015 * 3 - 84.6 * 1
    assert flesch_reading_ease("The cat sat. The dog ran.") == pytest.approx(119.19)
    assert flesch_reading_ease("") is None
    assert flesch_reading_ease("...") is None
