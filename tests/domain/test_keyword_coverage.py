"""Tests for keyword coverage across listing elements."""

from __future__ import annotations

from aso_metadata_engine.domain.keyword_coverage import analyze_keyword_coverage


def test_each_element_reports_only_new_keywords() -> None:
    coverage = analyze_keyword_coverage(
        "Pimsleur | Language Learning App",
        "Learn Spanish with Language Lessons",
        "Speak Spanish in 10 minutes a day. Lessons for every level.",
    )

    assert coverage.title_keywords == ("language", "learning", "pimsleur")
    assert coverage.subtitle_new_keywords == ("learn", "spanish", "lessons")
    assert coverage.description_new_keywords == ("speak", "minutes", "day", "every", "level")
    assert coverage.total_unique_keywords == 11


def test_ignored_counts_per_element() -> None:
    coverage = analyze_keyword_coverage(
        "Pimsleur | Language Learning App",
        "Learn Spanish with Language Lessons",
        "Speak Spanish in 10 minutes a day. Lessons for every level.",
    )

    assert coverage.title_ignored_count == 1
    assert coverage.subtitle_ignored_count == 1
    assert coverage.description_ignored_count == 4


def test_relevance_table_changes_order() -> None:
    coverage = analyze_keyword_coverage(
        "Pimsleur Language Learning", "", relevance_table={"pimsleur": 3}
    )

    assert coverage.title_keywords == ("pimsleur", "language", "learning")


def test_description_keywords_are_capped_before_ordering() -> None:
    coverage = analyze_keyword_coverage(
        "", "", "alpha bravo charlie delta spanish", description_limit=3
    )

    assert coverage.description_new_keywords == ("alpha", "bravo", "charlie")
    assert coverage.total_unique_keywords == 5


def test_default_description_cap() -> None:
    words = " ".join(f"word{letter}" for letter in "abcdefghijklmnopqrstuvwxy")

    coverage = analyze_keyword_coverage("", "", words)

    assert len(coverage.description_new_keywords) == 20
    assert coverage.total_unique_keywords == 25


def test_empty_listing() -> None:
    coverage = analyze_keyword_coverage(None, None, None)

    assert coverage.total_unique_keywords == 0
    assert coverage.title_keywords == ()
    assert coverage.subtitle_new_keywords == ()
    assert coverage.description_new_keywords == ()
    assert coverage.description_ignored_count == 0
