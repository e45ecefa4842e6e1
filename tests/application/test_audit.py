"""Tests for the metadata audit orchestration."""

from __future__ import annotations

from pathlib import Path

import pytest

from aso_metadata_engine.application import audit as audit_module
from aso_metadata_engine.application.audit import (
    AuditContext,
    AuditStage,
    AuditState,
    ListingInput,
    MetadataAuditEngine,
    combine_scores,
    load_listing,
    parse_listing,
)
from aso_metadata_engine.config import EngineConfig
from aso_metadata_engine.domain.capabilities import ExtractionMode
from aso_metadata_engine.domain.formula_defaults import build_default_registry
from aso_metadata_engine.domain.formula_registry import Platform
from aso_metadata_engine.domain.kpi_registry import DEFAULT_KPI_REGISTRY
from aso_metadata_engine.exceptions import ListingFileNotFoundError, ListingValidationError
from tests.fakes import InMemoryFileSystem

LISTING = ListingInput(
    title="Pimsleur | Language Learning",
    subtitle="Speak Spanish Fast",
    keyword_field="vocabulary,grammar,conversation",
    description="Learn offline with bite-sized lessons. Trusted by 10M+ learners.",
)

ALL_STAGES = (
    AuditStage.EXTRACTING,
    AuditStage.COMBINING,
    AuditStage.SCORING,
    AuditStage.AGGREGATING,
)


def _engine(config: EngineConfig | None = None) -> MetadataAuditEngine:
    return MetadataAuditEngine(build_default_registry(), DEFAULT_KPI_REGISTRY, config=config)


class TestRun:
    def test_successful_run(self) -> None:
        result = _engine().run(LISTING, AuditContext(brand="pimsleur"))

        status = result.stage_status
        assert status.state is AuditState.SUCCESS
        assert status.completed == ALL_STAGES
        assert status.failed == ()
        assert result.capability_map.total > 0
        assert result.combos
        assert len(result.scored_combos) == len(result.combos)
        assert result.top_combos is not None
        assert result.kpi_result is not None
        assert result.element_scores is not None
        assert result.overall_score == combine_scores(
            result.kpi_result.overall_score, result.element_scores.metadata_score
        )
        assert result.registry_version == "2.0.0"

    def test_brand_context_classifies_branded_combos(self) -> None:
        result = _engine().run(LISTING, AuditContext(brand="pimsleur"))

        branded = [combo for combo in result.combos if combo.matched_brand_alias == "pimsleur"]
        assert branded
        assert all("pimsleur" in combo.keywords for combo in branded)

    def test_run_without_context_uses_config_platform(self) -> None:
        result = _engine(EngineConfig(platform=Platform.ANDROID)).run(LISTING)

        assert result.element_scores is not None
        assert result.element_scores.title.max_characters == 50

    def test_disabled_extraction_is_a_partial_failure(self) -> None:
        result = _engine().run(LISTING, mode=ExtractionMode.DISABLED)

        status = result.stage_status
        assert status.state is AuditState.PARTIAL_FAILURE
        assert status.skipped == (AuditStage.EXTRACTING,)
        assert status.completed == ALL_STAGES[1:]
        assert result.capability_map.total == 0
        assert result.overall_score is not None

    def test_config_can_disable_extraction(self) -> None:
        result = _engine(EngineConfig(extraction_enabled=False)).run(LISTING)

        assert result.stage_status.skipped == (AuditStage.EXTRACTING,)

    def test_combining_failure_skips_scoring(self, monkeypatch: pytest.MonkeyPatch) -> None:
        def failing_generate_combos(*args: object, **kwargs: object) -> tuple[()]:
            _ = (args, kwargs)
            raise RuntimeError("boom")

        monkeypatch.setattr(audit_module, "generate_combos", failing_generate_combos)

        result = _engine().run(LISTING)

        status = result.stage_status
        assert status.state is AuditState.PARTIAL_FAILURE
        assert status.failed == (AuditStage.COMBINING,)
        assert status.skipped == (AuditStage.SCORING,)
        assert status.errors == {"combining": "RuntimeError: boom"}
        assert result.combos == ()
        assert result.top_combos is None
        assert result.kpi_result is not None
        assert result.overall_score is not None

    def test_aggregation_failure_leaves_no_overall_score(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        def failing_evaluate_kpis(*args: object, **kwargs: object) -> None:
            _ = (args, kwargs)
            raise ValueError("bad registry")

        monkeypatch.setattr(audit_module, "evaluate_kpis", failing_evaluate_kpis)

        result = _engine().run(LISTING)

        assert result.stage_status.failed == (AuditStage.AGGREGATING,)
        assert result.kpi_result is None
        assert result.element_scores is None
        assert result.keyword_coverage is None
        assert result.overall_score is None
        assert result.scored_combos

    def test_scored_combos_are_ranked_by_total(self) -> None:
        listing = ListingInput(
            title="Duolingo Language Lessons",
            subtitle="Learn Spanish French Fast",
            keyword_field="grammar,vocabulary,daily",
        )

        result = _engine().run(listing, AuditContext(brand="duolingo"))

        totals = [item.total_score for item in result.scored_combos]
        assert len(totals) == len(result.combos)
        assert totals == sorted(totals, reverse=True)
        assert result.top_combos is not None
        assert result.scored_combos[: len(result.top_combos.top)] == result.top_combos.top

    def test_keyword_coverage_is_reported(self) -> None:
        result = _engine().run(LISTING, AuditContext(brand="pimsleur"))

        coverage = result.keyword_coverage
        assert coverage is not None
        assert coverage.title_keywords == ("language", "learning", "pimsleur")
        assert coverage.subtitle_new_keywords == ("speak", "spanish", "fast")
        assert coverage.description_new_keywords[:2] == ("learn", "lessons")

    def test_runs_are_independent(self) -> None:
        engine = _engine()

        first = engine.run(LISTING, AuditContext(brand="pimsleur"))
        second = engine.run(LISTING, AuditContext(brand="pimsleur"))

        assert first.overall_score == second.overall_score
        assert [item.text for item in first.scored_combos] == [
            item.text for item in second.scored_combos
        ]


def test_context_from_config_copies_override_tags() -> None:
    config = EngineConfig(vertical="language_learning", market="de", platform=Platform.ANDROID)

    context = AuditContext.from_config(config, brand="pimsleur", token_relevance={"pimsleur": 3})

    assert context.override_context().market == "de"
    assert context.platform is Platform.ANDROID
    assert context.relevance_table == {"pimsleur": 3}
    assert context.aliases().match(("pimsleur", "spanish")) == "pimsleur"


def test_empty_relevance_table_is_none() -> None:
    assert AuditContext().relevance_table is None


def test_engine_from_config_loads_built_in_registries() -> None:
    engine = MetadataAuditEngine.from_config(EngineConfig(max_combos=10))

    assert engine.registry.version == "2.0.0"
    assert engine.kpi_registry is DEFAULT_KPI_REGISTRY
    assert engine.config.max_combos == 10


@pytest.mark.parametrize(
    ("kpi_overall", "metadata", "expected"),
    [(80.0, 70, 75), (64.5, None, 65), (None, 70, 70), (None, None, None)],
)
def test_combine_scores(
    kpi_overall: float | None, metadata: int | None, expected: int | None
) -> None:
    assert combine_scores(kpi_overall, metadata) == expected


class TestListingBoundary:
    def test_parse_listing_strips_text(self) -> None:
        listing = parse_listing({"title": "  Pimsleur  ", "subtitle": "Speak"})

        assert listing.title == "Pimsleur"
        assert listing.keyword_field == ""
        assert listing.visible_text == "Pimsleur\nSpeak"

    def test_parse_listing_rejects_non_text(self) -> None:
        with pytest.raises(ListingValidationError, match="title"):
            parse_listing({"title": 42})

    def test_parse_listing_rejects_unknown_fields(self) -> None:
        with pytest.raises(ListingValidationError, match="rating"):
            parse_listing({"title": "Pimsleur", "rating": "5"})

    def test_load_listing(self, in_memory_fs: InMemoryFileSystem) -> None:
        path = Path("listing.json")
        in_memory_fs.write_json({"title": "Pimsleur", "description": "Learn"}, path)

        listing = load_listing(path, fs=in_memory_fs)

        assert listing.description == "Learn"

    def test_load_listing_missing_file(self, in_memory_fs: InMemoryFileSystem) -> None:
        with pytest.raises(ListingFileNotFoundError):
            load_listing(Path("nope.json"), fs=in_memory_fs)
