"""Tests for the batch listing audit."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from aso_metadata_engine.application.audit import MetadataAuditEngine
from aso_metadata_engine.application.batch_audit import (
    COMBO_OPPORTUNITY_COLUMNS,
    LISTING_SCORE_COLUMNS,
    run_batch_audit,
)
from aso_metadata_engine.domain.formula_defaults import build_default_registry
from aso_metadata_engine.domain.kpi_registry import DEFAULT_KPI_REGISTRY
from aso_metadata_engine.exceptions import BatchInputColumnsError
from tests.fakes import InMemoryFileSystem

LISTINGS_PATH = Path("data/listings.csv")
OUT_DIR = Path("data/audit")


def _engine() -> MetadataAuditEngine:
    return MetadataAuditEngine(build_default_registry(), DEFAULT_KPI_REGISTRY)


def _listings() -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "app_id": "pimsleur",
                "brand": "pimsleur",
                "title": "Pimsleur | Language Learning",
                "subtitle": "Speak Spanish Fast",
                "keywords": "vocabulary,grammar",
                "description": "Learn offline with bite-sized lessons.",
            },
            {
                "app_id": "",
                "brand": "",
                "title": "Flashcards for French",
                "subtitle": "",
                "keywords": "",
                "description": "",
            },
        ]
    )


def test_run_batch_audit_writes_score_and_opportunity_tables(
    in_memory_fs: InMemoryFileSystem,
) -> None:
    in_memory_fs.write_csv(_listings(), LISTINGS_PATH)

    result = run_batch_audit(LISTINGS_PATH, OUT_DIR, _engine(), fs=in_memory_fs)

    assert result.listings == 2
    assert result.listing_scores == OUT_DIR / "listing_scores.csv"
    assert in_memory_fs.exists(OUT_DIR)

    scores = in_memory_fs.read_csv(result.listing_scores)
    assert list(scores.columns) == list(LISTING_SCORE_COLUMNS)
    assert scores["app_id"].tolist() == ["pimsleur", "2"]
    assert scores["state"].tolist() == ["success", "success"]
    assert scores.loc[0, "capabilities_detected"] > 0
    assert scores.loc[1, "capabilities_detected"] == 0
    assert scores.loc[1, "unique_keywords"] == 2

    opportunities = in_memory_fs.read_csv(result.combo_opportunities)
    assert list(opportunities.columns) == list(COMBO_OPPORTUNITY_COLUMNS)
    first = opportunities[opportunities["app_id"] == "pimsleur"]
    assert not first.empty
    assert first["rank"].tolist() == list(range(1, len(first) + 1))
    assert first["total_score"].is_monotonic_decreasing


def test_run_batch_audit_fails_on_missing_columns(in_memory_fs: InMemoryFileSystem) -> None:
    in_memory_fs.write_csv(pd.DataFrame([{"title": "Pimsleur", "subtitle": ""}]), LISTINGS_PATH)

    with pytest.raises(BatchInputColumnsError) as excinfo:
        run_batch_audit(LISTINGS_PATH, OUT_DIR, _engine(), fs=in_memory_fs)

    assert excinfo.value.missing == ("keywords", "description")


def test_run_batch_audit_handles_empty_input(in_memory_fs: InMemoryFileSystem) -> None:
    empty = pd.DataFrame(columns=["title", "subtitle", "keywords", "description"])
    in_memory_fs.write_csv(empty, LISTINGS_PATH)

    result = run_batch_audit(LISTINGS_PATH, OUT_DIR, _engine(), fs=in_memory_fs)

    assert result.listings == 0
    assert in_memory_fs.read_csv(result.listing_scores).empty
    assert in_memory_fs.read_csv(result.combo_opportunities).empty
