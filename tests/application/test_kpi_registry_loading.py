"""Tests for KPI registry loading and validation."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from aso_metadata_engine.application.kpi_registry import (
    ensure_valid_kpi_registry,
    load_kpi_registry,
)
from aso_metadata_engine.domain.kpi_registry import (
    DEFAULT_KPI_REGISTRY,
    Direction,
    OverrideScope,
)
from aso_metadata_engine.exceptions import (
    KpiRegistryFileNotFoundError,
    KpiRegistryValidationError,
)
from tests.fakes import InMemoryFileSystem


def _document(**changes: object) -> dict[str, object]:
    document: dict[str, object] = {
        "schema_version": 1,
        "version": "what-if",
        "families": [{"id": "clarity_structure", "label": "Clarity", "weight": 1.0}],
        "kpis": [
            {
                "id": "title_word_count",
                "label": "Title word count",
                "family_id": "clarity_structure",
                "weight": 1.0,
                "min_value": 0,
                "max_value": 8,
                "direction": "target_range",
                "target_value": 4,
                "target_tolerance": 1,
            }
        ],
        "overrides": [
            {
                "kpi_id": "title_word_count",
                "scope": "market",
                "scope_value": "de",
                "multiplier": 1.5,
            }
        ],
    }
    document.update(changes)
    return document


def _write(fs: InMemoryFileSystem, document: dict[str, object]) -> Path:
    path = Path("registries/kpi.json")
    fs.write_text(json.dumps(document), path)
    return path


def test_load_kpi_registry_defaults_to_built_in() -> None:
    assert load_kpi_registry() is DEFAULT_KPI_REGISTRY


def test_load_kpi_registry_from_document(in_memory_fs: InMemoryFileSystem) -> None:
    registry = load_kpi_registry(_write(in_memory_fs, _document()), fs=in_memory_fs)

    assert registry.version == "what-if"
    (kpi,) = registry.kpis
    assert kpi.direction is Direction.TARGET_RANGE
    assert kpi.target_value == 4
    (override,) = registry.overrides
    assert override.scope is OverrideScope.MARKET
    assert override.multiplier == 1.5


def test_load_kpi_registry_fails_when_file_missing(in_memory_fs: InMemoryFileSystem) -> None:
    with pytest.raises(KpiRegistryFileNotFoundError):
        load_kpi_registry(Path("missing.json"), fs=in_memory_fs)


def test_unsupported_schema_version(in_memory_fs: InMemoryFileSystem) -> None:
    path = _write(in_memory_fs, _document(schema_version=3))

    with pytest.raises(KpiRegistryValidationError, match="schema_version"):
        load_kpi_registry(path, fs=in_memory_fs)


def test_family_weights_must_sum_to_one(in_memory_fs: InMemoryFileSystem) -> None:
    families = [{"id": "clarity_structure", "label": "Clarity", "weight": 0.8}]
    path = _write(in_memory_fs, _document(families=families))

    with pytest.raises(KpiRegistryValidationError) as excinfo:
        load_kpi_registry(path, fs=in_memory_fs)

    assert "KPI family weights sum to 0.8, expected 1.0" in excinfo.value.errors


def test_kpi_without_metric_is_rejected(in_memory_fs: InMemoryFileSystem) -> None:
    kpis = [
        {
            "id": "mystery_metric",
            "label": "Mystery",
            "family_id": "clarity_structure",
            "weight": 1.0,
            "min_value": 0,
            "max_value": 1,
            "direction": "higher_is_better",
        }
    ]
    path = _write(in_memory_fs, _document(kpis=kpis, overrides=[]))

    with pytest.raises(KpiRegistryValidationError) as excinfo:
        load_kpi_registry(path, fs=in_memory_fs)

    assert excinfo.value.errors == ("KPI mystery_metric has no metric implementation",)


def test_ensure_valid_kpi_registry_accepts_default() -> None:
    assert ensure_valid_kpi_registry(DEFAULT_KPI_REGISTRY) is DEFAULT_KPI_REGISTRY
