"""Tests for formula registry document loading, validation and export."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from aso_metadata_engine.application.formula_registry import (
    ensure_valid_registry,
    load_registry,
    parse_registry_document,
    registry_to_document,
)
from aso_metadata_engine.domain.formula_defaults import build_default_registry
from aso_metadata_engine.exceptions import (
    FormulaRegistryDocumentError,
    FormulaRegistryFileNotFoundError,
    FormulaRegistryValidationError,
)
from tests.fakes import InMemoryFileSystem


def _default_document() -> dict[str, object]:
    return registry_to_document(build_default_registry())


def _write_document(fs: InMemoryFileSystem, path: Path, document: dict[str, object]) -> None:
    fs.write_text(json.dumps(document), path)


def test_load_registry_defaults_to_built_in() -> None:
    registry = load_registry()

    assert registry.version == "2.0.0"
    assert registry.metadata_scoring.element_weights["title"] == 0.65


def test_exported_document_loads_back_unchanged(in_memory_fs: InMemoryFileSystem) -> None:
    path = Path("registries/formula.json")
    _write_document(in_memory_fs, path, _default_document())

    loaded = load_registry(path, fs=in_memory_fs)

    assert registry_to_document(loaded) == _default_document()
    assert loaded.combo_priority.length_scores[3] == 100


def test_exported_document_shape() -> None:
    document = _default_document()

    assert document["schema_version"] == 1
    assert document["version"] == "2.0.0"
    assert isinstance(document["changelog"], list)


def test_load_registry_fails_when_file_missing(in_memory_fs: InMemoryFileSystem) -> None:
    with pytest.raises(FormulaRegistryFileNotFoundError, match="missing.json"):
        load_registry(Path("missing.json"), fs=in_memory_fs)


def test_unknown_schema_version_is_a_document_error() -> None:
    document = _default_document()
    document["schema_version"] = 2

    with pytest.raises(FormulaRegistryDocumentError, match="schema_version"):
        parse_registry_document(json.dumps(document))


def test_unknown_keys_are_rejected() -> None:
    document = _default_document()
    document["surprise"] = True

    with pytest.raises(FormulaRegistryDocumentError, match="surprise"):
        parse_registry_document(json.dumps(document), source="what-if.json")


def test_malformed_json_is_a_document_error() -> None:
    with pytest.raises(FormulaRegistryDocumentError, match="what-if.json"):
        parse_registry_document("{not json", source="what-if.json")


def test_broken_weights_fail_validation(in_memory_fs: InMemoryFileSystem) -> None:
    document = _default_document()
    stability = document["stability"]
    assert isinstance(stability, dict)
    stability["weights"] = {"impressions": 0.5, "downloads": 0.2}
    path = Path("broken.json")
    _write_document(in_memory_fs, path, document)

    with pytest.raises(FormulaRegistryValidationError) as excinfo:
        load_registry(path, fs=in_memory_fs)

    assert "Stability weights sum to 0.7, expected 1.0" in excinfo.value.errors


def test_renamed_combo_priority_weights_fail_validation(
    in_memory_fs: InMemoryFileSystem,
) -> None:
    document = _default_document()
    combo_priority = document["combo_priority"]
    assert isinstance(combo_priority, dict)
    combo_priority["weights"] = {
        "semantic": 0.3,
        "len": 0.25,
        "brand": 0.2,
        "nov": 0.15,
        "noise": 0.1,
    }
    path = Path("renamed.json")
    _write_document(in_memory_fs, path, document)

    with pytest.raises(FormulaRegistryValidationError) as excinfo:
        load_registry(path, fs=in_memory_fs)

    errors = excinfo.value.errors
    assert (
        "Combo priority weights missing keys: "
        "semantic_relevance, length, brand_hybrid, novelty, inverse_noise"
    ) in errors
    assert "Combo priority weights have unknown keys: brand, len, noise, nov, semantic" in errors
    assert not any("sum to" in error for error in errors)


def test_mistyped_rule_weight_key_fails_validation(in_memory_fs: InMemoryFileSystem) -> None:
    document = _default_document()
    metadata_scoring = document["metadata_scoring"]
    assert isinstance(metadata_scoring, dict)
    metadata_scoring["rule_weights"]["title"] = {
        "character_usage": 0.25,
        "unique_keyword": 0.30,
        "combo_coverage": 0.30,
        "filler_penalty": 0.15,
    }
    path = Path("rules.json")
    _write_document(in_memory_fs, path, document)

    with pytest.raises(FormulaRegistryValidationError) as excinfo:
        load_registry(path, fs=in_memory_fs)

    assert "Title rule weights missing keys: unique_keywords" in excinfo.value.errors
    assert "Title rule weights have unknown keys: unique_keyword" in excinfo.value.errors


def test_ensure_valid_registry_returns_registry_unchanged() -> None:
    registry = build_default_registry()

    assert ensure_valid_registry(registry) is registry
