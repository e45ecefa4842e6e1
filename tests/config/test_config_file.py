"""Tests for config-file schema parsing and fail-fast validation."""

from __future__ import annotations

from pathlib import Path

import pytest

from aso_metadata_engine.config_file import load_engine_config_file
from aso_metadata_engine.domain.formula_registry import Platform
from aso_metadata_engine.exceptions import (
    ConfigFileNotFoundError,
    ConfigFileParseError,
    ConfigFileValidationError,
)
from tests.fakes import InMemoryFileSystem


def _write(fs: InMemoryFileSystem, path: Path, content: str) -> None:
    fs.write_text(content, path)


def test_load_engine_config_file_parses_valid_toml() -> None:
    fs = InMemoryFileSystem()
    path = Path("config/aso-engine.toml")
    _write(
        fs,
        path,
        """
schema_version = 1

[engine]
registry_path = "registries/formula.json"
kpi_registry_path = " registries/kpi.json "
extraction_enabled = false
max_combo_length = 2
max_combos = 800
parallel_threshold = 100
max_workers = 3
top_combo_limit = 15
platform = "android"
vertical = "language_learning"
market = "de"
client_id = "acme"
""".strip(),
    )

    parsed = load_engine_config_file(path=path, fs=fs)

    assert parsed.registry_path == "registries/formula.json"
    assert parsed.kpi_registry_path == "registries/kpi.json"
    assert parsed.extraction_enabled is False
    assert parsed.max_combo_length == 2
    assert parsed.max_combos == 800
    assert parsed.parallel_threshold == 100
    assert parsed.max_workers == 3
    assert parsed.top_combo_limit == 15
    assert parsed.platform is Platform.ANDROID
    assert parsed.vertical == "language_learning"
    assert parsed.market == "de"
    assert parsed.client_id == "acme"


def test_load_engine_config_file_leaves_unset_values_empty() -> None:
    fs = InMemoryFileSystem()
    path = Path("aso-engine.toml")
    _write(fs, path, 'schema_version = 1\n\n[engine]\nmarket = "us"\n')

    parsed = load_engine_config_file(path=path, fs=fs)

    assert parsed.market == "us"
    assert parsed.platform is None
    assert parsed.max_combo_length is None


def test_load_engine_config_file_fails_when_file_missing() -> None:
    fs = InMemoryFileSystem()

    with pytest.raises(ConfigFileNotFoundError):
        load_engine_config_file(path=Path("missing.toml"), fs=fs)


def test_load_engine_config_file_fails_on_invalid_toml() -> None:
    fs = InMemoryFileSystem()
    path = Path("broken.toml")
    _write(fs, path, "schema_version = [")

    with pytest.raises(ConfigFileParseError):
        load_engine_config_file(path=path, fs=fs)


@pytest.mark.parametrize(
    ("body", "location"),
    [
        ('schema_version = 2\n\n[engine]\nmarket = "us"\n', "schema_version"),
        ('schema_version = 1\n\n[engine]\nunknown = "x"\n', "engine.unknown"),
        ("schema_version = 1\n\n[engine]\nmax_combo_length = 5\n", "engine.max_combo_length"),
        ("schema_version = 1\n\n[engine]\nmax_combos = 0\n", "engine.max_combos"),
        ('schema_version = 1\n\n[engine]\nvertical = "  "\n', "engine.vertical"),
        ('schema_version = 1\n\n[engine]\nplatform = "windows"\n', "engine.platform"),
        ("schema_version = 1\n", "engine"),
    ],
)
def test_load_engine_config_file_fails_on_schema_violation(body: str, location: str) -> None:
    fs = InMemoryFileSystem()
    path = Path("aso-engine.toml")
    _write(fs, path, body)

    with pytest.raises(ConfigFileValidationError, match=location):
        load_engine_config_file(path=path, fs=fs)
