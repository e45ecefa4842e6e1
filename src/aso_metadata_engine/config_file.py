"""Typed parsing and validation for engine config files.

Example ``aso-engine.toml``::

    schema_version = 1

    [engine]
    platform = "android"
    max_combo_length = 2
    vertical = "language_learning"
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .domain.formula_registry import Platform
from .exceptions import ConfigFileNotFoundError, ConfigFileParseError, ConfigFileValidationError
from .protocols import FileSystem

_SCHEMA_VERSION = 1


@dataclass(frozen=True)
class EngineConfigFile:
    """Validated engine config values loaded from a TOML file."""

    registry_path: str | None = None
    kpi_registry_path: str | None = None
    extraction_enabled: bool | None = None
    max_combo_length: int | None = None
    max_combos: int | None = None
    parallel_threshold: int | None = None
    max_workers: int | None = None
    platform: Platform | None = None
    vertical: str | None = None
    market: str | None = None
    client_id: str | None = None
    top_combo_limit: int | None = None


class _EngineSectionModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    registry_path: str | None = None
    kpi_registry_path: str | None = None
    extraction_enabled: bool | None = None
    max_combo_length: int | None = None
    max_combos: int | None = None
    parallel_threshold: int | None = None
    max_workers: int | None = None
    platform: Platform | None = None
    vertical: str | None = None
    market: str | None = None
    client_id: str | None = None
    top_combo_limit: int | None = None

    @field_validator(
        "registry_path", "kpi_registry_path", "vertical", "market", "client_id"
    )
    @classmethod
    def _validate_non_empty_text(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = value.strip()
        if not text:
            raise ValueError
        return text

    @field_validator("max_combos", "parallel_threshold", "max_workers", "top_combo_limit")
    @classmethod
    def _validate_positive_int(cls, value: int | None) -> int | None:
        if value is None:
            return None
        if value < 1:
            raise ValueError
        return value

    @field_validator("max_combo_length")
    @classmethod
    def _validate_combo_length(cls, value: int | None) -> int | None:
        if value is None:
            return None
        if value < 2 or value > 4:
            raise ValueError("max_combo_length must be between 2 and 4")
        return value


class _ConfigFileModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int
    engine: _EngineSectionModel

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != _SCHEMA_VERSION:
            raise ValueError
        return value


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def load_engine_config_file(*, path: Path, fs: FileSystem) -> EngineConfigFile:
    """Load and validate an engine TOML config file."""
    if not fs.exists(path):
        raise ConfigFileNotFoundError(str(path))

    try:
        payload: object = tomllib.loads(fs.read_text(path))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigFileParseError(str(path), str(exc)) from exc

    try:
        model = _ConfigFileModel.model_validate(payload)
    except ValidationError as exc:
        raise ConfigFileValidationError(str(path), _format_validation_error(exc)) from exc

    section = model.engine
    return EngineConfigFile(
        registry_path=section.registry_path,
        kpi_registry_path=section.kpi_registry_path,
        extraction_enabled=section.extraction_enabled,
        max_combo_length=section.max_combo_length,
        max_combos=section.max_combos,
        parallel_threshold=section.parallel_threshold,
        max_workers=section.max_workers,
        platform=section.platform,
        vertical=section.vertical,
        market=section.market,
        client_id=section.client_id,
        top_combo_limit=section.top_combo_limit,
    )
