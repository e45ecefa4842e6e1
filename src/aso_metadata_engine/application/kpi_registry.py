"""Loading and validation of KPI registries.

The built-in registry is used unless a JSON document is supplied. Any invariant
breach, including a KPI id with no metric behind it, is fatal.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from ..domain.kpi import KPI_METRICS
from ..domain.kpi_registry import (
    DEFAULT_KPI_REGISTRY,
    Direction,
    KpiDefinition,
    KpiFamilyDefinition,
    KpiOverride,
    KpiRegistry,
    OverrideScope,
    validate_kpi_registry,
)
from ..exceptions import KpiRegistryFileNotFoundError, KpiRegistryValidationError
from ..infrastructure import LocalFileSystem
from ..observability import get_logger
from ..protocols import FileSystem

_SCHEMA_VERSION = 1


class _FamilyModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    label: str
    weight: float

    @field_validator("weight")
    @classmethod
    def _validate_weight(cls, value: float) -> float:
        if value < 0.0 or value > 1.0:
            raise ValueError
        return value


class _KpiModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    label: str
    family_id: str
    weight: float
    min_value: float
    max_value: float
    direction: Direction
    target_value: float | None = None
    target_tolerance: float | None = None


class _OverrideModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    kpi_id: str
    scope: OverrideScope
    scope_value: str
    multiplier: float


class _KpiRegistryModel(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int
    version: str
    families: list[_FamilyModel]
    kpis: list[_KpiModel]
    overrides: list[_OverrideModel] = []

    @field_validator("schema_version")
    @classmethod
    def _validate_schema_version(cls, value: int) -> int:
        if value != _SCHEMA_VERSION:
            raise ValueError(f"unsupported schema_version {value}")
        return value


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def _to_domain(model: _KpiRegistryModel) -> KpiRegistry:
    return KpiRegistry(
        version=model.version,
        families=tuple(
            KpiFamilyDefinition(id=family.id, label=family.label, weight=family.weight)
            for family in model.families
        ),
        kpis=tuple(
            KpiDefinition(
                id=kpi.id,
                label=kpi.label,
                family_id=kpi.family_id,
                weight=kpi.weight,
                min_value=kpi.min_value,
                max_value=kpi.max_value,
                direction=kpi.direction,
                target_value=kpi.target_value,
                target_tolerance=kpi.target_tolerance,
            )
            for kpi in model.kpis
        ),
        overrides=tuple(
            KpiOverride(
                kpi_id=override.kpi_id,
                scope=override.scope,
                scope_value=override.scope_value,
                multiplier=override.multiplier,
            )
            for override in model.overrides
        ),
    )


def ensure_valid_kpi_registry(registry: KpiRegistry) -> KpiRegistry:
    """Return the registry unchanged, or raise with every invariant breach."""
    errors = list(validate_kpi_registry(registry))
    errors.extend(
        f"KPI {kpi.id} has no metric implementation"
        for kpi in registry.kpis
        if kpi.id not in KPI_METRICS
    )
    if errors:
        logger = get_logger("aso_metadata_engine.kpi_registry")
        for error in errors:
            logger.error("KPI registry invariant failed: %s", error)
        raise KpiRegistryValidationError(tuple(errors))
    return registry


def load_kpi_registry(path: Path | None = None, *, fs: FileSystem | None = None) -> KpiRegistry:
    """Return the built-in KPI registry, or load a JSON document, and validate it.

    Raises:
        KpiRegistryFileNotFoundError: The document path does not exist.
        KpiRegistryValidationError: The document or registry is invalid.
    """
    logger = get_logger("aso_metadata_engine.kpi_registry")
    if path is None:
        registry = DEFAULT_KPI_REGISTRY
    else:
        fs = fs or LocalFileSystem()
        if not fs.exists(path):
            raise KpiRegistryFileNotFoundError(str(path))
        try:
            model = _KpiRegistryModel.model_validate_json(fs.read_text(path))
        except ValidationError as exc:
            raise KpiRegistryValidationError((_format_validation_error(exc),)) from exc
        registry = _to_domain(model)

    ensure_valid_kpi_registry(registry)
    logger.info(
        "KPI registry %s loaded: %s families, %s KPIs",
        registry.version,
        len(registry.families),
        len(registry.kpis),
    )
    return registry
