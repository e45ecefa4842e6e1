"""Centralised, injectable configuration for the ASO metadata engine."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Self

from dotenv import load_dotenv

from .config_file import EngineConfigFile
from .domain.formula_registry import Platform


class PositiveIntegerEnvVarError(ValueError):
    """Raised when an environment variable must be a positive integer."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a positive integer.")


class BooleanEnvVarError(ValueError):
    """Raised when an environment variable must be a supported boolean."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be a boolean value (true/false, 1/0, yes/no, on/off).")


class PlatformEnvVarError(ValueError):
    """Raised when an environment variable names an unknown store platform."""

    def __init__(self, env_name: str) -> None:
        choices = ", ".join(platform.value for platform in Platform)
        super().__init__(f"{env_name} must be one of: {choices}.")


class ComboLengthEnvVarError(ValueError):
    """Raised when the maximum combo length is outside 2-4."""

    def __init__(self, env_name: str) -> None:
        super().__init__(f"{env_name} must be between 2 and 4.")


@dataclass(frozen=True)
class EngineConfig:
    """Immutable configuration for an audit run.

    Load from environment with `EngineConfig.from_env()` or construct directly for testing.
    """

    # Registries (empty means built-in)
    registry_path: str = ""
    kpi_registry_path: str = ""

    # Pipeline
    extraction_enabled: bool = True
    max_combo_length: int = 3
    max_combos: int = 1500
    parallel_threshold: int = 500
    max_workers: int | None = None
    top_combo_limit: int = 50

    # Listing context
    platform: Platform = Platform.IOS
    vertical: str | None = None
    market: str | None = None
    client_id: str | None = None

    @classmethod
    def from_env(cls, dotenv_path: str | None = None) -> Self:
        """Load configuration from ``ASO_*`` environment variables.

        Args:
            dotenv_path: Optional path to .env file. If None, uses default .env discovery.

        Returns:
            EngineConfig instance populated from environment.
        """
        load_dotenv(dotenv_path)

        extraction_enabled = _parse_optional_bool(
            os.getenv("ASO_EXTRACTION_ENABLED", ""), env_name="ASO_EXTRACTION_ENABLED"
        )
        return cls(
            registry_path=os.getenv("ASO_FORMULA_REGISTRY", "").strip(),
            kpi_registry_path=os.getenv("ASO_KPI_REGISTRY", "").strip(),
            extraction_enabled=True if extraction_enabled is None else extraction_enabled,
            max_combo_length=_parse_combo_length(
                os.getenv("ASO_MAX_COMBO_LENGTH", ""), env_name="ASO_MAX_COMBO_LENGTH"
            )
            or 3,
            max_combos=_parse_optional_positive_int(
                os.getenv("ASO_MAX_COMBOS", ""), env_name="ASO_MAX_COMBOS"
            )
            or 1500,
            parallel_threshold=_parse_optional_positive_int(
                os.getenv("ASO_PARALLEL_THRESHOLD", ""), env_name="ASO_PARALLEL_THRESHOLD"
            )
            or 500,
            max_workers=_parse_optional_positive_int(
                os.getenv("ASO_MAX_WORKERS", ""), env_name="ASO_MAX_WORKERS"
            ),
            top_combo_limit=_parse_optional_positive_int(
                os.getenv("ASO_TOP_COMBO_LIMIT", ""), env_name="ASO_TOP_COMBO_LIMIT"
            )
            or 50,
            platform=_parse_platform(os.getenv("ASO_PLATFORM", ""), env_name="ASO_PLATFORM")
            or Platform.IOS,
            vertical=_parse_optional_text(os.getenv("ASO_VERTICAL", "")),
            market=_parse_optional_text(os.getenv("ASO_MARKET", "")),
            client_id=_parse_optional_text(os.getenv("ASO_CLIENT_ID", "")),
        )

    def with_overrides(
        self,
        *,
        registry_path: str | None = None,
        kpi_registry_path: str | None = None,
        extraction_enabled: bool | None = None,
        max_combo_length: int | None = None,
        top_combo_limit: int | None = None,
        platform: Platform | None = None,
        vertical: str | None = None,
        market: str | None = None,
        client_id: str | None = None,
    ) -> Self:
        """Return a new config with specified overrides (for CLI options)."""
        return replace(
            self,
            registry_path=self.registry_path if registry_path is None else registry_path.strip(),
            kpi_registry_path=self.kpi_registry_path
            if kpi_registry_path is None
            else kpi_registry_path.strip(),
            extraction_enabled=self.extraction_enabled
            if extraction_enabled is None
            else extraction_enabled,
            max_combo_length=self.max_combo_length
            if max_combo_length is None
            else max_combo_length,
            top_combo_limit=self.top_combo_limit if top_combo_limit is None else top_combo_limit,
            platform=self.platform if platform is None else platform,
            vertical=self.vertical if vertical is None else vertical.strip(),
            market=self.market if market is None else market.strip(),
            client_id=self.client_id if client_id is None else client_id.strip(),
        )

    def with_file_overrides(self, file_config: EngineConfigFile) -> Self:
        """Return a new config with config-file values overriding env/default values."""
        return replace(
            self,
            registry_path=self.registry_path
            if file_config.registry_path is None
            else file_config.registry_path,
            kpi_registry_path=self.kpi_registry_path
            if file_config.kpi_registry_path is None
            else file_config.kpi_registry_path,
            extraction_enabled=self.extraction_enabled
            if file_config.extraction_enabled is None
            else file_config.extraction_enabled,
            max_combo_length=self.max_combo_length
            if file_config.max_combo_length is None
            else file_config.max_combo_length,
            max_combos=self.max_combos
            if file_config.max_combos is None
            else file_config.max_combos,
            parallel_threshold=self.parallel_threshold
            if file_config.parallel_threshold is None
            else file_config.parallel_threshold,
            max_workers=self.max_workers
            if file_config.max_workers is None
            else file_config.max_workers,
            top_combo_limit=self.top_combo_limit
            if file_config.top_combo_limit is None
            else file_config.top_combo_limit,
            platform=self.platform if file_config.platform is None else file_config.platform,
            vertical=self.vertical if file_config.vertical is None else file_config.vertical,
            market=self.market if file_config.market is None else file_config.market,
            client_id=self.client_id
            if file_config.client_id is None
            else file_config.client_id,
        )


def _parse_optional_text(value: str) -> str | None:
    text = value.strip()
    return text or None


def _parse_optional_positive_int(value: str, *, env_name: str) -> int | None:
    """Parse an optional positive integer from an environment variable."""
    text = value.strip()
    if not text:
        return None
    try:
        parsed = int(text)
    except ValueError as exc:
        raise PositiveIntegerEnvVarError(env_name) from exc
    if parsed < 1:
        raise PositiveIntegerEnvVarError(env_name)
    return parsed


def _parse_combo_length(value: str, *, env_name: str) -> int | None:
    try:
        parsed = _parse_optional_positive_int(value, env_name=env_name)
    except PositiveIntegerEnvVarError as exc:
        raise ComboLengthEnvVarError(env_name) from exc
    if parsed is not None and not 2 <= parsed <= 4:
        raise ComboLengthEnvVarError(env_name)
    return parsed


def _parse_optional_bool(value: str, *, env_name: str) -> bool | None:
    """Parse an optional boolean from an environment variable."""
    text = value.strip().lower()
    if not text:
        return None
    if text in {"1", "true", "yes", "y", "on"}:
        return True
    if text in {"0", "false", "no", "n", "off"}:
        return False
    raise BooleanEnvVarError(env_name)


def _parse_platform(value: str, *, env_name: str) -> Platform | None:
    text = value.strip().lower()
    if not text:
        return None
    try:
        return Platform(text)
    except ValueError as exc:
        raise PlatformEnvVarError(env_name) from exc
