"""Custom exceptions for the ASO metadata engine.

Configuration errors are fatal and raised at load time. Scoring functions never
raise on well-typed input; malformed input is rejected at the audit boundary.
"""

from __future__ import annotations


class EngineError(Exception):
    """Base exception for all engine errors."""

    pass


class FormulaRegistryFileNotFoundError(EngineError):
    """Raised when an alternate formula registry document is missing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Formula registry file not found: {path}")


class FormulaRegistryDocumentError(EngineError):
    """Raised when a formula registry document cannot be parsed into the schema."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid formula registry document {path}: {detail}")


class FormulaRegistryValidationError(EngineError):
    """Raised when a formula registry breaks a weight or band invariant.

    This is a fatal configuration error and must abort initialisation.
    """

    def __init__(self, errors: tuple[str, ...]) -> None:
        self.errors = errors
        joined = "; ".join(errors)
        super().__init__(f"Formula registry validation failed: {joined}")


class KpiRegistryFileNotFoundError(EngineError):
    """Raised when an alternate KPI registry document is missing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"KPI registry file not found: {path}")


class KpiRegistryValidationError(EngineError):
    """Raised when the KPI registry is internally inconsistent."""

    def __init__(self, errors: tuple[str, ...]) -> None:
        self.errors = errors
        joined = "; ".join(errors)
        super().__init__(f"KPI registry validation failed: {joined}")


class ListingValidationError(EngineError):
    """Raised when listing input fails boundary validation."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"Invalid listing input: {detail}")


class ListingFileNotFoundError(EngineError):
    """Raised when a listing input file is missing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Listing file not found: {path}")


class BatchInputColumnsError(EngineError):
    """Raised when a batch listing CSV is missing required columns."""

    def __init__(self, missing: tuple[str, ...]) -> None:
        self.missing = missing
        super().__init__(f"Batch listing CSV is missing columns: {', '.join(missing)}")


class ConfigFileNotFoundError(EngineError):
    """Raised when an engine config file is missing."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Config file not found: {path}")


class ConfigFileParseError(EngineError):
    """Raised when an engine config file is not valid TOML."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"Config file {path} is not valid TOML: {detail}")


class ConfigFileValidationError(EngineError):
    """Raised when an engine config file fails schema validation."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"Config file {path} failed validation: {detail}")
