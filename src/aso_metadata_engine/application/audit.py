"""Metadata audit orchestration: extraction, combination, scoring and aggregation.

A run walks four stages in order. Stage failures are logged and recorded in the
result's ``StageStatus`` instead of being raised, so a caller always receives
whatever the other stages produced. A run with any failed or skipped stage ends in
``partial_failure``.

Example:
    >>> from aso_metadata_engine.application.audit import (
    ...     AuditContext, ListingInput, MetadataAuditEngine,
    ... )
    >>> engine = MetadataAuditEngine.from_config()
    >>> listing = ListingInput(title="Pimsleur | Language Learning", subtitle="Speak Spanish")
    >>> result = engine.run(listing, AuditContext(brand="pimsleur"))
    >>> result.stage_status.state
    <AuditState.SUCCESS: 'success'>
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from types import MappingProxyType
from typing import Self

from pydantic import BaseModel, ConfigDict, StrictStr, ValidationError, field_validator

from ..config import EngineConfig
from ..domain.brand import BrandAliases, build_brand_aliases
from ..domain.capabilities import AppCapabilityMap, ExtractionMode, extract_capabilities
from ..domain.combos import ClassifiedCombo, generate_combos
from ..domain.elements import ElementScores, score_elements
from ..domain.formula_registry import FormulaRegistry, Platform, character_limits_for
from ..domain.keyword_coverage import KeywordCoverage, analyze_keyword_coverage
from ..domain.kpi import KpiEngineResult, build_listing_data, evaluate_kpis
from ..domain.kpi_registry import KpiRegistry, OverrideContext
from ..domain.numbers import clamp_score
from ..domain.patterns import DEFAULT_PATTERN_LIBRARY, PatternLibrary
from ..domain.priority import (
    ScoredCombo,
    TopComboSelection,
    rank_scored_combos,
    score_combos,
    select_top_combos,
)
from ..domain.tokenization import parse_keyword_field, tokenize
from ..exceptions import ListingFileNotFoundError, ListingValidationError
from ..infrastructure import LocalFileSystem
from ..observability import get_logger
from ..protocols import FileSystem
from .formula_registry import load_registry
from .kpi_registry import load_kpi_registry


class AuditState(StrEnum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    COMBINING = "combining"
    SCORING = "scoring"
    AGGREGATING = "aggregating"
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"


class AuditStage(StrEnum):
    EXTRACTING = "extracting"
    COMBINING = "combining"
    SCORING = "scoring"
    AGGREGATING = "aggregating"


class ListingInput(BaseModel):
    """Listing text as received at the boundary; every field is optional text."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    title: StrictStr = ""
    subtitle: StrictStr = ""
    keyword_field: StrictStr = ""
    description: StrictStr = ""

    @field_validator("title", "subtitle", "keyword_field", "description")
    @classmethod
    def _strip(cls, value: str) -> str:
        return value.strip()

    @property
    def visible_text(self) -> str:
        """Title and subtitle, one per line, as a shopper sees them."""
        return "\n".join(part for part in (self.title, self.subtitle) if part)


def _format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ("<root>",)))
    message = str(first.get("msg", "invalid value"))
    return f"{location}: {message}"


def parse_listing(payload: Mapping[str, object]) -> ListingInput:
    """Validate a raw mapping into a ``ListingInput``.

    Raises:
        ListingValidationError: A field has the wrong type or is unknown.
    """
    try:
        return ListingInput.model_validate(dict(payload))
    except ValidationError as exc:
        raise ListingValidationError(_format_validation_error(exc)) from exc


def load_listing(path: Path, *, fs: FileSystem | None = None) -> ListingInput:
    """Load a listing from a JSON object file."""
    fs = fs or LocalFileSystem()
    if not fs.exists(path):
        raise ListingFileNotFoundError(str(path))
    return parse_listing(fs.read_json(path))


def _empty_relevance() -> Mapping[str, int]:
    return MappingProxyType({})


@dataclass(frozen=True)
class AuditContext:
    """Optional per-run context: brand, override tags, relevance table and platform."""

    brand: str | None = None
    brand_aliases: tuple[str, ...] = ()
    vertical: str | None = None
    market: str | None = None
    client_id: str | None = None
    token_relevance: Mapping[str, int] = field(default_factory=_empty_relevance)
    platform: Platform = Platform.IOS

    @property
    def relevance_table(self) -> Mapping[str, int] | None:
        return self.token_relevance or None

    def aliases(self) -> BrandAliases:
        return build_brand_aliases(self.brand, self.brand_aliases)

    def override_context(self) -> OverrideContext:
        return OverrideContext(vertical=self.vertical, market=self.market, client_id=self.client_id)

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        *,
        brand: str | None = None,
        brand_aliases: tuple[str, ...] = (),
        token_relevance: Mapping[str, int] | None = None,
    ) -> Self:
        return cls(
            brand=brand,
            brand_aliases=brand_aliases,
            vertical=config.vertical,
            market=config.market,
            client_id=config.client_id,
            token_relevance=MappingProxyType(dict(token_relevance or {})),
            platform=config.platform,
        )


@dataclass(frozen=True)
class StageStatus:
    """Final state of a run and what happened to each stage."""

    state: AuditState
    completed: tuple[AuditStage, ...] = ()
    failed: tuple[AuditStage, ...] = ()
    skipped: tuple[AuditStage, ...] = ()
    errors: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))


@dataclass(frozen=True)
class AuditResult:
    """Everything one audit produced; fields of failed stages are empty or None."""

    capability_map: AppCapabilityMap
    combos: tuple[ClassifiedCombo, ...]
    scored_combos: tuple[ScoredCombo, ...]
    top_combos: TopComboSelection | None
    kpi_result: KpiEngineResult | None
    element_scores: ElementScores | None
    keyword_coverage: KeywordCoverage | None
    overall_score: int | None
    stage_status: StageStatus
    registry_version: str


class _StageTracker:
    def __init__(self) -> None:
        self.state = AuditState.IDLE
        self.completed: list[AuditStage] = []
        self.failed: list[AuditStage] = []
        self.skipped: list[AuditStage] = []
        self.errors: dict[str, str] = {}

    def fail(self, stage: AuditStage, exc: Exception) -> None:
        self.failed.append(stage)
        self.errors[stage.value] = f"{type(exc).__name__}: {exc}"

    def finish(self) -> StageStatus:
        self.state = (
            AuditState.PARTIAL_FAILURE if self.failed or self.skipped else AuditState.SUCCESS
        )
        return StageStatus(
            state=self.state,
            completed=tuple(self.completed),
            failed=tuple(self.failed),
            skipped=tuple(self.skipped),
            errors=MappingProxyType(dict(self.errors)),
        )


def combine_scores(kpi_overall: float | None, metadata_score: int | None) -> int | None:
    """Mean of the KPI overall and element metadata scores, or whichever exists."""
    available = [score for score in (kpi_overall, metadata_score) if score is not None]
    if not available:
        return None
    return clamp_score(sum(available) / len(available))


class MetadataAuditEngine:
    """Runs the full audit for one listing against fixed registries.

    Registries and the pattern library are loaded once and shared across runs;
    ``run`` keeps no state between calls.
    """

    def __init__(
        self,
        registry: FormulaRegistry,
        kpi_registry: KpiRegistry,
        library: PatternLibrary = DEFAULT_PATTERN_LIBRARY,
        config: EngineConfig | None = None,
    ) -> None:
        self.registry = registry
        self.kpi_registry = kpi_registry
        self.library = library
        self.config = config or EngineConfig()
        self._logger = get_logger("aso_metadata_engine.audit")

    @classmethod
    def from_config(
        cls, config: EngineConfig | None = None, *, fs: FileSystem | None = None
    ) -> Self:
        """Load and validate both registries named by the config (built-in when empty)."""
        config = config or EngineConfig()
        registry = load_registry(
            Path(config.registry_path) if config.registry_path else None, fs=fs
        )
        kpi_registry = load_kpi_registry(
            Path(config.kpi_registry_path) if config.kpi_registry_path else None, fs=fs
        )
        return cls(registry, kpi_registry, config=config)

    def run(
        self,
        listing: ListingInput,
        context: AuditContext | None = None,
        mode: ExtractionMode | None = None,
    ) -> AuditResult:
        """Audit one listing.

        Args:
            listing: Validated listing text.
            context: Brand, override tags, relevance table and platform.
            mode: Capability extraction mode; defaults to the config setting.

        Returns:
            AuditResult with per-stage outputs and the final stage status.
        """
        context = context or AuditContext(platform=self.config.platform)
        if mode is None:
            mode = (
                ExtractionMode.ENABLED
                if self.config.extraction_enabled
                else ExtractionMode.DISABLED
            )
        tracker = _StageTracker()

        capability_map = self._extract(listing, mode, tracker)
        combos = self._combine(listing, context, tracker)
        scored, top = self._score(combos, tracker)
        kpi_result, element_scores, keyword_coverage = self._aggregate(
            listing, context, combos, tracker
        )

        overall = combine_scores(
            kpi_result.overall_score if kpi_result else None,
            element_scores.metadata_score if element_scores else None,
        )
        status = tracker.finish()
        self._logger.info(
            "Audit %s: overall=%s, combos=%s, failed=%s, skipped=%s",
            status.state,
            overall,
            len(combos or ()),
            [stage.value for stage in status.failed],
            [stage.value for stage in status.skipped],
        )
        return AuditResult(
            capability_map=capability_map,
            combos=combos or (),
            scored_combos=scored,
            top_combos=top,
            kpi_result=kpi_result,
            element_scores=element_scores,
            keyword_coverage=keyword_coverage,
            overall_score=overall,
            stage_status=status,
            registry_version=self.registry.version,
        )

    def _extract(
        self, listing: ListingInput, mode: ExtractionMode, tracker: _StageTracker
    ) -> AppCapabilityMap:
        if mode is ExtractionMode.DISABLED:
            tracker.skipped.append(AuditStage.EXTRACTING)
            return AppCapabilityMap()
        tracker.state = AuditState.EXTRACTING
        try:
            capability_map = extract_capabilities(
                listing.description, library=self.library, mode=mode
            )
        except Exception as exc:
            self._logger.error("Capability extraction failed: %s", exc)
            tracker.fail(AuditStage.EXTRACTING, exc)
            return AppCapabilityMap()
        tracker.completed.append(AuditStage.EXTRACTING)
        self._logger.info("Extracted %s capabilities", capability_map.total)
        return capability_map

    def _combine(
        self, listing: ListingInput, context: AuditContext, tracker: _StageTracker
    ) -> tuple[ClassifiedCombo, ...] | None:
        tracker.state = AuditState.COMBINING
        try:
            combos = generate_combos(
                tokenize(listing.title),
                tokenize(listing.subtitle),
                parse_keyword_field(listing.keyword_field),
                listing.visible_text,
                brand_aliases=context.aliases(),
                relevance_table=context.relevance_table,
                max_length=self.config.max_combo_length,
                max_combos=self.config.max_combos,
            )
        except Exception as exc:
            self._logger.error("Combo generation failed: %s", exc)
            tracker.fail(AuditStage.COMBINING, exc)
            return None
        tracker.completed.append(AuditStage.COMBINING)
        self._logger.info("Generated %s combos", len(combos))
        return combos

    def _score(
        self, combos: tuple[ClassifiedCombo, ...] | None, tracker: _StageTracker
    ) -> tuple[tuple[ScoredCombo, ...], TopComboSelection | None]:
        if combos is None:
            tracker.skipped.append(AuditStage.SCORING)
            return (), None
        tracker.state = AuditState.SCORING
        try:
            scored = score_combos(
                combos,
                self.registry,
                max_workers=self.config.max_workers,
                parallel_threshold=self.config.parallel_threshold,
            )
            ranked = rank_scored_combos(scored)
            top = select_top_combos(ranked, self.config.top_combo_limit)
        except Exception as exc:
            self._logger.error("Combo scoring failed: %s", exc)
            tracker.fail(AuditStage.SCORING, exc)
            return (), None
        tracker.completed.append(AuditStage.SCORING)
        return ranked, top

    def _aggregate(
        self,
        listing: ListingInput,
        context: AuditContext,
        combos: tuple[ClassifiedCombo, ...] | None,
        tracker: _StageTracker,
    ) -> tuple[KpiEngineResult | None, ElementScores | None, KeywordCoverage | None]:
        tracker.state = AuditState.AGGREGATING
        try:
            limits = character_limits_for(self.registry.metadata_scoring, context.platform)
            listing_data = build_listing_data(
                listing.title,
                listing.subtitle,
                combos or (),
                brand_aliases=context.aliases(),
                platform=context.platform,
                relevance_table=context.relevance_table,
                limits=limits,
            )
            kpi_result = evaluate_kpis(
                listing_data, self.kpi_registry, context.override_context()
            )
            element_scores = score_elements(
                listing.title,
                listing.subtitle,
                listing.description,
                combos or (),
                self.registry,
                platform=context.platform,
                relevance_table=context.relevance_table,
            )
            keyword_coverage = analyze_keyword_coverage(
                listing.title,
                listing.subtitle,
                listing.description,
                relevance_table=context.relevance_table,
            )
        except Exception as exc:
            self._logger.error("Score aggregation failed: %s", exc)
            tracker.fail(AuditStage.AGGREGATING, exc)
            return None, None, None
        tracker.completed.append(AuditStage.AGGREGATING)
        return kpi_result, element_scores, keyword_coverage
