"""CLI for the ASO metadata engine.

Commands:
- audit: Full audit of one listing (options or a JSON listing file)
- score-combos: Generate, score and rank keyword combinations
- extract-capabilities: Detect features, benefits and trust signals in a description
- validate-registry: Load and validate the formula and KPI registries
- export-registry: Write the formula registry as an editable JSON document
- batch-audit: Audit every listing in a CSV file
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Protocol

import typer
from rich import print as rprint

from . import __version__
from .application.audit import (
    AuditContext,
    AuditResult,
    ListingInput,
    MetadataAuditEngine,
    load_listing,
    parse_listing,
)
from .application.batch_audit import run_batch_audit
from .application.formula_registry import load_registry, registry_to_document
from .application.kpi_registry import load_kpi_registry
from .config import EngineConfig
from .config_file import load_engine_config_file
from .domain.capabilities import extract_capabilities, summarize_capabilities, validate_extraction
from .domain.combos import generate_combos
from .domain.formula_registry import Platform
from .domain.priority import (
    filter_high_value,
    filter_long_tail,
    filter_missing,
    format_priority_breakdown,
    score_combos,
    select_top_combos,
)
from .domain.tokenization import parse_keyword_field, tokenize
from .exceptions import EngineError
from .protocols import FileSystem


class DependenciesBuilder(Protocol):
    """Protocol for constructing CLI dependencies."""

    def __call__(self, *, config: EngineConfig) -> CliDependencies:
        """Build dependencies for CLI commands."""
        ...


@dataclass(frozen=True)
class CliDependencies:
    """Concrete dependencies required by the CLI."""

    fs: FileSystem


@dataclass(frozen=True)
class CliContext:
    """Runtime CLI context for a single command invocation."""

    config: EngineConfig
    deps_builder: DependenciesBuilder

    def build_dependencies(self, *, config: EngineConfig | None = None) -> CliDependencies:
        """Return dependencies using the configured builder."""
        return self.deps_builder(config=config or self.config)


class CliContextNotInitialisedError(typer.BadParameter):
    """Raised when CLI context is missing."""

    def __init__(self) -> None:
        super().__init__("CLI context is not initialised. Use the aso-engine entry point.")


class EngineCommandError(typer.BadParameter):
    """Raised when an engine error aborts a command."""

    def __init__(self, exc: EngineError) -> None:
        super().__init__(str(exc))


class MissingListingTextError(typer.BadParameter):
    """Raised when a command has no listing text to work on."""

    def __init__(self, what: str) -> None:
        super().__init__(f"No {what} supplied. Pass text options or --listing-file.")


DEFAULT_BATCH_OUT_DIR = Path("data/audit")
DEFAULT_REGISTRY_EXPORT = Path("formula-registry.json")


def _get_context(ctx: typer.Context) -> CliContext:
    if not isinstance(ctx.obj, CliContext):
        raise CliContextNotInitialisedError()
    return ctx.obj


def _version_callback(value: bool) -> None:
    if value:
        rprint(f"aso-engine {__version__}")
        raise typer.Exit()


def _resolve_listing(
    fs: FileSystem,
    listing_file: Path | None,
    **fields: str | None,
) -> ListingInput:
    """Listing from a JSON file, with any text options replacing the file's fields."""
    overrides = {name: value for name, value in fields.items() if value is not None}
    try:
        if listing_file is None:
            return parse_listing(overrides)
        listing = load_listing(listing_file, fs=fs)
        return parse_listing({**listing.model_dump(), **overrides})
    except EngineError as exc:
        raise EngineCommandError(exc) from exc


def _build_engine(state: CliContext, config: EngineConfig) -> MetadataAuditEngine:
    deps = state.build_dependencies(config=config)
    try:
        return MetadataAuditEngine.from_config(config, fs=deps.fs)
    except EngineError as exc:
        raise EngineCommandError(exc) from exc


def _print_audit(result: AuditResult, *, top: int) -> None:
    status = result.stage_status
    colour = "green" if status.state == "success" else "yellow"
    rprint(f"[{colour}]✓ Audit {status.state}[/{colour}] (registry {result.registry_version})")
    rprint(f"  Overall score: {result.overall_score if result.overall_score is not None else '-'}")
    if result.kpi_result is not None:
        rprint(f"  KPI overall: {result.kpi_result.overall_score}")
        for family in result.kpi_result.families.values():
            rprint(f"    {family.label}: {family.score}")
    if result.element_scores is not None:
        scores = result.element_scores
        rprint(f"  Metadata score: {scores.metadata_score} ({scores.band.label})")
        for element in scores.elements:
            rprint(
                f"    {element.element}: {element.score} "
                f"({element.character_count}/{element.max_characters} chars)"
            )
    if result.keyword_coverage is not None:
        coverage = result.keyword_coverage
        rprint(f"  Unique keywords: {coverage.total_unique_keywords}")
        if coverage.subtitle_new_keywords:
            rprint(f"    subtitle adds: {', '.join(coverage.subtitle_new_keywords)}")
    rprint(f"  Capabilities detected: {result.capability_map.total}")
    rprint(f"  Combos generated: {len(result.combos)}")
    if result.top_combos is not None:
        for item in result.top_combos.top[:top]:
            marker = "" if item.combo.exists else " (missing)"
            rprint(f"    {item.total_score:>3}  {item.text}{marker}")
    for stage, message in status.errors.items():
        rprint(f"[yellow]  {stage} failed: {message}[/yellow]")
    for stage in status.skipped:
        rprint(f"[yellow]  {stage} skipped[/yellow]")


def create_app(deps_builder: DependenciesBuilder) -> typer.Typer:
    """Create a Typer app wired with the provided dependencies builder."""
    app = typer.Typer(
        add_completion=False,
        help="ASO metadata engine: capabilities → combos → priority → KPI and element scores",
    )

    @app.callback()
    def main(
        ctx: typer.Context,
        config_path: Annotated[
            Path | None,
            typer.Option(
                "--config",
                "-c",
                help="TOML config file overriding environment settings",
            ),
        ] = None,
        env_file: Annotated[
            Path | None,
            typer.Option(
                "--env-file",
                help="Path to a .env file (default: .env discovery)",
            ),
        ] = None,
        version: Annotated[
            bool,
            typer.Option(
                "--version",
                callback=_version_callback,
                is_eager=True,
                help="Show the package version and exit",
            ),
        ] = False,
    ) -> None:
        """Initialise CLI context."""
        _ = version
        config = EngineConfig.from_env(str(env_file) if env_file is not None else None)
        if config_path is not None:
            deps = deps_builder(config=config)
            try:
                file_config = load_engine_config_file(path=config_path, fs=deps.fs)
            except EngineError as exc:
                raise EngineCommandError(exc) from exc
            config = config.with_file_overrides(file_config)
        ctx.obj = CliContext(config=config, deps_builder=deps_builder)

    @app.command()
    def audit(
        ctx: typer.Context,
        title: Annotated[str | None, typer.Option("--title", help="Listing title")] = None,
        subtitle: Annotated[
            str | None, typer.Option("--subtitle", help="Listing subtitle")
        ] = None,
        keywords: Annotated[
            str | None,
            typer.Option("--keywords", "-k", help="Comma-separated keyword field"),
        ] = None,
        description: Annotated[
            str | None, typer.Option("--description", help="Long description")
        ] = None,
        listing_file: Annotated[
            Path | None,
            typer.Option(
                "--listing-file",
                "-f",
                help="JSON object with title, subtitle, keyword_field and description",
            ),
        ] = None,
        brand: Annotated[str | None, typer.Option("--brand", "-b", help="Brand name")] = None,
        alias: Annotated[
            list[str] | None,
            typer.Option("--alias", help="Extra brand alias (repeatable)"),
        ] = None,
        platform: Annotated[
            Platform | None, typer.Option("--platform", help="Store platform")
        ] = None,
        vertical: Annotated[
            str | None, typer.Option("--vertical", help="Vertical for KPI weight overrides")
        ] = None,
        market: Annotated[
            str | None, typer.Option("--market", help="Market for KPI weight overrides")
        ] = None,
        client_id: Annotated[
            str | None, typer.Option("--client-id", help="Client for KPI weight overrides")
        ] = None,
        registry: Annotated[
            Path | None, typer.Option("--registry", help="Alternate formula registry JSON")
        ] = None,
        kpi_registry: Annotated[
            Path | None, typer.Option("--kpi-registry", help="Alternate KPI registry JSON")
        ] = None,
        extraction: Annotated[
            bool | None,
            typer.Option(
                "--extraction/--no-extraction",
                help="Enable or disable capability extraction",
            ),
        ] = None,
        top: Annotated[
            int,
            typer.Option("--top", "-t", help="Number of top combos to print"),
        ] = 10,
    ) -> None:
        """Audit one listing and print scores, top combos and stage status."""
        state = _get_context(ctx)
        config = state.config.with_overrides(
            registry_path=str(registry) if registry is not None else None,
            kpi_registry_path=str(kpi_registry) if kpi_registry is not None else None,
            extraction_enabled=extraction,
            platform=platform,
            vertical=vertical,
            market=market,
            client_id=client_id,
        )
        deps = state.build_dependencies(config=config)
        listing = _resolve_listing(
            deps.fs,
            listing_file,
            title=title,
            subtitle=subtitle,
            keyword_field=keywords,
            description=description,
        )
        engine = _build_engine(state, config)
        context = AuditContext.from_config(
            config, brand=brand, brand_aliases=tuple(alias) if alias else ()
        )
        result = engine.run(listing, context)
        _print_audit(result, top=top)

    @app.command(name="score-combos")
    def score_combos_command(
        ctx: typer.Context,
        title: Annotated[str, typer.Option("--title", help="Listing title")] = "",
        subtitle: Annotated[str, typer.Option("--subtitle", help="Listing subtitle")] = "",
        keywords: Annotated[
            str, typer.Option("--keywords", "-k", help="Comma-separated keyword field")
        ] = "",
        brand: Annotated[str | None, typer.Option("--brand", "-b", help="Brand name")] = None,
        limit: Annotated[
            int | None, typer.Option("--limit", "-n", min=0, help="Maximum combos to print")
        ] = None,
        max_length: Annotated[
            int | None,
            typer.Option("--max-length", min=2, max=4, help="Longest combo to generate"),
        ] = None,
        high_value: Annotated[
            bool, typer.Option("--high-value", help="Only combos scoring above 70")
        ] = False,
        long_tail: Annotated[
            bool, typer.Option("--long-tail", help="Only combos of three or more words")
        ] = False,
        missing: Annotated[
            bool, typer.Option("--missing", help="Only combos not already in the listing")
        ] = False,
        explain: Annotated[
            bool, typer.Option("--explain", help="Print the factor breakdown per combo")
        ] = False,
    ) -> None:
        """Generate keyword combinations and rank them by priority score."""
        state = _get_context(ctx)
        config = state.config.with_overrides(max_combo_length=max_length)
        if not (title or subtitle or keywords):
            raise MissingListingTextError("title, subtitle or keywords")
        deps = state.build_dependencies(config=config)
        try:
            registry = load_registry(
                Path(config.registry_path) if config.registry_path else None, fs=deps.fs
            )
        except EngineError as exc:
            raise EngineCommandError(exc) from exc

        context = AuditContext.from_config(config, brand=brand)
        listing = ListingInput(title=title, subtitle=subtitle, keyword_field=keywords)
        combos = generate_combos(
            tokenize(listing.title),
            tokenize(listing.subtitle),
            parse_keyword_field(listing.keyword_field),
            listing.visible_text,
            brand_aliases=context.aliases(),
            max_length=config.max_combo_length,
            max_combos=config.max_combos,
        )
        scored = score_combos(
            combos,
            registry,
            max_workers=config.max_workers,
            parallel_threshold=config.parallel_threshold,
        )
        if high_value:
            scored = filter_high_value(scored)
        if long_tail:
            scored = filter_long_tail(scored)
        if missing:
            scored = filter_missing(scored)
        selection = select_top_combos(
            scored, config.top_combo_limit if limit is None else limit
        )

        rprint(
            f"[green]✓ Scored {len(combos):,} combos[/green] "
            f"(showing {len(selection.top)} of {selection.total_generated})"
        )
        for item in selection.top:
            if explain:
                rprint(format_priority_breakdown(item))
            else:
                rprint(f"  {item.total_score:>3}  {item.priority:<6}  {item.text}")

    @app.command(name="extract-capabilities")
    def extract_capabilities_command(
        ctx: typer.Context,
        description: Annotated[
            str | None, typer.Option("--description", help="Description text")
        ] = None,
        listing_file: Annotated[
            Path | None,
            typer.Option("--listing-file", "-f", help="JSON listing file"),
        ] = None,
    ) -> None:
        """Detect features, benefits and trust signals in a description."""
        state = _get_context(ctx)
        deps = state.build_dependencies()
        listing = _resolve_listing(deps.fs, listing_file, description=description)
        if not listing.description:
            raise MissingListingTextError("description")

        capability_map = extract_capabilities(listing.description)
        summary = summarize_capabilities(capability_map)
        rprint(f"[green]✓ {summary.total} capabilities detected[/green]")
        for name, count in summary.by_class.items():
            rprint(f"  {name}: {count}")
        if summary.top_categories:
            rprint(f"  Top categories: {', '.join(summary.top_categories)}")
        for warning in validate_extraction(capability_map, listing.description).warnings:
            rprint(f"[yellow]⚠ {warning}[/yellow]")

    @app.command(name="validate-registry")
    def validate_registry_command(
        ctx: typer.Context,
        registry: Annotated[
            Path | None, typer.Option("--registry", help="Formula registry JSON to validate")
        ] = None,
        kpi_registry: Annotated[
            Path | None, typer.Option("--kpi-registry", help="KPI registry JSON to validate")
        ] = None,
    ) -> None:
        """Validate the formula and KPI registries (built-in when no path is given)."""
        state = _get_context(ctx)
        config = state.config.with_overrides(
            registry_path=str(registry) if registry is not None else None,
            kpi_registry_path=str(kpi_registry) if kpi_registry is not None else None,
        )
        deps = state.build_dependencies(config=config)
        try:
            formula = load_registry(
                Path(config.registry_path) if config.registry_path else None, fs=deps.fs
            )
            kpis = load_kpi_registry(
                Path(config.kpi_registry_path) if config.kpi_registry_path else None,
                fs=deps.fs,
            )
        except EngineError as exc:
            raise EngineCommandError(exc) from exc
        rprint(f"[green]✓ Formula registry {formula.version} is valid[/green]")
        rprint(
            f"[green]✓ KPI registry {kpis.version} is valid[/green] "
            f"({len(kpis.families)} families, {len(kpis.kpis)} KPIs)"
        )

    @app.command(name="export-registry")
    def export_registry(
        ctx: typer.Context,
        out_path: Annotated[
            Path,
            typer.Option("--output", "-o", help="Where to write the registry JSON"),
        ] = DEFAULT_REGISTRY_EXPORT,
    ) -> None:
        """Write the active formula registry as a JSON document for editing."""
        state = _get_context(ctx)
        config = state.config
        deps = state.build_dependencies(config=config)
        try:
            registry = load_registry(
                Path(config.registry_path) if config.registry_path else None, fs=deps.fs
            )
        except EngineError as exc:
            raise EngineCommandError(exc) from exc
        deps.fs.write_json(registry_to_document(registry), out_path)
        rprint(f"[green]✓ Exported registry {registry.version}:[/green] {out_path}")

    @app.command(name="batch-audit")
    def batch_audit(
        ctx: typer.Context,
        listings_path: Annotated[
            Path,
            typer.Option(
                "--input",
                "-i",
                help="CSV with title, subtitle, keywords and description columns",
            ),
        ],
        out_dir: Annotated[
            Path,
            typer.Option("--output-dir", "-o", help="Directory for output files"),
        ] = DEFAULT_BATCH_OUT_DIR,
        platform: Annotated[
            Platform | None, typer.Option("--platform", help="Store platform")
        ] = None,
    ) -> None:
        """Audit every listing in a CSV and write scores and combo opportunities."""
        state = _get_context(ctx)
        config = state.config.with_overrides(platform=platform)
        deps = state.build_dependencies(config=config)
        engine = _build_engine(state, config)
        try:
            result = run_batch_audit(listings_path, out_dir, engine, fs=deps.fs)
        except EngineError as exc:
            raise EngineCommandError(exc) from exc
        rprint(f"[green]✓ Batch audit complete:[/green] {result.listings:,} listings")
        rprint(f"  scores: {result.listing_scores}")
        rprint(f"  opportunities: {result.combo_opportunities}")

    _ = (
        main,
        audit,
        score_combos_command,
        extract_capabilities_command,
        validate_registry_command,
        export_registry,
        batch_audit,
    )

    return app
