"""Batch audit: score every listing in a CSV and write score and opportunity tables.

Input columns ``title``, ``subtitle``, ``keywords`` and ``description`` are
required; ``app_id`` and ``brand`` are optional. Each row is audited with the same
engine, so registries load once per batch.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd
from tqdm import tqdm

from ..domain.priority import filter_missing
from ..exceptions import BatchInputColumnsError
from ..infrastructure import LocalFileSystem
from ..observability import get_logger
from ..protocols import FileSystem
from .audit import AuditContext, AuditResult, ListingInput, MetadataAuditEngine

BATCH_INPUT_COLUMNS = ("title", "subtitle", "keywords", "description")

LISTING_SCORE_COLUMNS = (
    "app_id",
    "title",
    "overall_score",
    "kpi_overall_score",
    "metadata_score",
    "metadata_band",
    "unique_keywords",
    "capabilities_detected",
    "combos_generated",
    "high_value_combos",
    "state",
    "failed_stages",
)

COMBO_OPPORTUNITY_COLUMNS = (
    "app_id",
    "rank",
    "combo",
    "total_score",
    "priority",
    "classification",
    "source",
    "is_high_value",
    "is_long_tail",
)


@dataclass(frozen=True)
class BatchAuditResult:
    """Paths written by a batch audit and the number of listings processed."""

    listing_scores: Path
    combo_opportunities: Path
    listings: int


def _validate_columns(columns: list[str]) -> None:
    missing = tuple(column for column in BATCH_INPUT_COLUMNS if column not in columns)
    if missing:
        raise BatchInputColumnsError(missing)


def _score_row(app_id: str, listing: ListingInput, result: AuditResult) -> dict[str, object]:
    kpi = result.kpi_result
    elements = result.element_scores
    coverage = result.keyword_coverage
    return {
        "app_id": app_id,
        "title": listing.title,
        "overall_score": "" if result.overall_score is None else result.overall_score,
        "kpi_overall_score": "" if kpi is None else kpi.overall_score,
        "metadata_score": "" if elements is None else elements.metadata_score,
        "metadata_band": "" if elements is None else elements.band.label,
        "unique_keywords": "" if coverage is None else coverage.total_unique_keywords,
        "capabilities_detected": result.capability_map.total,
        "combos_generated": len(result.combos),
        "high_value_combos": sum(1 for item in result.scored_combos if item.is_high_value),
        "state": result.stage_status.state.value,
        "failed_stages": ";".join(stage.value for stage in result.stage_status.failed),
    }


def _opportunity_rows(app_id: str, result: AuditResult) -> list[dict[str, object]]:
    if result.top_combos is None:
        return []
    missing = filter_missing(result.top_combos.top)
    return [
        {
            "app_id": app_id,
            "rank": rank,
            "combo": item.text,
            "total_score": item.total_score,
            "priority": item.priority.value,
            "classification": item.combo.classification or "",
            "source": item.combo.source.value,
            "is_high_value": item.is_high_value,
            "is_long_tail": item.is_long_tail,
        }
        for rank, item in enumerate(missing, start=1)
    ]


def run_batch_audit(
    listings_path: str | Path,
    out_dir: str | Path,
    engine: MetadataAuditEngine,
    fs: FileSystem | None = None,
) -> BatchAuditResult:
    """Audit every listing in a CSV file.

    Args:
        listings_path: CSV with one listing per row.
        out_dir: Directory for ``listing_scores.csv`` and ``combo_opportunities.csv``.
        engine: Audit engine with registries already loaded.
        fs: Optional filesystem for testing.

    Returns:
        BatchAuditResult with output paths.

    Raises:
        BatchInputColumnsError: A required input column is missing.
    """
    fs = fs or LocalFileSystem()
    logger = get_logger("aso_metadata_engine.batch_audit")
    listings_path = Path(listings_path)
    out_dir = Path(out_dir)
    fs.mkdir(out_dir, parents=True)

    df = fs.read_csv(listings_path).fillna("")
    _validate_columns(list(df.columns))
    logger.info("Auditing: %s listings", len(df))

    score_rows: list[dict[str, object]] = []
    opportunity_rows: list[dict[str, object]] = []
    for position, (_, row) in tqdm(enumerate(df.iterrows()), total=len(df), desc="Listing audit"):
        app_id = str(row.get("app_id", "")).strip() or str(position + 1)
        listing = ListingInput(
            title=str(row["title"]),
            subtitle=str(row["subtitle"]),
            keyword_field=str(row["keywords"]),
            description=str(row["description"]),
        )
        brand = str(row.get("brand", "")).strip() or None
        context = AuditContext.from_config(engine.config, brand=brand)
        result = engine.run(listing, context)
        score_rows.append(_score_row(app_id, listing, result))
        opportunity_rows.extend(_opportunity_rows(app_id, result))

    scores_df = pd.DataFrame(score_rows, columns=list(LISTING_SCORE_COLUMNS))
    scores_path = out_dir / "listing_scores.csv"
    fs.write_csv(scores_df, scores_path)
    logger.info("Listing scores: %s", scores_path)

    opportunities_df = pd.DataFrame(opportunity_rows, columns=list(COMBO_OPPORTUNITY_COLUMNS))
    opportunities_path = out_dir / "combo_opportunities.csv"
    fs.write_csv(opportunities_df, opportunities_path)
    logger.info("Combo opportunities: %s (%s rows)", opportunities_path, len(opportunities_df))

    return BatchAuditResult(
        listing_scores=scores_path,
        combo_opportunities=opportunities_path,
        listings=len(df),
    )
