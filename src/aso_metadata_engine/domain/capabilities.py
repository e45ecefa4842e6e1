"""Capability extraction from listing descriptions.

Scans description text against the pattern library and produces a capability map
with one bucket per capability class. Extraction is a pure function of the text,
the library and the extraction mode.

Usage example:
    from aso_metadata_engine.domain.capabilities import extract_capabilities

    capability_map = extract_capabilities("Learn offline with bite-sized lessons.")
    assert capability_map.features.count >= 2
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from enum import StrEnum

from .patterns import (
    DEFAULT_PATTERN_LIBRARY,
    CapabilityClass,
    CapabilityPattern,
    Criticality,
    PatternLibrary,
    find_match,
)

HIGH_CONFIDENCE_THRESHOLD = 0.8
LONG_DESCRIPTION_CHARS = 500
MIN_EXPECTED_CAPABILITIES = 3


class ExtractionMode(StrEnum):
    """Whether capability extraction runs or returns empty buckets."""

    ENABLED = "enabled"
    DISABLED = "disabled"


@dataclass(frozen=True)
class DetectedCapability:
    """One pattern match in the description."""

    text: str
    category: str
    pattern: str
    confidence: float


@dataclass(frozen=True)
class CapabilityBucket:
    """Detected capabilities for one class."""

    items: tuple[DetectedCapability, ...] = ()

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(sorted({item.category for item in self.items}))


@dataclass(frozen=True)
class AppCapabilityMap:
    """Features, benefits and trust signals detected in a description."""

    features: CapabilityBucket = field(default_factory=CapabilityBucket)
    benefits: CapabilityBucket = field(default_factory=CapabilityBucket)
    trust: CapabilityBucket = field(default_factory=CapabilityBucket)

    def bucket(self, capability_class: CapabilityClass) -> CapabilityBucket:
        match capability_class:
            case CapabilityClass.FEATURE:
                return self.features
            case CapabilityClass.BENEFIT:
                return self.benefits
            case CapabilityClass.TRUST:
                return self.trust

    @property
    def total(self) -> int:
        return self.features.count + self.benefits.count + self.trust.count


@dataclass(frozen=True)
class CapabilitySummary:
    """Aggregate view of a capability map."""

    total: int
    by_class: dict[str, int]
    category_counts: tuple[tuple[str, int], ...]
    top_categories: tuple[str, ...]


@dataclass(frozen=True)
class ExtractionValidation:
    """Warnings about a capability extraction result."""

    warnings: tuple[str, ...]
    total: int
    high_confidence: int
    critical: int

    @property
    def valid(self) -> bool:
        return not self.warnings


def confidence_for(criticality: Criticality) -> float:
    """Map a criticality tier to a detection confidence."""
    match criticality:
        case Criticality.CRITICAL:
            return 1.0
        case Criticality.HIGH:
            return 0.8
        case Criticality.MEDIUM | Criticality.DEFAULT:
            return 0.6


def _scan(text: str, patterns: tuple[CapabilityPattern, ...]) -> CapabilityBucket:
    detected: list[DetectedCapability] = []
    for pattern in patterns:
        matched = find_match(pattern.matcher, text)
        if matched is None:
            continue
        detected.append(
            DetectedCapability(
                text=matched,
                category=pattern.category,
                pattern=pattern.source,
                confidence=confidence_for(pattern.criticality),
            )
        )
    return CapabilityBucket(items=tuple(detected))


def extract_capabilities(
    text: str,
    *,
    library: PatternLibrary = DEFAULT_PATTERN_LIBRARY,
    mode: ExtractionMode = ExtractionMode.ENABLED,
) -> AppCapabilityMap:
    """Detect features, benefits and trust signals in description text.

    Each pattern contributes at most one detection, however often it fires.
    Blank text or a disabled mode yields three empty buckets.
    """
    if mode is ExtractionMode.DISABLED:
        return AppCapabilityMap()
    lowered = (text or "").lower()
    if not lowered.strip():
        return AppCapabilityMap()
    return AppCapabilityMap(
        features=_scan(lowered, library.features),
        benefits=_scan(lowered, library.benefits),
        trust=_scan(lowered, library.trust),
    )


def _all_items(capability_map: AppCapabilityMap) -> tuple[DetectedCapability, ...]:
    return (
        capability_map.features.items
        + capability_map.benefits.items
        + capability_map.trust.items
    )


def summarize_capabilities(capability_map: AppCapabilityMap, *, top: int = 5) -> CapabilitySummary:
    """Totals per class plus category counts sorted by frequency."""
    counts = Counter(item.category for item in _all_items(capability_map))
    ordered = tuple(sorted(counts.items(), key=lambda pair: (-pair[1], pair[0])))
    return CapabilitySummary(
        total=capability_map.total,
        by_class={
            str(capability_class): capability_map.bucket(capability_class).count
            for capability_class in CapabilityClass
        },
        category_counts=ordered,
        top_categories=tuple(category for category, _ in ordered[:top]),
    )


def has_capability(
    capability_map: AppCapabilityMap,
    text: str,
    capability_class: CapabilityClass | None = None,
) -> bool:
    """True when a detection's matched text contains ``text`` (case-insensitive)."""
    needle = text.lower()
    if capability_class is None:
        items = _all_items(capability_map)
    else:
        items = capability_map.bucket(capability_class).items
    return any(needle in item.text.lower() for item in items)


def capabilities_by_category(
    capability_map: AppCapabilityMap, category: str
) -> tuple[DetectedCapability, ...]:
    return tuple(item for item in _all_items(capability_map) if item.category == category)


def high_confidence_capabilities(
    capability_map: AppCapabilityMap,
) -> tuple[DetectedCapability, ...]:
    return tuple(
        item for item in _all_items(capability_map) if item.confidence >= HIGH_CONFIDENCE_THRESHOLD
    )


def critical_capabilities(capability_map: AppCapabilityMap) -> tuple[DetectedCapability, ...]:
    return tuple(item for item in _all_items(capability_map) if item.confidence == 1.0)


def validate_extraction(capability_map: AppCapabilityMap, text: str) -> ExtractionValidation:
    """Flag suspicious extraction results for diagnostics."""
    warnings: list[str] = []
    stripped = (text or "").strip()
    if stripped and capability_map.total == 0:
        warnings.append("No capabilities detected in a non-empty description")
    if len(stripped) > LONG_DESCRIPTION_CHARS:
        substantive = capability_map.features.count + capability_map.benefits.count
        if substantive < MIN_EXPECTED_CAPABILITIES:
            warnings.append(
                f"Long description ({len(stripped)} chars) with only {substantive} "
                "feature/benefit detections"
            )
    matched = Counter(item.text.lower() for item in _all_items(capability_map))
    duplicates = sorted(value for value, count in matched.items() if count > 1)
    if duplicates:
        warnings.append(f"Duplicate matches across patterns: {', '.join(duplicates)}")
    return ExtractionValidation(
        warnings=tuple(warnings),
        total=capability_map.total,
        high_confidence=len(high_confidence_capabilities(capability_map)),
        critical=len(critical_capabilities(capability_map)),
    )
