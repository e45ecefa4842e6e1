"""Static pattern library for capability detection in listing descriptions.

Each rule is a literal substring or a regular expression, tagged with a category
and a criticality tier. Rules are evaluated through ``find_match`` only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from functools import lru_cache

MIN_FEATURE_PATTERNS = 15
MIN_BENEFIT_PATTERNS = 15
MIN_TRUST_PATTERNS = 8


class Criticality(StrEnum):
    """How strongly a pattern signals a real capability."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    DEFAULT = "default"


class CapabilityClass(StrEnum):
    """The three capability buckets."""

    FEATURE = "feature"
    BENEFIT = "benefit"
    TRUST = "trust"


@dataclass(frozen=True)
class LiteralPattern:
    """Case-insensitive substring rule."""

    text: str


@dataclass(frozen=True)
class RegexPattern:
    """Case-insensitive regular-expression rule (first match only)."""

    expression: str


Matcher = LiteralPattern | RegexPattern


@dataclass(frozen=True)
class CapabilityPattern:
    """A tagged detection rule."""

    matcher: Matcher
    category: str
    criticality: Criticality

    @property
    def source(self) -> str:
        match self.matcher:
            case LiteralPattern(text=text):
                return text
            case RegexPattern(expression=expression):
                return expression


@dataclass(frozen=True)
class PatternLibrary:
    """Pattern rules grouped by capability class."""

    features: tuple[CapabilityPattern, ...]
    benefits: tuple[CapabilityPattern, ...]
    trust: tuple[CapabilityPattern, ...]

    def for_class(self, capability_class: CapabilityClass) -> tuple[CapabilityPattern, ...]:
        match capability_class:
            case CapabilityClass.FEATURE:
                return self.features
            case CapabilityClass.BENEFIT:
                return self.benefits
            case CapabilityClass.TRUST:
                return self.trust


@lru_cache(maxsize=512)
def _compile(expression: str) -> re.Pattern[str]:
    return re.compile(expression, re.IGNORECASE)


def find_match(matcher: Matcher, text: str) -> str | None:
    """Return the matched text for one rule against lower-cased ``text``, or None."""
    match matcher:
        case LiteralPattern(text=literal):
            needle = literal.lower()
            return needle if needle and needle in text else None
        case RegexPattern(expression=expression):
            found = _compile(expression).search(text)
            return found.group(0) if found else None


def _regex(expression: str, category: str, criticality: Criticality) -> CapabilityPattern:
    return CapabilityPattern(RegexPattern(expression), category, criticality)


def _literal(text: str, category: str, criticality: Criticality) -> CapabilityPattern:
    return CapabilityPattern(LiteralPattern(text), category, criticality)


_FEATURE_PATTERNS = (
    _regex(
        r"\b(offline|without internet|no connection required)\b", "functionality", Criticality.HIGH
    ),
    _regex(r"\b(real-time|live|instant)\b", "performance", Criticality.HIGH),
    _regex(r"\b(voice|speech|audio)\b", "interface", Criticality.MEDIUM),
    _regex(r"\b(video|visual|watch)\b", "interface", Criticality.MEDIUM),
    _regex(r"\b(notification|alert|reminder)s?\b", "functionality", Criticality.MEDIUM),
    _regex(r"\b(sync|synchronize|cloud)\b", "data", Criticality.HIGH),
    _regex(r"\b(backup|restore)\b", "data", Criticality.MEDIUM),
    _regex(r"\b(export|import|share)\b", "integration", Criticality.MEDIUM),
    _regex(r"\b(custom|personalized|tailored|adaptive)\b", "personalization", Criticality.MEDIUM),
    _regex(r"\b(smart|intelligent|ai|machine learning)\b", "personalization", Criticality.HIGH),
    _regex(r"\b(track|monitor|measure|analyze)\b", "functionality", Criticality.HIGH),
    _regex(r"\b(progress|stats|statistics|insights)\b", "functionality", Criticality.MEDIUM),
    _regex(r"\b(goal|target|milestone)s?\b", "functionality", Criticality.MEDIUM),
    _regex(r"\b(chat|message|communicate)\b", "social", Criticality.MEDIUM),
    _regex(r"\b(community|forum|group)\b", "social", Criticality.MEDIUM),
    _regex(r"\b(leaderboard|compete|challenge)s?\b", "social", Criticality.MEDIUM),
    _regex(r"\b(reward|points|badge|achievement)s?\b", "gamification", Criticality.MEDIUM),
    _regex(r"\b(level|unlock|earn)s?\b", "gamification", Criticality.MEDIUM),
    _regex(r"\b(library|collection|database)\b", "content", Criticality.MEDIUM),
    _regex(r"\b(lessons?|courses?|tutorials?|exercises?)\b", "content", Criticality.HIGH),
    _literal("bite-sized", "content", Criticality.MEDIUM),
    _regex(r"\b(search|find|discover)\b", "functionality", Criticality.MEDIUM),
)

_BENEFIT_PATTERNS = (
    _regex(r"\b(save time|faster|quick|speed up)\b", "efficiency", Criticality.HIGH),
    _regex(r"\b(efficient|streamline|optimize)\b", "efficiency", Criticality.HIGH),
    _regex(r"\b(automate|automatic|hands-free)\b", "efficiency", Criticality.MEDIUM),
    _regex(r"\b(easy|simple|effortless)\b", "usability", Criticality.HIGH),
    _regex(r"\b(intuitive|user-friendly|straightforward)\b", "usability", Criticality.MEDIUM),
    _regex(r"\b(convenient|hassle-free|no setup)\b", "usability", Criticality.MEDIUM),
    _regex(r"\b(improve|boost|enhance|increase)\b", "achievement", Criticality.HIGH),
    _regex(r"\b(achieve|reach|accomplish|succeed)\b", "achievement", Criticality.MEDIUM),
    _regex(r"\b(transform|revolutionize)\b", "achievement", Criticality.MEDIUM),
    _regex(r"\b(master|fluent|proficient)\b", "skill_development", Criticality.HIGH),
    _regex(r"\b(learn|practice|train|develop)\b", "skill_development", Criticality.HIGH),
    _regex(r"\b(skill|ability|knowledge)\b", "skill_development", Criticality.MEDIUM),
    _regex(r"\b(affordable|budget|low cost)\b", "cost", Criticality.MEDIUM),
    _regex(r"\b(value|worth|investment)\b", "cost", Criticality.MEDIUM),
    _regex(r"\b(minutes|hours|daily|weekly)\s+(save|gain|spend less)\b", "time", Criticality.HIGH),
    _regex(r"\b(anytime|anywhere|on-the-go)\b", "time", Criticality.MEDIUM),
    _regex(r"\b(quality|premium|superior)\b", "quality", Criticality.MEDIUM),
    _regex(r"\b(proven|tested|reliable)\b", "quality", Criticality.MEDIUM),
    _regex(r"\b(effective|powerful|comprehensive)\b", "quality", Criticality.MEDIUM),
    _regex(r"\b(confident|confidence)\b", "emotional", Criticality.MEDIUM),
)

_TRUST_PATTERNS = (
    _regex(r"\b(secure|encrypted|protected|safe)\b", "security", Criticality.CRITICAL),
    _regex(r"\b(security|encryption|protection)\b", "security", Criticality.CRITICAL),
    _regex(r"\b(privacy|private|confidential)\b", "privacy", Criticality.CRITICAL),
    _regex(r"\b(verified|certified|approved|validated)\b", "certification", Criticality.HIGH),
    _regex(r"\b(licensed|accredited|endorsed)\b", "certification", Criticality.HIGH),
    _regex(r"\b(award|winner|rated|featured)\b", "recognition", Criticality.MEDIUM),
    _regex(r"\b(best|top|leading)\b|#1\b", "recognition", Criticality.MEDIUM),
    _regex(
        r"\b\d+[mk]?\+?\s*(users|downloads|customers|members|learners)\b",
        "social_proof",
        Criticality.HIGH,
    ),
    _regex(r"\b(trusted|used|loved) by\b", "social_proof", Criticality.MEDIUM),
    _regex(r"\b(millions|thousands) of\b", "social_proof", Criticality.MEDIUM),
    _regex(r"\b(expert|professional|specialist|doctor)s?\b", "expertise", Criticality.HIGH),
    _regex(r"\b(no ads|ad-free|without ads)\b", "ad_free", Criticality.MEDIUM),
    _literal("money-back guarantee", "guarantee", Criticality.HIGH),
)

DEFAULT_PATTERN_LIBRARY = PatternLibrary(
    features=_FEATURE_PATTERNS,
    benefits=_BENEFIT_PATTERNS,
    trust=_TRUST_PATTERNS,
)


def validate_pattern_library(library: PatternLibrary) -> tuple[str, ...]:
    """Return problems with a pattern library (empty when it is usable)."""
    errors: list[str] = []
    minimums = (
        (CapabilityClass.FEATURE, MIN_FEATURE_PATTERNS),
        (CapabilityClass.BENEFIT, MIN_BENEFIT_PATTERNS),
        (CapabilityClass.TRUST, MIN_TRUST_PATTERNS),
    )
    for capability_class, minimum in minimums:
        patterns = library.for_class(capability_class)
        if len(patterns) < minimum:
            errors.append(
                f"{capability_class} patterns: expected at least {minimum}, found {len(patterns)}"
            )
        for pattern in patterns:
            if not pattern.category.strip():
                errors.append(f"{capability_class} pattern '{pattern.source}' has no category")
            if isinstance(pattern.matcher, RegexPattern):
                try:
                    _compile(pattern.matcher.expression)
                except re.error as exc:
                    errors.append(
                        f"{capability_class} pattern '{pattern.source}' is invalid: {exc}"
                    )
    return tuple(errors)
