"""Brand alias helpers for combo classification."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from .tokenization import tokenize

_ALIAS_SUFFIXES = ("app", "language", "learning")


@dataclass(frozen=True)
class BrandAliases:
    """Normalised brand aliases and the individual tokens they are made of."""

    aliases: tuple[str, ...]

    @property
    def tokens(self) -> frozenset[str]:
        return frozenset(token for alias in self.aliases for token in tokenize(alias))

    def match(self, keywords: Iterable[str]) -> str | None:
        """Return the shortest alias fully contained in ``keywords``."""
        keyword_set = set(keywords)
        for alias in sorted(self.aliases, key=lambda value: (len(value), value)):
            alias_tokens = tokenize(alias)
            if alias_tokens and all(token in keyword_set for token in alias_tokens):
                return alias
        return None

    def __bool__(self) -> bool:
        return bool(self.aliases)


def build_brand_aliases(brand: str | None, extra: Iterable[str] = ()) -> BrandAliases:
    """Expand a brand name into lower-case aliases (``brand``, ``brand app``, ...)."""
    aliases: dict[str, None] = {}
    base = " ".join(tokenize(brand))
    if base:
        aliases[base] = None
        compact = base.replace(" ", "")
        aliases[compact] = None
        for suffix in _ALIAS_SUFFIXES:
            aliases[f"{base} {suffix}"] = None
    for alias in extra:
        normalised = " ".join(tokenize(alias))
        if normalised:
            aliases[normalised] = None
    return BrandAliases(aliases=tuple(aliases))


def infer_brand(title: str | None) -> str | None:
    """Take the first title token as the brand, the way store titles usually lead with it."""
    tokens = tokenize(title)
    return tokens[0] if tokens else None
