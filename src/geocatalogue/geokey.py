"""Hierarchical geographic keys.

Keys use ``.`` between levels and ``_`` for spaces within a level::

    country:      "cn"
    admin_area:   "cn.guangdong"
    locality:     "cn.guangdong.shenzhen"
    sub_locality: "cn.guangdong.shenzhen.futian"
"""

from __future__ import annotations

import re
import unicodedata

from geocatalogue.models.location import GeoLevel, LocationContext

_SEPARATOR_PUNCTUATION = re.compile(r"[-'\"()\[\]]")
_DECORATION_PUNCTUATION = re.compile(r"[,.]")


def normalize_name(name: str) -> str:
    """Normalize a place name for use in a key.

    Strips diacritics (``São Paulo`` -> ``sao_paulo``), turns separator
    punctuation into word breaks, drops commas and periods, lowercases and
    joins words with ``_``.
    """
    decomposed = unicodedata.normalize("NFKD", name)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _SEPARATOR_PUNCTUATION.sub(" ", stripped)
    cleaned = _DECORATION_PUNCTUATION.sub("", cleaned)
    return "_".join(cleaned.lower().split()).strip("_")


def geo_key(location: LocationContext, level: GeoLevel) -> str | None:
    """Key for *location* at *level*, or ``None`` if it cannot be derived.

    The key joins every resolved name from country down to *level*. It is
    absent when the country or the level itself is unresolved; unresolved
    intermediate levels are skipped.
    """
    names = location.resolved_names()
    if GeoLevel.COUNTRY not in names or level not in names:
        return None
    if not normalize_name(names[level]):
        return None
    parts = [normalize_name(names[lvl]) for lvl in GeoLevel if lvl <= level and lvl in names]
    return ".".join(part for part in parts if part)


def applicable_levels(location: LocationContext) -> list[tuple[GeoLevel, str]]:
    """All derivable ``(level, key)`` pairs, most general first."""
    result: list[tuple[GeoLevel, str]] = []
    for level in GeoLevel:
        key = geo_key(location, level)
        if key is not None:
            result.append((level, key))
    return result


def key_map(location: LocationContext | None) -> dict[GeoLevel, str | None]:
    """Key per level, ``None`` where underivable (or no location at all)."""
    return {level: (geo_key(location, level) if location is not None else None) for level in GeoLevel}


def canonical_key(location: LocationContext) -> tuple[GeoLevel, str] | None:
    """The most specific derivable ``(level, key)`` pair."""
    levels = applicable_levels(location)
    return levels[-1] if levels else None
