"""Geo-scope pruning.

When the location changes, content scoped at or below the most general
level where the old and new locations diverge is no longer valid. Content
both locations share (for example country-scoped items when moving between
two cities of one country) survives.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from geocatalogue.geokey import key_map
from geocatalogue.models.location import GeoLevel, LocationContext
from geocatalogue.models.value import METADATA_KEY, as_map, dig, is_reserved_key
from geocatalogue.state.store import CatalogueStore

_logger = logging.getLogger(__name__)


@dataclass
class PruneReport:
    """What a prune pass removed."""

    stale_levels: tuple[GeoLevel, ...] = ()
    cleared: bool = False
    removed_items: dict[str, list[str]] = field(default_factory=dict)
    removed_sections: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.cleared or bool(self.removed_items) or bool(self.removed_sections)


def item_geo_scope(item: Any) -> GeoLevel | None:
    """Read an item's geo-scope from its ``_metadata``.

    Accepts ``_metadata.geo_scope`` and the nested
    ``_metadata.location.geoscope`` shape. ``None`` means unscoped.
    """
    metadata = as_map(dig(item, METADATA_KEY))
    if metadata is None:
        return None
    scope = metadata.get("geo_scope")
    if scope is None:
        scope = dig(metadata, "location", "geoscope")
    return GeoLevel.from_identifier(scope)


def _is_stale(item: Any, stale: set[GeoLevel]) -> bool:
    scope = item_geo_scope(item)
    return scope is None or scope in stale


def compute_stale_levels(old: LocationContext, new: LocationContext) -> tuple[GeoLevel, ...]:
    """Levels invalidated by moving from *old* to *new*.

    Walks general to specific; once a level's keys differ (including one
    side being underivable), it and every more specific level are stale.
    """
    old_keys = key_map(old)
    new_keys = key_map(new)
    stale: list[GeoLevel] = []
    for level in GeoLevel:
        if stale or old_keys[level] != new_keys[level]:
            stale.append(level)
    return tuple(stale)


def prune_catalogue(store: CatalogueStore, stale_levels: tuple[GeoLevel, ...]) -> PruneReport:
    """Remove stale and unscoped items; drop sections left without items.

    Unscoped items are always removed: nothing guarantees they still apply.
    Reserved root keys (``_...``) are kept but do not keep a section alive.
    """
    report = PruneReport(stale_levels=stale_levels)
    if not stale_levels:
        return report
    stale = set(stale_levels)

    with store.locked():
        for section in store.ordered_sections():
            content = as_map(section.content)
            if content is None:
                continue

            removed = [key for key, value in content.items() if not is_reserved_key(key) and _is_stale(value, stale)]
            if not removed:
                continue

            remaining = {key: value for key, value in content.items() if key not in removed}
            report.removed_items[section.section_type] = removed
            if any(not is_reserved_key(key) for key in remaining):
                store.set_content(section.section_type, remaining)
            else:
                store.remove(section.section_type)
                report.removed_sections.append(section.section_type)

    _logger.debug(
        "Pruned catalogue stale=%s removed_items=%s removed_sections=%s",
        [level.identifier for level in stale_levels],
        report.removed_items,
        report.removed_sections,
    )
    return report


def prune_for_location_change(
    store: CatalogueStore,
    old: LocationContext | None,
    new: LocationContext,
) -> PruneReport:
    """Prune *store* for a move from *old* to *new*.

    With no previous location there is nothing to compare against, so the
    whole store is cleared.
    """
    if old is None:
        store.clear_all()
        _logger.debug("No previous location; catalogue cleared")
        return PruneReport(stale_levels=tuple(GeoLevel), cleared=True)
    return prune_catalogue(store, compute_stale_levels(old, new))
