"""File-based catalogue persistence.

Storage layout::

    <root>/
      contexts/
        country/cn.json
        locality/cn.guangdong.shenzhen.json
      last_context.json

Each context file is a :class:`CachedSnapshot` for one ``(level, geoKey)``.
The most specific resolvable level of the persisted location gets the
catalogue minus items scoped more specifically than that level (those are
only valid somewhere the key cannot tell apart). Items scoped to a more
general level are also merged into that
level's file, so another city in the same country can reuse country-scoped
content. ``last_context.json`` mirrors the latest full snapshot for restores
that happen before any location is known.

Blocking file I/O runs in worker threads via :func:`asyncio.to_thread`.
"""

from __future__ import annotations

import asyncio
import copy
import logging
import os
import re
import tempfile
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Protocol

from pydantic import ValidationError

from geocatalogue.exceptions import CataloguePersistenceError
from geocatalogue.geokey import applicable_levels, canonical_key
from geocatalogue.models.catalogue import CachedSection, CachedSnapshot
from geocatalogue.models.location import GeoLevel, LocationContext, LocationSummary
from geocatalogue.models.value import as_map, is_reserved_key
from geocatalogue.state.pruning import item_geo_scope

_logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\-]")
LAST_CONTEXT_FILENAME = "last_context.json"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class RestoredContext:
    """Result of a location-less restore."""

    sections: list[CachedSection]
    location_summary: LocationSummary
    snapshot: CachedSnapshot


class CataloguePersisting(Protocol):
    """Structural interface for catalogue persistence backends."""

    async def persist(
        self,
        sections: Sequence[CachedSection],
        section_order: Sequence[str],
        location: LocationContext,
    ) -> None: ...

    async def restore(self, location: LocationContext) -> list[CachedSection]: ...

    async def restore_last_context(self) -> RestoredContext | None: ...

    async def clear_expired(self) -> int: ...


def merge_content(base: Any, override: Any) -> Any:
    """Per-key merge of two content maps; *override* wins on conflicts.

    If either side is not a map, *override* replaces *base* entirely.
    """
    base_map = as_map(base)
    override_map = as_map(override)
    if base_map is None or override_map is None:
        return copy.deepcopy(override)
    merged = copy.deepcopy(base_map)
    merged.update(copy.deepcopy(override_map))
    return merged


def _scoped_below(item: Any, level: GeoLevel) -> bool:
    scope = item_geo_scope(item)
    return scope is not None and scope > level


def drop_more_specific_items(sections: Sequence[CachedSection], level: GeoLevel) -> list[CachedSection]:
    """Remove items scoped more specifically than *level*.

    Unscoped items and non-map sections are kept. A section whose items all
    go is dropped.
    """
    kept: list[CachedSection] = []
    for section in sections:
        content = as_map(section.content)
        if content is None:
            kept.append(section)
            continue
        filtered = {
            key: item
            for key, item in content.items()
            if is_reserved_key(key) or not _scoped_below(item, level)
        }
        if len(filtered) == len(content):
            kept.append(section)
        elif any(not is_reserved_key(key) for key in filtered):
            kept.append(section.model_copy(update={"content": filtered}))
    return kept


def split_shared_items(
    sections: Sequence[CachedSection],
    canonical_level: GeoLevel,
) -> dict[GeoLevel, list[CachedSection]]:
    """Group items scoped more generally than *canonical_level* by scope."""
    grouped: dict[GeoLevel, dict[str, dict[str, Any]]] = {}
    titles: dict[str, str] = {}
    for section in sections:
        content = as_map(section.content)
        if content is None:
            continue
        titles[section.section_type] = section.display_title
        for key, item in content.items():
            if is_reserved_key(key):
                continue
            scope = item_geo_scope(item)
            if scope is None or scope >= canonical_level:
                continue
            grouped.setdefault(scope, {}).setdefault(section.section_type, {})[key] = item

    return {
        level: [
            CachedSection(section_type=section_type, display_title=titles[section_type], content=items)
            for section_type, items in by_section.items()
        ]
        for level, by_section in grouped.items()
    }


class CatalogueFileCache:
    """JSON-file implementation of :class:`CataloguePersisting`.

    Read and decode failures are treated as cache misses: the offending file
    is deleted and a warning logged. Write failures raise
    :class:`CataloguePersistenceError`; the manager logs and drops them.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        max_age: timedelta = timedelta(days=14),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._root = Path(root)
        self._contexts_dir = self._root / "contexts"
        self._last_context_path = self._root / LAST_CONTEXT_FILENAME
        self._max_age = max_age
        self._clock = clock
        self._write_lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    def context_path(self, level: GeoLevel, geo_key: str) -> Path:
        filename = _UNSAFE_FILENAME_CHARS.sub("_", geo_key)
        return self._contexts_dir / level.identifier / f"{filename}.json"

    # ------------------------------------------------------------------
    # CataloguePersisting
    # ------------------------------------------------------------------

    async def persist(
        self,
        sections: Sequence[CachedSection],
        section_order: Sequence[str],
        location: LocationContext,
    ) -> None:
        await asyncio.to_thread(self.persist_sync, list(sections), list(section_order), location)

    async def restore(self, location: LocationContext) -> list[CachedSection]:
        return await asyncio.to_thread(self.restore_sync, location)

    async def restore_last_context(self) -> RestoredContext | None:
        return await asyncio.to_thread(self.restore_last_context_sync)

    async def clear_expired(self) -> int:
        return await asyncio.to_thread(self.clear_expired_sync)

    # ------------------------------------------------------------------
    # Synchronous implementations
    # ------------------------------------------------------------------

    def persist_sync(
        self,
        sections: list[CachedSection],
        section_order: list[str],
        location: LocationContext,
    ) -> None:
        if not sections:
            return
        canonical = canonical_key(location)
        if canonical is None:
            _logger.debug("Location has no resolvable geo key; skipping persist")
            return
        level, geo_key = canonical
        summary = LocationSummary.from_location(location)
        now = self._clock()

        # A context file only holds items valid everywhere its key covers.
        canonical_sections = drop_more_specific_items(sections, level)
        canonical_types = {section.section_type for section in canonical_sections}
        snapshot = CachedSnapshot(
            geo_key=geo_key,
            level=level,
            saved_at=now,
            section_order=[section_type for section_type in section_order if section_type in canonical_types],
            sections=canonical_sections,
            location_summary=summary,
        )

        with self._write_lock:
            if canonical_sections:
                self._write(self.context_path(level, geo_key), snapshot)

            keys = dict(applicable_levels(location))
            for shared_level, shared_sections in split_shared_items(sections, level).items():
                shared_key = keys.get(shared_level)
                if shared_key is None:
                    continue
                path = self.context_path(shared_level, shared_key)
                merged_sections, merged_order = self._merge_into(self._read(path), shared_sections, section_order)
                self._write(
                    path,
                    CachedSnapshot(
                        geo_key=shared_key,
                        level=shared_level,
                        saved_at=now,
                        section_order=merged_order,
                        sections=merged_sections,
                        location_summary=summary,
                    ),
                )

            # The last active context keeps everything that was live there.
            self._write(
                self._last_context_path,
                snapshot.model_copy(update={"section_order": section_order, "sections": sections}),
            )

        _logger.debug("Persisted catalogue level=%s key=%s sections=%d", level.identifier, geo_key, len(sections))

    def restore_sync(self, location: LocationContext) -> list[CachedSection]:
        merged: dict[str, CachedSection] = {}
        order: list[str] = []

        # General to specific: more specific levels override shared keys.
        for level, geo_key in applicable_levels(location):
            snapshot = self._read(self.context_path(level, geo_key))
            if snapshot is None:
                continue
            for section in snapshot.ordered_sections():
                existing = merged.get(section.section_type)
                if existing is None:
                    merged[section.section_type] = section
                else:
                    merged[section.section_type] = CachedSection(
                        section_type=section.section_type,
                        display_title=section.display_title,
                        content=merge_content(existing.content, section.content),
                    )
            if snapshot.section_order:
                order = snapshot.section_order

        if not merged:
            return []
        result = [merged.pop(section_type) for section_type in order if section_type in merged]
        result.extend(merged.values())
        _logger.debug("Restored %d cached sections", len(result))
        return result

    def restore_last_context_sync(self) -> RestoredContext | None:
        snapshot = self._read(self._last_context_path)
        if snapshot is None or not snapshot.sections:
            return None
        return RestoredContext(
            sections=snapshot.ordered_sections(),
            location_summary=snapshot.location_summary,
            snapshot=snapshot,
        )

    def clear_expired_sync(self) -> int:
        if not self._contexts_dir.is_dir():
            return 0
        cutoff = self._clock() - self._max_age
        removed = 0
        for path in sorted(self._contexts_dir.rglob("*.json")):
            snapshot = self._read(path)
            if snapshot is None:
                # corrupt files are deleted by _read
                removed += int(not path.exists())
                continue
            if snapshot.saved_at < cutoff:
                self._delete(path)
                removed += 1
        if removed:
            _logger.debug("Removed %d expired catalogue contexts", removed)
        return removed

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _merge_into(
        existing: CachedSnapshot | None,
        incoming: list[CachedSection],
        section_order: list[str],
    ) -> tuple[list[CachedSection], list[str]]:
        sections: dict[str, CachedSection] = {}
        order: list[str] = []
        if existing is not None:
            for section in existing.ordered_sections():
                sections[section.section_type] = section
                order.append(section.section_type)
        for section in incoming:
            previous = sections.get(section.section_type)
            content = section.content if previous is None else merge_content(previous.content, section.content)
            sections[section.section_type] = CachedSection(
                section_type=section.section_type,
                display_title=section.display_title,
                content=content,
            )
        for section_type in [*section_order, *sections]:
            if section_type in sections and section_type not in order:
                order.append(section_type)
        return [sections[section_type] for section_type in order], order

    def _read(self, path: Path) -> CachedSnapshot | None:
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            _logger.warning("Could not read catalogue cache %s: %s", path, exc)
            return None
        try:
            return CachedSnapshot.model_validate_json(raw)
        except ValidationError as exc:
            _logger.warning("Discarding corrupt catalogue cache %s: %s", path, exc.errors()[:1])
            self._delete(path)
            return None

    def _write(self, path: Path, snapshot: CachedSnapshot) -> None:
        payload = snapshot.model_dump_json(by_alias=True, indent=2)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.stem}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise CataloguePersistenceError(f"Failed to write catalogue cache {path}: {exc}") from exc

    @staticmethod
    def _delete(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            _logger.warning("Could not delete catalogue cache %s: %s", path, exc)
