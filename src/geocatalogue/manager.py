"""Catalogue manager: the command/query surface consumed by the UI layer."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from geocatalogue.cache.persistence import CataloguePersisting
from geocatalogue.exceptions import CataloguePersistenceError
from geocatalogue.models.catalogue import CachedSection, CatalogueSection
from geocatalogue.models.location import LocationContext, LocationSummary
from geocatalogue.state.pruning import PruneReport, prune_for_location_change
from geocatalogue.state.store import CatalogueStore

_logger = logging.getLogger(__name__)


class CatalogueManager:
    """Owns the live catalogue and the location it was fetched for.

    Location changes must go through :meth:`prune_stale_items` *before*
    :meth:`set_location` and before any content for the new location is
    merged, so pruning compares against the old location.

    Usage::

        manager = CatalogueManager(persistence=CatalogueFileCache(path))
        manager.change_location(new_location)   # prune, then record
        ...route catalogue events into manager.handle_catalogue_update...
        manager.persist_current_state(new_location)
    """

    def __init__(
        self,
        *,
        store: CatalogueStore | None = None,
        persistence: CataloguePersisting | None = None,
    ) -> None:
        self._store = store if store is not None else CatalogueStore()
        self._persistence = persistence
        self._location: LocationContext | None = None
        self._pending_writes: set[asyncio.Task[None]] = set()

    @property
    def store(self) -> CatalogueStore:
        return self._store

    @property
    def location(self) -> LocationContext | None:
        return self._location

    def set_persistence(self, persistence: CataloguePersisting | None) -> None:
        self._persistence = persistence

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def ordered_sections(self) -> list[CatalogueSection]:
        return self._store.ordered_sections()

    def location_summary(self) -> LocationSummary | None:
        """Header data for the current location, if one is recorded."""
        if self._location is None:
            return None
        return LocationSummary.from_location(self._location)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def handle_catalogue_update(self, section_type: str, display_title: str, content: Any) -> None:
        """Upsert one section (per-key merge into existing map content)."""
        self._store.upsert(section_type, display_title, content)

    def set_location(self, location: LocationContext, is_from_device: bool | None = None) -> None:
        """Record *location* as current. Does not prune."""
        if is_from_device is not None and is_from_device != location.is_from_device:
            location = location.model_copy(update={"is_from_device": is_from_device})
        self._location = location

    def prune_stale_items(self, new_location: LocationContext) -> PruneReport:
        """Drop content that is not valid at *new_location*.

        Compares against the currently recorded location; with none
        recorded, the whole catalogue is cleared.
        """
        return prune_for_location_change(self._store, self._location, new_location)

    def change_location(self, new_location: LocationContext, is_from_device: bool | None = None) -> PruneReport:
        """Prune for *new_location*, then record it as current."""
        report = self.prune_stale_items(new_location)
        self.set_location(new_location, is_from_device)
        return report

    def reset(self) -> None:
        """Hard context reset: forget the location and clear the catalogue."""
        self._location = None
        self._store.clear_all()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def persist_current_state(self, location: LocationContext | None = None) -> asyncio.Task[None] | None:
        """Snapshot the catalogue now and write it in the background.

        The snapshot is taken synchronously so the write never sees a
        half-applied update. Write failures are logged, never raised.
        Must be called from a running event loop.
        """
        target = location if location is not None else self._location
        if self._persistence is None or target is None:
            return None
        sections, order = self._store.snapshot()
        cached = [CachedSection.from_section(section) for section in sections]
        if not cached:
            return None

        task = asyncio.get_running_loop().create_task(self._write_snapshot(self._persistence, cached, order, target))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)
        return task

    async def _write_snapshot(
        self,
        persistence: CataloguePersisting,
        sections: list[CachedSection],
        order: list[str],
        location: LocationContext,
    ) -> None:
        try:
            await persistence.persist(sections, order, location)
        except CataloguePersistenceError as exc:
            _logger.warning("Failed to persist catalogue: %s", exc)
        except Exception:
            _logger.warning("Unexpected error persisting catalogue", exc_info=True)

    async def wait_for_pending_writes(self) -> None:
        """Wait until every background persist has finished."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def clear_expired_cache(self) -> int:
        """Drop expired cached contexts. Returns the number removed."""
        if self._persistence is None:
            return 0
        try:
            return await self._persistence.clear_expired()
        except Exception:
            _logger.warning("Failed to clear expired catalogue cache", exc_info=True)
            return 0

    async def restore_from_cache(self, location: LocationContext | None = None) -> int:
        """Merge cached sections into the live catalogue.

        With a *location*, cached keys only fill gaps: anything already live
        is kept. Without one, the last active context is restored, but only
        into an empty catalogue. Returns the number of sections applied.
        """
        if self._persistence is None:
            return 0
        if location is not None:
            return await self._restore_for_location(self._persistence, location)
        return await self._restore_last_context(self._persistence)

    async def _restore_for_location(self, persistence: CataloguePersisting, location: LocationContext) -> int:
        try:
            cached = await persistence.restore(location)
        except Exception:
            _logger.warning("Failed to restore catalogue for location", exc_info=True)
            return 0

        with self._store.locked():
            for section in cached:
                self._store.fill_gaps(section.section_type, section.display_title, section.content)
        if self._location is None:
            self.set_location(location)
        return len(cached)

    async def _restore_last_context(self, persistence: CataloguePersisting) -> int:
        if len(self._store):
            return 0
        try:
            restored = await persistence.restore_last_context()
        except Exception:
            _logger.warning("Failed to restore last catalogue context", exc_info=True)
            return 0
        if restored is None:
            return 0

        applied = 0
        with self._store.locked():
            for section in restored.sections:
                if self._store.has(section.section_type):
                    continue
                self._store.upsert(section.section_type, section.display_title, section.content)
                applied += 1
        if self._location is None:
            self._location = restored.location_summary.to_location()
        return applied
