from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from geocatalogue.cache.persistence import CatalogueFileCache, RestoredContext
from geocatalogue.exceptions import CataloguePersistenceError
from geocatalogue.manager import CatalogueManager
from geocatalogue.models.catalogue import CachedSection
from geocatalogue.models.location import LocationContext

SHENZHEN = LocationContext(country_code="CN", country="China", admin_area="Guangdong", locality="Shenzhen")
SHANGHAI = LocationContext(country_code="CN", country="China", admin_area="Shanghai", locality="Shanghai")


def _scoped(name: str, scope: str) -> dict[str, Any]:
    return {"name": name, "_metadata": {"geo_scope": scope}}


class _FailingPersistence:
    def __init__(self) -> None:
        self.persist_calls = 0

    async def persist(
        self,
        sections: Sequence[CachedSection],
        section_order: Sequence[str],
        location: LocationContext,
    ) -> None:
        self.persist_calls += 1
        raise CataloguePersistenceError("disk full")

    async def restore(self, location: LocationContext) -> list[CachedSection]:
        raise OSError("unreadable")

    async def restore_last_context(self) -> RestoredContext | None:
        raise OSError("unreadable")

    async def clear_expired(self) -> int:
        return 0


def test_change_location_prunes_against_previous_location() -> None:
    manager = CatalogueManager()
    manager.change_location(SHENZHEN)
    manager.handle_catalogue_update(
        "cuisine",
        "Cuisine",
        {"chinese": _scoped("Chinese", "country"), "cantonese": _scoped("Cantonese", "locality")},
    )

    report = manager.change_location(SHANGHAI)

    assert report.removed_items == {"cuisine": ["cantonese"]}
    assert manager.location == SHANGHAI
    assert [section.content for section in manager.ordered_sections()] == [{"chinese": _scoped("Chinese", "country")}]


def test_first_location_clears_catalogue() -> None:
    manager = CatalogueManager()
    manager.handle_catalogue_update("cuisine", "Cuisine", {"chinese": _scoped("Chinese", "country")})

    report = manager.change_location(SHENZHEN)

    assert report.cleared is True
    assert manager.ordered_sections() == []


def test_set_location_records_device_flag_without_pruning() -> None:
    manager = CatalogueManager()
    manager.handle_catalogue_update("notes", "Notes", {"n1": "unscoped"})

    manager.set_location(SHENZHEN, is_from_device=True)

    assert manager.location is not None
    assert manager.location.is_from_device is True
    assert len(manager.store) == 1


def test_location_summary() -> None:
    manager = CatalogueManager()
    assert manager.location_summary() is None

    manager.set_location(SHENZHEN)
    summary = manager.location_summary()

    assert summary is not None
    assert summary.resolved_names_by_level["admin_area"] == "Guangdong"
    assert summary.country_code == "CN"


def test_reset_forgets_location_and_content() -> None:
    manager = CatalogueManager()
    manager.set_location(SHENZHEN)
    manager.handle_catalogue_update("notes", "Notes", {"n1": "x"})

    manager.reset()

    assert manager.location is None
    assert len(manager.store) == 0


@pytest.mark.asyncio
async def test_gap_fill_restore_keeps_live_values(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path)
    cache.persist_sync(
        [
            CachedSection(section_type="overview", display_title="Overview", content={"intro": "cached", "history": "h"}),
            CachedSection(section_type="cuisine", display_title="Cuisine", content={"dim_sum": "d"}),
        ],
        ["overview", "cuisine"],
        SHENZHEN,
    )
    manager = CatalogueManager(persistence=cache)
    manager.set_location(SHENZHEN)
    manager.handle_catalogue_update("overview", "Overview", {"intro": "live"})

    applied = await manager.restore_from_cache(SHENZHEN)

    assert applied == 2
    overview = manager.store.get("overview")
    cuisine = manager.store.get("cuisine")
    assert overview is not None
    assert cuisine is not None
    assert overview.content == {"intro": "live", "history": "h"}
    assert cuisine.content == {"dim_sum": "d"}
    assert manager.store.section_types() == ["overview", "cuisine"]


@pytest.mark.asyncio
async def test_persist_then_restore_last_context_on_cold_start(tmp_path: Path) -> None:
    writer = CatalogueManager(persistence=CatalogueFileCache(tmp_path))
    writer.change_location(SHENZHEN)
    writer.handle_catalogue_update("overview", "Overview", {"intro": "Hi"})
    writer.handle_catalogue_update("cuisine", "Cuisine", {"dim_sum": "d"})

    task = writer.persist_current_state()
    assert task is not None
    await writer.wait_for_pending_writes()

    reader = CatalogueManager(persistence=CatalogueFileCache(tmp_path))
    applied = await reader.restore_from_cache()

    assert applied == 2
    assert reader.ordered_sections() == writer.ordered_sections()
    assert reader.location is not None
    assert reader.location.locality == "Shenzhen"


@pytest.mark.asyncio
async def test_last_context_restore_skips_non_empty_store(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path)
    cache.persist_sync(
        [CachedSection(section_type="overview", display_title="Overview", content={"intro": "cached"})],
        ["overview"],
        SHENZHEN,
    )
    manager = CatalogueManager(persistence=cache)
    manager.handle_catalogue_update("overview", "Overview", {"intro": "live"})

    assert await manager.restore_from_cache() == 0
    section = manager.store.get("overview")
    assert section is not None
    assert section.content == {"intro": "live"}


@pytest.mark.asyncio
async def test_persist_snapshot_is_taken_at_call_time(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path)
    manager = CatalogueManager(persistence=cache)
    manager.change_location(SHENZHEN)
    manager.handle_catalogue_update("overview", "Overview", {"intro": "before"})

    manager.persist_current_state()
    manager.handle_catalogue_update("overview", "Overview", {"intro": "after"})
    await manager.wait_for_pending_writes()

    restored = cache.restore_sync(SHENZHEN)
    assert restored[0].content == {"intro": "before"}


@pytest.mark.asyncio
async def test_persist_without_location_or_content_is_skipped(tmp_path: Path) -> None:
    manager = CatalogueManager(persistence=CatalogueFileCache(tmp_path))

    assert manager.persist_current_state() is None
    manager.set_location(SHENZHEN)
    assert manager.persist_current_state() is None


@pytest.mark.asyncio
async def test_persistence_failures_are_logged_not_raised(caplog: pytest.LogCaptureFixture) -> None:
    persistence = _FailingPersistence()
    manager = CatalogueManager(persistence=persistence)
    manager.change_location(SHENZHEN)
    manager.handle_catalogue_update("overview", "Overview", {"intro": "Hi"})

    manager.persist_current_state()
    await manager.wait_for_pending_writes()

    assert persistence.persist_calls == 1
    assert "Failed to persist catalogue" in caplog.text
    assert await manager.restore_from_cache(SHENZHEN) == 0
    manager.reset()
    assert await manager.restore_from_cache() == 0
    assert manager.location is None


@pytest.mark.asyncio
async def test_restore_without_persistence_is_a_no_op() -> None:
    manager = CatalogueManager()

    assert await manager.restore_from_cache(SHENZHEN) == 0
    assert manager.location is None


@pytest.mark.asyncio
async def test_clear_expired_cache_without_persistence() -> None:
    assert await CatalogueManager().clear_expired_cache() == 0
