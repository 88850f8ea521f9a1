from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from geocatalogue.cache.persistence import (
    CatalogueFileCache,
    drop_more_specific_items,
    merge_content,
    split_shared_items,
)
from geocatalogue.exceptions import CataloguePersistenceError
from geocatalogue.models.catalogue import CachedSection, CachedSnapshot
from geocatalogue.models.location import GeoLevel, LocationContext

SHENZHEN = LocationContext(
    latitude=22.54,
    longitude=114.06,
    country_code="CN",
    country="China",
    admin_area="Guangdong",
    locality="Shenzhen",
    timezone="Asia/Shanghai",
)
SHANGHAI = LocationContext(country_code="CN", country="China", admin_area="Shanghai", locality="Shanghai")


def _dt() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _section(section_type: str, content: Any, title: str | None = None) -> CachedSection:
    return CachedSection(section_type=section_type, display_title=title or section_type.title(), content=content)


def _scoped(name: str, scope: str) -> dict[str, Any]:
    return {"name": name, "_metadata": {"geo_scope": scope}}


def test_persist_then_restore_round_trips(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)
    sections = [
        _section("overview", {"intro": "Hi", "history": "Long"}),
        _section("cuisine", {"dim_sum": _scoped("Dim sum", "locality")}),
        _section("tips", ["carry cash"]),
    ]

    cache.persist_sync(sections, ["overview", "cuisine", "tips"], SHENZHEN)
    restored = cache.restore_sync(SHENZHEN)

    assert restored == sections


def test_snapshot_file_layout(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)

    cache.persist_sync([_section("overview", {"intro": "Hi"})], ["overview"], SHENZHEN)

    path = tmp_path / "contexts" / "locality" / "cn.guangdong.shenzhen.json"
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["geoKey"] == "cn.guangdong.shenzhen"
    assert raw["level"] == "locality"
    assert raw["sectionOrder"] == ["overview"]
    assert raw["sections"][0]["sectionType"] == "overview"
    assert raw["locationSummary"]["resolvedNamesByLevel"]["locality"] == "Shenzhen"
    assert (tmp_path / "last_context.json").exists()


def test_empty_sections_are_not_persisted(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path)

    cache.persist_sync([], [], SHENZHEN)

    assert not tmp_path.exists() or not any(tmp_path.iterdir())


def test_unresolvable_location_is_not_persisted(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path)

    cache.persist_sync([_section("overview", {"intro": "Hi"})], ["overview"], LocationContext(locality="Nowhere"))

    assert cache.restore_last_context_sync() is None


def test_country_scoped_items_are_shared_with_other_cities(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)
    sections = [
        _section(
            "cuisine",
            {
                "chinese": _scoped("Chinese cuisine", "country"),
                "cantonese": _scoped("Cantonese cuisine", "locality"),
            },
        )
    ]

    cache.persist_sync(sections, ["cuisine"], SHENZHEN)
    restored = cache.restore_sync(SHANGHAI)

    assert [section.section_type for section in restored] == ["cuisine"]
    assert list(restored[0].content) == ["chinese"]


def test_items_scoped_below_known_level_stay_out_of_context_files(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)
    guangdong = LocationContext(country="China", admin_area="Guangdong")
    guangzhou = LocationContext(country="China", admin_area="Guangdong", locality="Guangzhou")
    sections = [
        _section("cuisine", {"sz": _scoped("Shenzhen dim sum", "locality")}),
        _section("notes", {"province": _scoped("Cantonese", "admin_area"), "loose": {"name": "unscoped"}}),
    ]

    cache.persist_sync(sections, ["cuisine", "notes"], guangdong)

    assert [section.section_type for section in cache.restore_sync(guangzhou)] == ["notes"]
    assert list(cache.restore_sync(guangzhou)[0].content) == ["province", "loose"]
    last = cache.restore_last_context_sync()
    assert last is not None
    assert [section.section_type for section in last.sections] == ["cuisine", "notes"]


def test_shared_snapshots_accumulate_across_cities(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)

    cache.persist_sync([_section("cuisine", {"chinese": _scoped("Chinese", "country")})], ["cuisine"], SHENZHEN)
    cache.persist_sync([_section("visas", {"visa": _scoped("Visa rules", "country")})], ["visas"], SHANGHAI)

    snapshot = CachedSnapshot.model_validate_json(
        cache.context_path(GeoLevel.COUNTRY, "cn").read_text(encoding="utf-8")
    )
    assert snapshot.section_order == ["cuisine", "visas"]


def test_restore_miss_returns_empty(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path)

    assert cache.restore_sync(SHENZHEN) == []
    assert cache.restore_last_context_sync() is None


def test_corrupt_file_is_a_miss_and_is_deleted(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    cache = CatalogueFileCache(tmp_path)
    path = cache.context_path(GeoLevel.LOCALITY, "cn.guangdong.shenzhen")
    path.parent.mkdir(parents=True)
    path.write_text("{ definitely not json", encoding="utf-8")

    assert cache.restore_sync(SHENZHEN) == []
    assert not path.exists()
    assert "Discarding corrupt catalogue cache" in caplog.text


def test_restore_last_context(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)
    cache.persist_sync(
        [_section("overview", {"intro": "Hi"}), _section("cuisine", {"c": 1})],
        ["cuisine", "overview"],
        SHENZHEN,
    )

    restored = cache.restore_last_context_sync()

    assert restored is not None
    assert [section.section_type for section in restored.sections] == ["cuisine", "overview"]
    location = restored.location_summary.to_location()
    assert location.locality == "Shenzhen"
    assert location.country_code == "CN"
    assert restored.snapshot.saved_at == _dt()


def test_clear_expired_removes_old_snapshots(tmp_path: Path) -> None:
    now = _dt()
    old_cache = CatalogueFileCache(tmp_path, clock=lambda: now - timedelta(days=30))
    old_cache.persist_sync([_section("overview", {"intro": "old"})], ["overview"], SHANGHAI)
    fresh_cache = CatalogueFileCache(tmp_path, clock=lambda: now, max_age=timedelta(days=14))
    fresh_cache.persist_sync([_section("overview", {"intro": "new"})], ["overview"], SHENZHEN)

    removed = fresh_cache.clear_expired_sync()

    assert removed == 1
    assert fresh_cache.restore_sync(SHANGHAI) == []
    assert fresh_cache.restore_sync(SHENZHEN) != []


def test_write_failure_raises_persistence_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocked"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    cache = CatalogueFileCache(blocker)

    with pytest.raises(CataloguePersistenceError):
        cache.persist_sync([_section("overview", {"intro": "Hi"})], ["overview"], SHENZHEN)


@pytest.mark.asyncio
async def test_async_methods_delegate_to_worker_thread(tmp_path: Path) -> None:
    cache = CatalogueFileCache(tmp_path, clock=_dt)

    await cache.persist([_section("overview", {"intro": "Hi"})], ["overview"], SHENZHEN)

    assert [section.section_type for section in await cache.restore(SHENZHEN)] == ["overview"]
    assert await cache.restore_last_context() is not None
    assert await cache.clear_expired() == 0


def test_merge_content_prefers_override() -> None:
    assert merge_content({"a": 1, "b": 1}, {"b": 2}) == {"a": 1, "b": 2}
    assert merge_content({"a": 1}, ["list"]) == ["list"]


def test_split_shared_items_groups_by_scope() -> None:
    sections = [
        _section(
            "cuisine",
            {
                "_display_title": "Eat",
                "chinese": _scoped("Chinese", "country"),
                "cantonese": _scoped("Cantonese", "admin_area"),
                "local": _scoped("Local", "locality"),
                "unscoped": {"name": "?"},
            },
        )
    ]

    grouped = split_shared_items(sections, GeoLevel.LOCALITY)

    assert set(grouped) == {GeoLevel.COUNTRY, GeoLevel.ADMIN_AREA}
    assert list(grouped[GeoLevel.COUNTRY][0].content) == ["chinese"]
    assert list(grouped[GeoLevel.ADMIN_AREA][0].content) == ["cantonese"]


def test_drop_more_specific_items_keeps_unscoped_and_non_map() -> None:
    sections = [
        _section("cuisine", {"_display_title": "Eat", "sz": _scoped("Local", "sub_locality")}),
        _section("notes", {"n": {"name": "unscoped"}, "c": _scoped("Country", "country")}),
        _section("tips", ["carry cash"]),
    ]

    kept = drop_more_specific_items(sections, GeoLevel.LOCALITY)

    assert [section.section_type for section in kept] == ["notes", "tips"]
    assert kept[0] is sections[1]
