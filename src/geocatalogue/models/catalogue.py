"""Catalogue section models: live sections and their persisted projections."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from geocatalogue.models.location import GeoLevel, LocationSummary


def _utcnow() -> datetime:
    return datetime.now(UTC)


def derive_display_title(section_type: str) -> str:
    """``"street_food"`` -> ``"Street Food"``."""
    words = section_type.replace("-", " ").replace("_", " ").split()
    return " ".join(word[:1].upper() + word[1:] for word in words) or section_type


class CatalogueSection(BaseModel):
    """A live catalogue section.

    ``content`` is usually a map of keyed items, each optionally carrying a
    ``_metadata`` dict. The store mutates ``content`` in place; callers only
    ever receive deep copies.
    """

    model_config = ConfigDict(extra="forbid")

    section_type: str
    display_title: str
    content: Any = None


class _CacheModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )


class CachedSection(_CacheModel):
    """Serialized ``{sectionType, displayTitle, content}``."""

    section_type: str
    display_title: str
    content: Any = None

    @classmethod
    def from_section(cls, section: CatalogueSection) -> CachedSection:
        return cls(
            section_type=section.section_type,
            display_title=section.display_title,
            content=section.content,
        )


class CachedSnapshot(_CacheModel):
    """A persisted catalogue state for one geographic key."""

    geo_key: str
    level: GeoLevel
    saved_at: datetime = Field(default_factory=_utcnow)
    section_order: list[str] = Field(default_factory=list)
    sections: list[CachedSection] = Field(default_factory=list)
    location_summary: LocationSummary = Field(default_factory=LocationSummary)

    @field_validator("level", mode="before")
    @classmethod
    def _parse_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            level = GeoLevel.from_identifier(value)
            if level is None:
                raise ValueError(f"unknown geo level {value!r}")
            return level
        return value

    @field_validator("saved_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_serializer("level")
    def _serialize_level(self, level: GeoLevel) -> str:
        return level.identifier

    def ordered_sections(self) -> list[CachedSection]:
        """Sections in ``section_order``, then any not listed there."""
        by_type = {section.section_type: section for section in self.sections}
        result = [by_type.pop(section_type) for section_type in self.section_order if section_type in by_type]
        result.extend(by_type.values())
        return result
