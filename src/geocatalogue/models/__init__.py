"""Typed models for catalogue content, locations and push events."""

from geocatalogue.models.catalogue import CachedSection, CachedSnapshot, CatalogueSection, derive_display_title
from geocatalogue.models.events import (
    CatalogueUpdate,
    ContentDelta,
    EventType,
    Finish,
    InterfaceDirective,
    MapUpdate,
    Notification,
    StreamEvent,
)
from geocatalogue.models.location import GeoLevel, LocationContext, LocationSummary
from geocatalogue.models.value import JsonMap, JsonValue, ValueKind

__all__ = [
    "CachedSection",
    "CachedSnapshot",
    "CatalogueSection",
    "CatalogueUpdate",
    "ContentDelta",
    "EventType",
    "Finish",
    "GeoLevel",
    "InterfaceDirective",
    "JsonMap",
    "JsonValue",
    "LocationContext",
    "LocationSummary",
    "MapUpdate",
    "Notification",
    "StreamEvent",
    "ValueKind",
    "derive_display_title",
]
