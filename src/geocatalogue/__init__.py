"""geocatalogue - Streamed, location-scoped travel catalogue with geo-aware caching."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("geocatalogue")
except PackageNotFoundError:
    __version__ = "0+local"
from geocatalogue.cache.persistence import CatalogueFileCache, CataloguePersisting, RestoredContext
from geocatalogue.client import CatalogueClient
from geocatalogue.config import CatalogueConfig
from geocatalogue.exceptions import (
    CatalogueConfigError,
    CatalogueError,
    CataloguePersistenceError,
    CatalogueTransportError,
    EventPayloadError,
)
from geocatalogue.ingestion.router import EventRouter, RouterStats
from geocatalogue.manager import CatalogueManager
from geocatalogue.models import (
    CachedSection,
    CachedSnapshot,
    CatalogueSection,
    CatalogueUpdate,
    ContentDelta,
    Finish,
    GeoLevel,
    InterfaceDirective,
    LocationContext,
    LocationSummary,
    MapUpdate,
    Notification,
    StreamEvent,
)
from geocatalogue.state.pruning import PruneReport, compute_stale_levels
from geocatalogue.state.store import CatalogueStore
from geocatalogue.stream.decoder import aiter_events, iter_events

__all__ = [
    "__version__",
    "CachedSection",
    "CachedSnapshot",
    "CatalogueClient",
    "CatalogueConfig",
    "CatalogueConfigError",
    "CatalogueError",
    "CatalogueFileCache",
    "CatalogueManager",
    "CataloguePersistenceError",
    "CataloguePersisting",
    "CatalogueSection",
    "CatalogueStore",
    "CatalogueTransportError",
    "CatalogueUpdate",
    "ContentDelta",
    "EventPayloadError",
    "EventRouter",
    "Finish",
    "GeoLevel",
    "InterfaceDirective",
    "LocationContext",
    "LocationSummary",
    "MapUpdate",
    "Notification",
    "PruneReport",
    "RestoredContext",
    "RouterStats",
    "StreamEvent",
    "aiter_events",
    "compute_stale_levels",
    "iter_events",
]
