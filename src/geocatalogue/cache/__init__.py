"""Durable catalogue snapshots keyed by location."""

from geocatalogue.cache.persistence import CatalogueFileCache, CataloguePersisting, RestoredContext

__all__ = ["CatalogueFileCache", "CataloguePersisting", "RestoredContext"]
