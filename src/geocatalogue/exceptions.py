"""Custom exception hierarchy for geocatalogue."""

from __future__ import annotations


class CatalogueError(Exception):
    """Base exception for all geocatalogue errors."""


class CatalogueConfigError(CatalogueError):
    """Invalid or missing configuration."""


class CatalogueTransportError(CatalogueError):
    """Stream transport failure (network, non-200 status)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        path: str = "",
    ) -> None:
        self.status_code = status_code
        self.path = path
        super().__init__(message)


class CataloguePersistenceError(CatalogueError):
    """Reading or writing a cached catalogue snapshot failed.

    Never escapes the manager: persistence failures degrade to a cache miss
    or a skipped write.
    """


class EventPayloadError(CatalogueError):
    """A single push event carried an unusable payload."""

    def __init__(self, message: str, *, event_name: str | None = None) -> None:
        self.event_name = event_name
        super().__init__(message)
