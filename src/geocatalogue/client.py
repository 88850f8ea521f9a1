"""High-level async client that streams catalogue content for a location."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import timedelta
from typing import Any

import aiohttp

from geocatalogue._transport import EventSource, HttpEventSource
from geocatalogue.cache.persistence import CatalogueFileCache
from geocatalogue.config import CatalogueConfig
from geocatalogue.exceptions import CatalogueError
from geocatalogue.ingestion.router import EventRouter, RouterStats
from geocatalogue.manager import CatalogueManager
from geocatalogue.models.location import LocationContext, LocationSummary
from geocatalogue.stream.decoder import aiter_events

_logger = logging.getLogger(__name__)

DEFAULT_STREAM_PATH = "/v1/catalogue"


class CatalogueClient:
    """Async client for the catalogue content service.

    Usage::

        async with CatalogueClient(config) as client:
            await client.restore()
            stats = await client.stream_location(location)
            sections = client.manager.ordered_sections()
    """

    def __init__(
        self,
        config: CatalogueConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        manager: CatalogueManager | None = None,
        router: EventRouter | None = None,
        source: EventSource | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._source = source
        if manager is None:
            manager = CatalogueManager(
                persistence=CatalogueFileCache(
                    config.cache_dir,
                    max_age=timedelta(days=config.cache_max_age_days),
                ),
            )
        self._manager = manager
        self._router = router if router is not None else EventRouter(catalogue=manager)

    @property
    def manager(self) -> CatalogueManager:
        return self._manager

    @property
    def router(self) -> EventRouter:
        return self._router

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> CatalogueClient:
        if self._source is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            self._source = HttpEventSource(self._config, self._http_session)
        await self._manager.clear_expired_cache()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self._manager.wait_for_pending_writes()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
            self._source = None

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def restore(self, location: LocationContext | None = None) -> int:
        """Restore cached content (last active context when *location* is None)."""
        return await self._manager.restore_from_cache(location)

    async def stream_location(
        self,
        location: LocationContext,
        *,
        path: str = DEFAULT_STREAM_PATH,
        payload: Mapping[str, Any] | None = None,
    ) -> RouterStats:
        """Fetch and apply the catalogue for *location*.

        Prunes against the previous location, records *location*, fills gaps
        from the cache, then routes every streamed event in order. The state
        is persisted only if the stream ends without a transport error.
        """
        if self._source is None:
            raise CatalogueError("Client not initialized. Use 'async with CatalogueClient(...) as client:'")

        report = self._manager.change_location(location)
        _logger.debug("Location changed stale=%s cleared=%s", report.stale_levels, report.cleared)
        await self._manager.restore_from_cache(location)

        body: dict[str, Any] = {
            "location": LocationSummary.from_location(location).model_dump(by_alias=True),
        }
        if payload:
            body.update(payload)

        self._router.reset()
        stats = await self._router.consume(aiter_events(self._source.stream(path, body)))
        _logger.debug(
            "Stream settled dispatched=%d skipped=%d ignored=%d",
            stats.dispatched,
            stats.skipped,
            stats.ignored,
        )

        if self._config.persist_enabled:
            self._manager.persist_current_state(location)
        return stats
