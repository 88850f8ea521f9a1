"""Push-event router.

Dispatches decoded :class:`StreamEvent` records to typed handlers by event
name. Each handler decodes and validates its own payload; a bad payload
skips that one event and never stops the stream.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError

from geocatalogue.exceptions import EventPayloadError
from geocatalogue.ingestion.catalogue import build_catalogue_updates
from geocatalogue.models.events import (
    CATALOGUE_EVENT_NAMES,
    ContentDelta,
    EventType,
    Finish,
    InterfaceDirective,
    MapUpdate,
    Notification,
    StreamEvent,
)

_logger = logging.getLogger(__name__)

_PREVIEW_LIMIT = 200


class CatalogueSink(Protocol):
    """Receiver of catalogue updates (normally the catalogue manager)."""

    def handle_catalogue_update(self, section_type: str, display_title: str, content: Any) -> None: ...


@dataclass
class RouterStats:
    dispatched: int = 0
    skipped: int = 0
    ignored: int = 0


def _preview(data: str) -> str:
    if len(data) > _PREVIEW_LIMIT:
        return f"{data[:_PREVIEW_LIMIT]}…<truncated>"
    return data


def _decode_json(event: StreamEvent) -> Any:
    return json.loads(event.data)


class EventRouter:
    """Routes events strictly in the order they are dispatched.

    ``dispatch`` is synchronous: an event is fully handled, JSON decode
    included, before the next one is looked at.
    """

    def __init__(
        self,
        *,
        catalogue: CatalogueSink | None = None,
        on_notification: Callable[[Notification], None] | None = None,
        on_content: Callable[[ContentDelta, str], None] | None = None,
        on_finish: Callable[[Finish], None] | None = None,
        on_map: Callable[[MapUpdate], None] | None = None,
        on_interface: Callable[[InterfaceDirective], None] | None = None,
    ) -> None:
        self._catalogue = catalogue
        self._on_notification = on_notification
        self._on_content = on_content
        self._on_finish = on_finish
        self._on_map = on_map
        self._on_interface = on_interface
        self._text_parts: list[str] = []
        self.stats = RouterStats()
        self._handlers: dict[str, Callable[[StreamEvent], None]] = {
            EventType.NOTIFICATION: self._handle_notification,
            EventType.CONTENT: self._handle_content,
            EventType.FINISH: self._handle_finish,
            EventType.MAP: self._handle_map,
            EventType.INTERFACE: self._handle_interface,
        }
        for name in CATALOGUE_EVENT_NAMES:
            self._handlers[name] = self._handle_catalogue

    @property
    def streamed_text(self) -> str:
        """Text accumulated from ``content`` deltas since the last finish."""
        return "".join(self._text_parts)

    def reset(self) -> None:
        self._text_parts.clear()
        self.stats = RouterStats()

    def dispatch(self, event: StreamEvent) -> bool:
        """Handle one event. Returns ``False`` if it was ignored or skipped."""
        name = (event.event_name or "").strip().lower()
        handler = self._handlers.get(name)
        if handler is None:
            _logger.debug("Ignoring unsupported event type=%r id=%s", event.event_name, event.id)
            self.stats.ignored += 1
            return False

        try:
            handler(event)
        except (json.JSONDecodeError, ValidationError, EventPayloadError) as exc:
            _logger.warning(
                "Skipping malformed %s event id=%s: %s data=%s",
                name,
                event.id,
                exc,
                _preview(event.data),
            )
            self.stats.skipped += 1
            return False

        self.stats.dispatched += 1
        return True

    async def consume(self, events: AsyncIterable[StreamEvent]) -> RouterStats:
        """Dispatch every event from *events* in arrival order."""
        async for event in events:
            self.dispatch(event)
        return self.stats

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _handle_notification(self, event: StreamEvent) -> None:
        notification = Notification.model_validate(_decode_json(event))
        _logger.debug("Notification type=%s message=%s", notification.type, notification.message)
        if self._on_notification is not None:
            self._on_notification(notification)

    def _handle_content(self, event: StreamEvent) -> None:
        delta = ContentDelta.model_validate(_decode_json(event))
        self._text_parts.append(delta.content)
        if self._on_content is not None:
            self._on_content(delta, self.streamed_text)

    def _handle_finish(self, event: StreamEvent) -> None:
        raw: Any = None
        if event.data.strip():
            try:
                raw = json.loads(event.data)
            except json.JSONDecodeError:
                raw = event.data
        finish = Finish(text=self.streamed_text, raw=raw)
        self._text_parts.clear()
        _logger.debug("Finish received text_length=%d", len(finish.text))
        if self._on_finish is not None:
            self._on_finish(finish)

    def _handle_map(self, event: StreamEvent) -> None:
        update = MapUpdate.model_validate(_decode_json(event))
        _logger.debug("Map update with %d features", len(update.features))
        if self._on_map is not None:
            self._on_map(update)

    def _handle_interface(self, event: StreamEvent) -> None:
        directive = InterfaceDirective.model_validate(_decode_json(event))
        _logger.debug("Interface directive message=%s", directive.message)
        if self._on_interface is not None:
            self._on_interface(directive)

    def _handle_catalogue(self, event: StreamEvent) -> None:
        updates = build_catalogue_updates(_decode_json(event))
        if self._catalogue is None:
            _logger.debug("No catalogue sink; dropping %d section updates", len(updates))
            return
        for update in updates:
            self._catalogue.handle_catalogue_update(update.section_type, update.display_title, update.content)
        _logger.debug("Applied catalogue sections=%s", [update.section_type for update in updates])
