"""Decoded push events and the typed payloads routed from them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


@dataclass(frozen=True, slots=True)
class StreamEvent:
    """One record of the push-event stream, ``data`` still undecoded."""

    event_name: str | None
    data: str
    id: str | None = None


class EventType(StrEnum):
    NOTIFICATION = "notification"
    CONTENT = "content"
    FINISH = "finish"
    MAP = "map"
    INTERFACE = "interface"
    CATALOGUE = "catalogue"


#: Event names that carry catalogue updates.
CATALOGUE_EVENT_NAMES: frozenset[str] = frozenset({"catalogue", "catalog", "catalogue_update"})

SHOW_INFO_SHEET = "show info sheet"


class _Payload(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class Notification(_Payload):
    """Progress notification shown in a transient banner."""

    message: str
    type: str | None = None


class ContentDelta(_Payload):
    """A cumulative text delta of the streamed answer."""

    content: str
    is_streaming: bool = Field(default=True, validation_alias=AliasChoices("is_streaming", "isStreaming"))


class Finish(_Payload):
    """End of the streamed answer. ``text`` is the accumulated content."""

    text: str = ""
    raw: Any = None


class MapUpdate(_Payload):
    """Map features to display, from ``{"features": [...]}`` or a FeatureCollection."""

    features: list[dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_list(cls, values: Any) -> Any:
        if isinstance(values, list):
            return {"features": values}
        return values


class InterfaceDirective(_Payload):
    """UI directive such as ``"show info sheet"``."""

    message: str

    @property
    def shows_info_sheet(self) -> bool:
        return self.message.strip().lower() == SHOW_INFO_SHEET


@dataclass(frozen=True, slots=True)
class CatalogueUpdate:
    """One section's worth of a catalogue-update event."""

    section_type: str
    display_title: str
    content: Any
