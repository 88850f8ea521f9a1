"""Catalogue payload ingestion.

Translates the JSON carried by catalogue-update events into
:class:`CatalogueUpdate` objects. Two payload shapes are accepted:

- keyed: ``{"<sectionType>": {"<itemKey>": {...}, ...}, ...}``
- envelope: ``{"section_type": ..., "display_title": ..., "content": ...}``
  (or a list of such envelopes)
"""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from geocatalogue.exceptions import EventPayloadError
from geocatalogue.models.catalogue import derive_display_title
from geocatalogue.models.events import CatalogueUpdate
from geocatalogue.models.value import as_str, is_reserved_key

#: Optional section-root key carrying the tab title in the keyed shape.
DISPLAY_TITLE_KEY = "_display_title"


class _CatalogueEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    section_type: str = Field(validation_alias=AliasChoices("section_type", "sectionType"))
    display_title: str | None = Field(default=None, validation_alias=AliasChoices("display_title", "displayTitle"))
    content: Any = Field(...)

    @field_validator("section_type")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        section_type = value.strip()
        if not section_type:
            raise ValueError("section_type must be non-empty")
        return section_type


def _is_envelope(payload: dict[str, Any]) -> bool:
    return "content" in payload and ("section_type" in payload or "sectionType" in payload)


def _from_envelope(payload: Any) -> CatalogueUpdate:
    try:
        envelope = _CatalogueEnvelope.model_validate(payload)
    except ValidationError as exc:
        raise EventPayloadError(f"Invalid catalogue envelope: {exc}") from exc
    return CatalogueUpdate(
        section_type=envelope.section_type,
        display_title=envelope.display_title or derive_display_title(envelope.section_type),
        content=envelope.content,
    )


def _from_keyed(payload: dict[str, Any]) -> list[CatalogueUpdate]:
    updates: list[CatalogueUpdate] = []
    for section_type, content in payload.items():
        if is_reserved_key(section_type):
            continue
        if not section_type.strip():
            raise EventPayloadError("Catalogue payload has an empty section type")
        title = derive_display_title(section_type)
        if isinstance(content, dict):
            title = as_str(content.get(DISPLAY_TITLE_KEY)) or title
        updates.append(CatalogueUpdate(section_type=section_type, display_title=title, content=content))
    return updates


def build_catalogue_updates(payload: Any) -> list[CatalogueUpdate]:
    """Validate a decoded catalogue payload and split it per section.

    The whole payload is validated before anything is returned, so a caller
    applying the result never applies half an event.

    Raises
    ------
    EventPayloadError
        If the payload has neither accepted shape.
    """
    if isinstance(payload, list):
        return [_from_envelope(item) for item in payload]
    if not isinstance(payload, dict):
        raise EventPayloadError(f"Catalogue payload must be an object, got {type(payload).__name__}")
    if _is_envelope(payload):
        return [_from_envelope(payload)]
    updates = _from_keyed(payload)
    if not updates:
        raise EventPayloadError("Catalogue payload contains no sections")
    return updates
