"""Geographic hierarchy and location context models."""

from __future__ import annotations

import enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from geocatalogue.models.value import as_number


class GeoLevel(enum.IntEnum):
    """Geographic scopes ordered from most general to most specific."""

    COUNTRY = 0
    ADMIN_AREA = 1
    SUB_ADMIN_AREA = 2
    LOCALITY = 3
    SUB_LOCALITY = 4

    @property
    def identifier(self) -> str:
        """Wire identifier (``"admin_area"``, ``"sub_locality"``, ...)."""
        return self.name.lower()

    @classmethod
    def from_identifier(cls, value: Any) -> GeoLevel | None:
        """Parse a wire identifier; ``None`` for anything unrecognized."""
        if not isinstance(value, str):
            return None
        # camelCase spellings (adminArea, subLocality) fold onto the lowercase aliases.
        key = _IDENTIFIER_ALIASES.get(value.strip().replace("-", "_").lower())
        return cls[key] if key is not None else None


_IDENTIFIER_ALIASES: dict[str, str] = {
    "country": "COUNTRY",
    "admin_area": "ADMIN_AREA",
    "adminarea": "ADMIN_AREA",
    "sub_admin_area": "SUB_ADMIN_AREA",
    "subadminarea": "SUB_ADMIN_AREA",
    "locality": "LOCALITY",
    "sub_locality": "SUB_LOCALITY",
    "sublocality": "SUB_LOCALITY",
}


class LocationContext(BaseModel):
    """A coordinate plus the resolved place names at each :class:`GeoLevel`.

    Any name may be ``None`` when the geocoder could not resolve it.
    Blank strings are treated as unresolved.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
    )

    latitude: float | None = Field(default=None, validation_alias=AliasChoices("latitude", "lat"))
    longitude: float | None = Field(default=None, validation_alias=AliasChoices("longitude", "lon", "lng"))
    country_code: str | None = Field(default=None, validation_alias=AliasChoices("country_code", "countryCode"))
    country: str | None = None
    admin_area: str | None = Field(default=None, validation_alias=AliasChoices("admin_area", "adminArea"))
    sub_admin_area: str | None = Field(
        default=None,
        validation_alias=AliasChoices("sub_admin_area", "subAdminArea"),
    )
    locality: str | None = None
    sub_locality: str | None = Field(default=None, validation_alias=AliasChoices("sub_locality", "subLocality"))
    timezone: str | None = None
    is_from_device: bool = Field(default=False, validation_alias=AliasChoices("is_from_device", "isFromDevice"))

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _coerce_coordinate(cls, value: Any) -> float | None:
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return None
        return as_number(value)

    @field_validator(
        "country_code",
        "country",
        "admin_area",
        "sub_admin_area",
        "locality",
        "sub_locality",
        "timezone",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    def name_at(self, level: GeoLevel) -> str | None:
        """Resolved name at *level* (country prefers the ISO code)."""
        if level == GeoLevel.COUNTRY:
            return self.country_code or self.country
        return getattr(self, level.identifier)

    def resolved_names(self) -> dict[GeoLevel, str]:
        names: dict[GeoLevel, str] = {}
        for level in GeoLevel:
            name = self.name_at(level)
            if name is not None:
                names[level] = name
        return names


class LocationSummary(BaseModel):
    """Persisted projection of a :class:`LocationContext`."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    lat: float | None = None
    lon: float | None = None
    resolved_names_by_level: dict[str, str] = Field(default_factory=dict)
    country_code: str | None = None
    country: str | None = None
    timezone: str | None = None

    @classmethod
    def from_location(cls, location: LocationContext) -> LocationSummary:
        names = {level.identifier: location.name_at(level) for level in GeoLevel if level != GeoLevel.COUNTRY}
        if location.country is not None:
            names[GeoLevel.COUNTRY.identifier] = location.country
        elif location.country_code is not None:
            names[GeoLevel.COUNTRY.identifier] = location.country_code
        return cls(
            lat=location.latitude,
            lon=location.longitude,
            resolved_names_by_level={key: value for key, value in names.items() if value is not None},
            country_code=location.country_code,
            country=location.country,
            timezone=location.timezone,
        )

    def to_location(self) -> LocationContext:
        """Rebuild a location for key derivation (no geocoding involved)."""
        names = self.resolved_names_by_level
        country = self.country
        if country is None and self.country_code is None:
            country = names.get(GeoLevel.COUNTRY.identifier)
        return LocationContext(
            latitude=self.lat,
            longitude=self.lon,
            country_code=self.country_code,
            country=country,
            admin_area=names.get(GeoLevel.ADMIN_AREA.identifier),
            sub_admin_area=names.get(GeoLevel.SUB_ADMIN_AREA.identifier),
            locality=names.get(GeoLevel.LOCALITY.identifier),
            sub_locality=names.get(GeoLevel.SUB_LOCALITY.identifier),
            timezone=self.timezone,
        )
