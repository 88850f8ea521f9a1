"""Client configuration for geocatalogue."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from geocatalogue.exceptions import CatalogueConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, value: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(value)
    except ValueError as exc:
        raise CatalogueConfigError(f"{env_key} must be numeric (got {value!r})") from exc


def _default_cache_dir() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / "geocatalogue"


@dataclasses.dataclass(frozen=True)
class CatalogueConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Content service base URL. Stream paths are appended to it.
    api_key : str or None
        Bearer token sent with stream requests, if the service requires one.
    cache_dir : Path
        Root directory of the on-disk catalogue cache.
    cache_max_age_days : int
        Cached location snapshots older than this are removed by
        ``clear_expired``.
    request_timeout : float
        Total timeout in seconds for a single stream request. ``0``
        disables the timeout (streams may be long-lived).
    persist_enabled : bool
        Persist the catalogue after each location's stream settles.
    """

    base_url: str = "http://localhost:8000"
    api_key: str | None = None
    cache_dir: Path = dataclasses.field(default_factory=_default_cache_dir)
    cache_max_age_days: int = 14
    request_timeout: float = 0.0
    persist_enabled: bool = True

    @classmethod
    def from_env(cls, **overrides: Any) -> CatalogueConfig:
        """Create configuration from environment variables.

        Reads ``GEOCATALOGUE_*`` variables. Explicit keyword arguments
        override environment values.

        Raises
        ------
        CatalogueConfigError
            If a numeric variable cannot be parsed.
        """
        env = os.environ
        config_kwargs: dict[str, Any] = {}

        _ENV_CONFIG_MAP = {
            "GEOCATALOGUE_BASE_URL": "base_url",
            "GEOCATALOGUE_API_KEY": "api_key",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        cache_dir_env = env.get("GEOCATALOGUE_CACHE_DIR")
        if cache_dir_env is not None and "cache_dir" not in overrides:
            config_kwargs["cache_dir"] = Path(cache_dir_env).expanduser()

        max_age_env = env.get("GEOCATALOGUE_CACHE_MAX_AGE_DAYS")
        if max_age_env is not None and "cache_max_age_days" not in overrides:
            config_kwargs["cache_max_age_days"] = _env_number("GEOCATALOGUE_CACHE_MAX_AGE_DAYS", max_age_env, int)

        timeout_env = env.get("GEOCATALOGUE_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            config_kwargs["request_timeout"] = _env_number("GEOCATALOGUE_REQUEST_TIMEOUT", timeout_env, float)

        if "persist_enabled" not in overrides:
            config_kwargs["persist_enabled"] = _env_bool(env.get("GEOCATALOGUE_PERSIST_ENABLED"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
