"""HTTP push-event transport."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator, Mapping
from typing import Any, Protocol

import aiohttp

from geocatalogue.config import CatalogueConfig
from geocatalogue.exceptions import CatalogueTransportError

_logger = logging.getLogger(__name__)

USER_AGENT = "geocatalogue/0.1"


class EventSource(Protocol):
    """Structural stream-source interface.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`HttpEventSource`) concrete.
    """

    def stream(self, path: str, payload: Mapping[str, Any] | None = None) -> AsyncIterator[bytes]: ...


class HttpEventSource:
    """POSTs a JSON request and yields the raw ``text/event-stream`` body."""

    def __init__(self, config: CatalogueConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "text/event-stream",
            "cache-control": "no-cache",
            "content-type": "application/json; charset=UTF-8",
            "user-agent": USER_AGENT,
        }
        if self._config.api_key:
            headers["authorization"] = f"Bearer {self._config.api_key}"
        return headers

    async def stream(self, path: str, payload: Mapping[str, Any] | None = None) -> AsyncIterator[bytes]:
        """Yield body chunks as they arrive.

        Raises
        ------
        CatalogueTransportError
            On a non-200 response or any client/network failure, including
            one that happens mid-stream.
        """
        url = f"{self._config.base_url.rstrip('/')}{path}"
        body = json.dumps(dict(payload or {}), separators=(",", ":"))
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout or None)

        _logger.debug("POST %s (stream)", url)

        try:
            async with self._http.post(url, data=body, headers=self._headers(), timeout=timeout) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise CatalogueTransportError(
                        f"HTTP {resp.status} from {path}: {text[:200]}",
                        status_code=resp.status,
                        path=path,
                    )
                _logger.debug("Stream connected status=%s", resp.status)
                async for chunk in resp.content.iter_any():
                    yield chunk
        except CatalogueTransportError:
            raise
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise CatalogueTransportError(f"Stream from {path} failed: {exc}", path=path) from exc

        _logger.debug("Stream completed %s", path)
