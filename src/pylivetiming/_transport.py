"""HTTP transport for the timing API."""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import aiohttp
from yarl import URL

from pylivetiming._constants import NO_RESULTS_DETAIL, USER_AGENT
from pylivetiming.config import LiveTimingConfig
from pylivetiming.exceptions import TransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the fetcher.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, endpoint: str, query: str = "") -> Any:
        ...


class HttpTransport:
    """GET requests against the timing API, decoded as JSON.

    *query* is passed through already percent-encoded so that filter
    operators such as ``date%3E...`` reach the server untouched.
    """

    def __init__(self, config: LiveTimingConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def build_url(self, endpoint: str, query: str = "") -> URL:
        url = f"{self._config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        if query:
            url = f"{url}?{query}"
        return URL(url, encoded=True)

    async def get_json(self, endpoint: str, query: str = "") -> Any:
        url = self.build_url(endpoint, query)
        headers = {"accept": "application/json", "user-agent": USER_AGENT}

        _logger.debug("GET %s", url)

        try:
            async with self._http.get(url, headers=headers, timeout=self._timeout) as resp:
                raw = await resp.read()
                status = resp.status
        except aiohttp.ClientError as exc:
            raise TransportError(f"Request to {endpoint} failed: {exc}", url=str(url)) from exc
        except TimeoutError as exc:
            raise TransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                url=str(url),
            ) from exc

        text = raw.decode("utf-8", errors="replace")
        try:
            body = json.loads(raw.decode("utf-8")) if text.strip() else None
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            if status >= 300:
                raise TransportError(
                    f"HTTP {status} from {endpoint}: {text[:200]}",
                    status_code=status,
                    url=str(url),
                ) from exc
            raise TransportError(f"Invalid JSON from {endpoint}: {text[:200]}", url=str(url)) from exc

        # A filter that matches nothing is reported as 404 with a detail body.
        if status == 404 and isinstance(body, dict) and body.get("detail") == NO_RESULTS_DETAIL:
            return []

        if status >= 300:
            raise TransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                url=str(url),
            )

        return body
