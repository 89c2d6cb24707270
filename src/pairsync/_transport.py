"""HTTP transport for the bot's primary API."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pairsync._constants import TRANSIENT_STATUS_CODES, USER_AGENT
from pairsync._redact import redact_for_log
from pairsync.config import PairsyncConfig
from pairsync.exceptions import PrimaryUnavailableError

_logger = logging.getLogger(__name__)


class PrimaryTransport(Protocol):
    """Structural transport interface used by entity sources.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        ...

    async def post_json(self, endpoint: str, payload: Mapping[str, Any] | None = None) -> Any:
        ...


class HttpTransport:
    """JSON-over-HTTP transport with a bounded per-request timeout.

    Every failure (connection error, timeout, non-2xx status, invalid
    JSON) surfaces as :class:`PrimaryUnavailableError`; ``transient`` is
    set for the ones worth retrying.
    """

    def __init__(
        self,
        config: PairsyncConfig,
        http_session: aiohttp.ClientSession,
    ) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    async def get_json(self, endpoint: str, params: Mapping[str, Any] | None = None) -> Any:
        return await self._request("GET", endpoint, params=params)

    async def post_json(self, endpoint: str, payload: Mapping[str, Any] | None = None) -> Any:
        return await self._request("POST", endpoint, payload=payload)

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, Any] | None = None,
        payload: Mapping[str, Any] | None = None,
    ) -> Any:
        url = f"{self._config.api_url}{endpoint}"
        headers = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
        }
        query = {key: str(value) for key, value in (params or {}).items() if value is not None}

        _logger.debug("%s %s params=%s", method, url, redact_for_log(query))

        try:
            async with self._http.request(
                method,
                url,
                params=query or None,
                json=dict(payload) if payload is not None else None,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                text = await resp.text()
                if not 200 <= resp.status < 300:
                    raise PrimaryUnavailableError(
                        f"HTTP {resp.status} from {endpoint}: {text[:200]}",
                        status_code=resp.status,
                        endpoint=endpoint,
                        transient=resp.status in TRANSIENT_STATUS_CODES,
                    )
        except PrimaryUnavailableError:
            raise
        except asyncio.TimeoutError as exc:
            raise PrimaryUnavailableError(
                f"Request to {endpoint} timed out after {self._config.request_timeout:.1f}s",
                endpoint=endpoint,
                transient=True,
            ) from exc
        except aiohttp.ClientError as exc:
            raise PrimaryUnavailableError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
                transient=True,
            ) from exc

        if not text.strip():
            return None
        try:
            body = json.loads(text)
        except json.JSONDecodeError as exc:
            raise PrimaryUnavailableError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                endpoint=endpoint,
            ) from exc

        _logger.debug("%s %s -> %s", method, endpoint, redact_for_log(body))
        return body
