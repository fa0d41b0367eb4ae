"""HTTP transport to the appliance.

The retrieval layer only needs "issue METHOD to PATH with QUERY". Status codes
are returned, not raised, so the caller can apply its own re-auth and
rate-limit policy.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from .errors import UpstreamError, UpstreamTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


@dataclass(frozen=True, slots=True)
class TransportResponse:
    status: int
    body: Any = None  # decoded JSON, or text when the payload is not JSON
    headers: Mapping[str, str] = field(default_factory=dict)  # lower-cased names

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class Transport(Protocol):
    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        """Send one request; network failures raise UpstreamError."""
        ...


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


class HttpxTransport:
    """Transport on top of a shared `httpx.AsyncClient`.

    TLS verification is off by default: appliances usually present
    self-signed certificates.
    """

    def __init__(
        self,
        base_url: str,
        *,
        verify: bool = False,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            verify=verify,
            timeout=httpx.Timeout(timeout),
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
            headers={"Accept": "application/json"},
        )

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> TransportResponse:
        try:
            response = await self._client.request(
                method,
                path,
                params=dict(params) if params else None,
                json=json,
                headers=dict(headers) if headers else None,
                timeout=timeout if timeout is not None else self.timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeoutError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise UpstreamError(f"{method} {path} failed: {e}") from e

        logger.debug("%s %s -> %d", method, path, response.status_code)
        return TransportResponse(
            status=response.status_code,
            body=_decode_body(response),
            headers={k.lower(): v for k, v in response.headers.items()},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
