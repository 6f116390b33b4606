"""HTTP transport used by the API client."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

import httpx

from recorder.errors import NetworkError

logger = logging.getLogger(__name__)

USER_AGENT = "screenshot-recorder"


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class Transport(Protocol):
    async def post(self, url: str, fields: Mapping[str, str]) -> TransportResponse: ...

    async def put(self, url: str, data: bytes) -> TransportResponse: ...

    async def aclose(self) -> None: ...


class HttpxTransport:
    """Form POSTs and raw PUTs over a shared httpx.AsyncClient."""

    def __init__(
        self,
        *,
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            headers={"User-Agent": USER_AGENT}, timeout=timeout, transport=transport
        )

    async def post(self, url: str, fields: Mapping[str, str]) -> TransportResponse:
        try:
            resp = await self.client.post(url, data=dict(fields))
        except httpx.HTTPError as e:
            raise NetworkError(f"POST {url} failed") from e
        logger.debug("POST %s -> %d", url, resp.status_code)
        return TransportResponse(resp.status_code, resp.content)

    async def put(self, url: str, data: bytes) -> TransportResponse:
        try:
            resp = await self.client.put(url, content=data)
        except httpx.HTTPError as e:
            # Pre-signed URLs carry credentials in the query string
            raise NetworkError(f"PUT {url.split('?', 1)[0]} failed") from e
        logger.debug("PUT %d bytes -> %d", len(data), resp.status_code)
        return TransportResponse(resp.status_code, resp.content)

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()
