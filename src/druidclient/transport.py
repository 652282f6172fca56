"""Narrow transport boundary plus the default httpx implementation."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import httpx

from druidclient.errors import TimeoutFailure, TransportError
from druidclient.models import QueryHost

LOG = logging.getLogger("druidclient.transport")


@dataclass
class RawResponse:
    """Status, headers and a live body for one response; owned by one decode call."""

    status_code: int
    http_version: str
    headers: Mapping[str, str]
    chunks: AsyncIterator[bytes]


class Transport(Protocol):
    """Sends one request to one host and exposes the response body as chunks."""

    def open(
        self,
        method: str,
        host: QueryHost,
        path: str,
        *,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> AbstractAsyncContextManager[RawResponse]:
        """Send a request; the response stays open until the context exits."""
        ...

    async def aclose(self) -> None:
        """Release pooled connections."""
        ...


class HttpxTransport:
    """Transport over ``httpx.AsyncClient`` with streamed response bodies."""

    def __init__(
        self,
        *,
        timeout: float,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.timeout = timeout
        if client is None:
            self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout))
            self._owns_client = True
        else:
            self.client = client
            self._owns_client = False

    @asynccontextmanager
    async def open(
        self,
        method: str,
        host: QueryHost,
        path: str,
        *,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> AsyncIterator[RawResponse]:
        """
        Send a request and yield the response with an unread body.

        Yields
        ------
        RawResponse
            Response whose ``chunks`` read the body on demand.

        Raises
        ------
        TimeoutFailure
            When connecting or reading exceeds the configured timeout.
        TransportError
            On any other connection-level failure.
        """
        url = f"{host.base_url}{path}"
        try:
            async with self.client.stream(
                method, url, content=content, headers=dict(headers or {})
            ) as response:
                yield RawResponse(
                    status_code=response.status_code,
                    http_version=response.http_version,
                    headers=dict(response.headers),
                    chunks=response.aiter_bytes(),
                )
        except httpx.TimeoutException as exc:
            message = f"{method} {url} timed out: {exc}"
            raise TimeoutFailure(message, timeout_seconds=self.timeout, host=str(host)) from exc
        except httpx.TransportError as exc:
            message = f"{method} {url} failed: {exc}"
            raise TransportError(message, host=str(host)) from exc

    async def aclose(self) -> None:
        """Close the underlying client when this transport created it."""
        if self._owns_client:
            await self.client.aclose()
