"""Query client facade: pick a broker, dispatch, and decode the reply."""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from types import TracebackType
from typing import Any, Self

from druidclient.config import ClientConfig
from druidclient.decoding.buffered import decode_response, raise_for_status
from druidclient.decoding.streaming import decode_stream
from druidclient.errors import ClientClosedError
from druidclient.health import HealthTracker, status_probe
from druidclient.models import QueryHost, QueryKind, QueryRequest, QueryResponse
from druidclient.observability import ClientObservability, observe_call
from druidclient.selection import FixedSelector, HostSelector, RoundRobinSelector
from druidclient.transport import HttpxTransport, Transport


def _default_selector(config: ClientConfig) -> HostSelector:
    if config.host_selection == "first":
        return FixedSelector(config.hosts[0])
    return RoundRobinSelector(config.hosts)


class QueryClient:
    """
    Async client for a pool of Druid brokers.

    ``execute`` buffers and decodes a whole response; ``stream`` yields rows
    as they arrive. Neither retries: a failure is raised to the caller as a
    ``QueryError`` subclass.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        transport: Transport | None = None,
        selector: HostSelector | None = None,
        observability: ClientObservability | None = None,
    ) -> None:
        self.config = config or ClientConfig.from_env()
        self.transport = transport or HttpxTransport(timeout=self.config.request_timeout_seconds)
        self.selector = selector or _default_selector(self.config)
        self.observability = observability or ClientObservability(
            enabled=self.config.observability_enabled
        )
        self.health = HealthTracker(
            status_probe(self.transport, self.config.health_path),
            probe_timeout=self.config.health_probe_timeout_seconds,
            observability=self.observability,
        )
        self._closed = False
        self.observability.logger.info(
            "Using '%s' as http transport", type(self.transport).__name__
        )

    @property
    def closed(self) -> bool:
        """Return True once ``shutdown`` has run."""
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClientClosedError

    def _path_for(self, kind: QueryKind) -> str:
        return self.config.sql_url_path if kind is QueryKind.SQL else self.config.url_path

    def _headers(self, request: QueryRequest) -> dict[str, str]:
        headers = {"Content-Type": request.content_type, "Accept": "application/json"}
        if request.query_id:
            headers["X-Druid-Query-Id"] = request.query_id
        return headers

    async def execute(self, request: QueryRequest, row_shape: Any = None) -> QueryResponse[Any]:
        """
        Send a query to one broker and decode the full response.

        Parameters
        ----------
        request:
            Serialized query plus its kind.
        row_shape:
            Row type for decoding; falls back to ``request.row_shape``.

        Returns
        -------
        QueryResponse
            Decoded rows with list and series views.

        Raises
        ------
        ServiceError
            Non-success status from the broker.
        PayloadError
            Body could not be decoded into ``row_shape``.
        TimeoutFailure
            Body buffering or the request itself exceeded its bound.
        TransportError
            The broker could not be reached.
        ClientClosedError
            The client has been shut down.
        """
        self._ensure_open()
        host = self.selector.select()
        shape = row_shape if row_shape is not None else request.row_shape

        async def _call() -> QueryResponse[Any]:
            self.observability.logger.debug(
                "Dispatching %s query to %s (%d bytes)",
                request.kind.value,
                host,
                len(request.payload),
            )
            async with self.transport.open(
                "POST",
                host,
                self._path_for(request.kind),
                content=request.payload,
                headers=self._headers(request),
            ) as raw:
                return await decode_response(
                    raw,
                    request.kind,
                    shape,
                    parsing_timeout=self.config.response_parsing_timeout_seconds,
                    host=str(host),
                )

        return await observe_call(
            self.observability,
            name="execute",
            host=str(host),
            kind=request.kind.value,
            func=_call,
        )

    async def stream(self, request: QueryRequest, row_shape: Any = None) -> AsyncIterator[Any]:
        """
        Send a query and yield decoded rows as the body arrives.

        The request is sent on first iteration. Closing the iterator early
        (``aclose()`` or leaving an ``aclosing`` block) stops reading and
        releases the connection. To stream again, call ``stream`` again.

        Yields
        ------
        Any
            Rows in source order; see ``decode_stream`` for their types.

        Raises
        ------
        ServiceError
            Non-success status; no rows are yielded.
        PayloadError
            A malformed element; rows already yielded stand.
        """
        self._ensure_open()
        host = self.selector.select()
        shape = row_shape if row_shape is not None else request.row_shape
        self.observability.logger.debug("Streaming %s query from %s", request.kind.value, host)
        async with self.transport.open(
            "POST",
            host,
            self._path_for(request.kind),
            content=request.payload,
            headers=self._headers(request),
        ) as raw:
            await raise_for_status(
                raw,
                parsing_timeout=self.config.response_parsing_timeout_seconds,
                host=str(host),
            )
            rows = decode_stream(raw.chunks, request.kind, shape, host=str(host))
            try:
                async for row in rows:
                    yield row
            finally:
                await rows.aclose()

    async def health_check(self, hosts: Iterable[QueryHost] | None = None) -> dict[QueryHost, bool]:
        """
        Report reachability of every broker.

        Returns
        -------
        dict[QueryHost, bool]
            One entry per host; probe failures and timeouts count as False.
        """
        self._ensure_open()
        return await self.health.check_all(self.config.hosts if hosts is None else hosts)

    async def is_healthy(self, hosts: Iterable[QueryHost] | None = None) -> bool:
        """Return True when every broker is reachable."""
        self._ensure_open()
        return await self.health.is_healthy(self.config.hosts if hosts is None else hosts)

    async def shutdown(self) -> None:
        """Close the transport's connections; safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        await self.transport.aclose()
        self.observability.logger.info("Query client shut down")

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()


__all__ = ["QueryClient"]
