"""Typed request, host and response models shared by the decoders and the client."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from itertools import groupby
from operator import itemgetter
from typing import Any
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, model_validator

DEFAULT_PORTS = {"http": 80, "https": 443}


class QueryKind(StrEnum):
    """Closed set of query types; selects the decode strategy for a response."""

    TIMESERIES = "timeseries"
    GROUP_BY = "groupBy"
    TOP_N = "topN"
    SCAN = "scan"
    SEARCH = "search"
    SQL = "sql"


@dataclass(frozen=True)
class QueryHost:
    """One broker endpoint."""

    host: str
    port: int
    protocol: str = "http"

    @property
    def base_url(self) -> str:
        """Return the scheme://host:port prefix for this endpoint."""
        return f"{self.protocol}://{self.host}:{self.port}"

    @classmethod
    def parse(cls, value: str) -> QueryHost:
        """
        Parse an endpoint URL such as ``https://broker:8082``.

        Parameters
        ----------
        value:
            URL with optional scheme and port; scheme defaults to http.

        Returns
        -------
        QueryHost
            Parsed endpoint.

        Raises
        ------
        ValueError
            When the URL has no host or an unsupported scheme.
        """
        raw = value.strip()
        if "://" not in raw:
            raw = f"http://{raw}"
        parts = urlsplit(raw)
        protocol = parts.scheme.lower()
        if protocol not in DEFAULT_PORTS:
            message = f"Unsupported protocol for query host: {value!r}"
            raise ValueError(message)
        if not parts.hostname:
            message = f"Query host URL has no hostname: {value!r}"
            raise ValueError(message)
        port = parts.port or DEFAULT_PORTS[protocol]
        return cls(host=parts.hostname, port=port, protocol=protocol)

    def __str__(self) -> str:
        return self.base_url


@dataclass(frozen=True)
class QueryRequest:
    """
    A finished query ready for dispatch.

    The payload is the serialized JSON produced by the query builder; it is
    sent as-is. ``row_shape`` is the default target type for decoded rows and
    may be overridden per call.
    """

    kind: QueryKind
    payload: bytes
    row_shape: Any = None
    query_id: str | None = None

    content_type = "application/json"

    @classmethod
    def from_mapping(
        cls,
        kind: QueryKind,
        mapping: Mapping[str, Any],
        *,
        row_shape: Any = None,
    ) -> QueryRequest:
        """
        Serialize a query mapping into a request.

        Returns
        -------
        QueryRequest
            Request whose payload is the compact JSON encoding of ``mapping``.
        """
        body = dict(mapping)
        if kind is not QueryKind.SQL:
            body.setdefault("queryType", kind.value)
        context = body.get("context")
        query_id = context.get("queryId") if isinstance(context, Mapping) else None
        payload = json.dumps(body, separators=(",", ":")).encode("utf-8")
        return cls(kind=kind, payload=payload, row_shape=row_shape, query_id=query_id)


class ResultEnvelope(BaseModel):
    """Generic result item: optional bucket timestamp plus the result payload."""

    model_config = ConfigDict(extra="ignore")

    timestamp: datetime | None = None
    result: Any = None

    @model_validator(mode="before")
    @classmethod
    def _accept_event_key(cls, data: Any) -> Any:
        # groupBy rows carry their payload under "event"
        if isinstance(data, dict) and "result" not in data and "event" in data:
            return {**data, "result": data["event"]}
        return data


class ScanBatch(BaseModel):
    """One scan batch holding already row-shaped events."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    segment_id: str | None = Field(default=None, alias="segmentId")
    columns: list[str] = Field(default_factory=list)
    events: list[Any]


@dataclass(frozen=True)
class SqlRow:
    """One untyped row of an SQL result."""

    value: Any

    def __getitem__(self, key: str | int) -> Any:
        return self.value[key]


BucketKey = datetime | None


@dataclass
class QueryResponse[T]:
    """
    Decoded response with row-list and time-bucketed views.

    ``rows`` and ``bucket_keys`` run in parallel and keep decode order; both
    views are derived from them and never re-sorted.
    """

    kind: QueryKind
    rows: list[T]
    bucket_keys: list[BucketKey] = field(default_factory=list)

    def list(self) -> list[T]:
        """Return rows in decode order."""
        return list(self.rows)

    def series(self) -> list[tuple[BucketKey, list[T]]]:
        """
        Group rows into timestamp buckets.

        A bucket is a run of consecutive rows sharing one key, so a timestamp
        that reappears later in the response opens a new bucket.

        Returns
        -------
        list[tuple[BucketKey, list[T]]]
            Buckets in decode order; concatenating their rows equals ``list()``.
        """
        buckets: list[tuple[BucketKey, list[T]]] = []
        keys = self.bucket_keys or [None] * len(self.rows)
        for key, group in groupby(zip(keys, self.rows, strict=True), key=itemgetter(0)):
            buckets.append((key, [row for _, row in group]))
        return buckets

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class TimeseriesResponse[T](QueryResponse[T]):
    """Response for timeseries, groupBy, topN and search queries."""

    envelope_count: int = 0


@dataclass
class ScanResponse[T](QueryResponse[T]):
    """Response for scan queries; keeps per-batch metadata."""

    segment_ids: list[str | None] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)


@dataclass
class SqlResponse(QueryResponse[SqlRow]):
    """Response for SQL queries; rows are opaque JSON values."""
