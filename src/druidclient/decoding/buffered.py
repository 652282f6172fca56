"""Buffered decoding of complete broker responses into typed results."""

from __future__ import annotations

import json
import logging
from typing import Any, assert_never

import anyio
from pydantic import TypeAdapter, ValidationError

from druidclient.decoding.strategy import (
    DecodeStrategy,
    coerce_row,
    envelope_payloads,
    event_bucket_key,
    strategy_for,
)
from druidclient.errors import PayloadError, ServiceError, TimeoutFailure
from druidclient.models import (
    BucketKey,
    QueryKind,
    QueryResponse,
    ResultEnvelope,
    ScanBatch,
    ScanResponse,
    SqlResponse,
    SqlRow,
    TimeseriesResponse,
)
from druidclient.transport import RawResponse

LOG = logging.getLogger("druidclient.decoding")
HTTP_OK = 200

_ENVELOPES = TypeAdapter(list[ResultEnvelope])
_SCAN_BATCHES = TypeAdapter(list[ScanBatch])
_JSON_ARRAY = TypeAdapter(list[Any])


async def read_body(raw: RawResponse, *, timeout: float, host: str | None = None) -> bytes:
    """
    Buffer a whole response body within ``timeout`` seconds.

    Returns
    -------
    bytes
        Concatenated body bytes.

    Raises
    ------
    TimeoutFailure
        When the body is not complete in time.
    """
    parts: list[bytes] = []
    try:
        with anyio.fail_after(timeout):
            async for chunk in raw.chunks:
                parts.append(chunk)
    except TimeoutError as exc:
        message = f"Response body not received within {timeout}s"
        raise TimeoutFailure(
            message, timeout_seconds=timeout, host=host, status=raw.status_code
        ) from exc
    return b"".join(parts)


def _decode_envelopes(body: bytes, kind: QueryKind, row_shape: Any) -> TimeseriesResponse[Any]:
    envelopes = _ENVELOPES.validate_json(body)
    rows: list[Any] = []
    keys: list[BucketKey] = []
    for envelope in envelopes:
        for payload in envelope_payloads(envelope):
            rows.append(coerce_row(payload, row_shape))
            keys.append(envelope.timestamp)
    return TimeseriesResponse(
        kind=kind, rows=rows, bucket_keys=keys, envelope_count=len(envelopes)
    )


def _decode_scan(body: bytes, row_shape: Any) -> ScanResponse[Any]:
    batches = _SCAN_BATCHES.validate_json(body)
    rows: list[Any] = []
    keys: list[BucketKey] = []
    columns: list[str] = []
    for batch in batches:
        for event in batch.events:
            rows.append(event if row_shape is None else coerce_row(event, row_shape))
            keys.append(event_bucket_key(event, batch.columns))
        columns.extend(col for col in batch.columns if col not in columns)
    return ScanResponse(
        kind=QueryKind.SCAN,
        rows=rows,
        bucket_keys=keys,
        segment_ids=[batch.segment_id for batch in batches],
        columns=columns,
    )


def _decode_sql(body: bytes) -> SqlResponse:
    values = _JSON_ARRAY.validate_json(body)
    return SqlResponse(
        kind=QueryKind.SQL,
        rows=[SqlRow(value) for value in values],
        bucket_keys=[event_bucket_key(value) for value in values],
    )


def decode_body(
    body: bytes,
    kind: QueryKind,
    row_shape: Any = None,
    *,
    host: str | None = None,
) -> QueryResponse[Any]:
    """
    Decode a successful response body according to the query kind.

    Parameters
    ----------
    body:
        Complete UTF-8 JSON body.
    kind:
        Query kind selecting the decode strategy.
    row_shape:
        Target type for each row. Result payloads default to
        ``dict[str, Any]``; scan events are kept as decoded when it is None.
        Ignored for SQL, whose rows stay opaque ``SqlRow`` values.
    host:
        Originating host, attached to errors.

    Returns
    -------
    QueryResponse
        Fully decoded response.

    Raises
    ------
    PayloadError
        When the body is not valid JSON or a row does not fit ``row_shape``.
    """
    strategy = strategy_for(kind)
    try:
        match strategy:
            case DecodeStrategy.SCAN_BATCHES:
                return _decode_scan(body, row_shape)
            case DecodeStrategy.SQL_VALUES:
                return _decode_sql(body)
            case DecodeStrategy.RESULT_ENVELOPES:
                return _decode_envelopes(body, kind, row_shape)
            case _:
                assert_never(strategy)
    except (ValidationError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        message = f"Could not decode {kind.value} response: {exc}"
        raise PayloadError(message, host=host, status=HTTP_OK) from exc


async def raise_for_status(
    raw: RawResponse,
    *,
    parsing_timeout: float,
    host: str | None = None,
) -> None:
    """
    Raise ``ServiceError`` for any non-200 response.

    The body is buffered best-effort and never parsed; a failure while
    buffering is attached to the error instead of replacing it.

    Raises
    ------
    ServiceError
        When the broker answered with a non-200 status.
    """
    if raw.status_code == HTTP_OK:
        return
    body: bytes | None = None
    body_error: BaseException | None = None
    try:
        body = await read_body(raw, timeout=parsing_timeout, host=host)
    except Exception as exc:  # noqa: BLE001
        body_error = exc
    LOG.debug("Druid response: status=%s body=%r", raw.status_code, body)
    raise ServiceError(
        status=raw.status_code,
        http_version=raw.http_version,
        headers=raw.headers,
        body=body,
        body_error=body_error,
        host=host,
    )


async def decode_response(
    raw: RawResponse,
    kind: QueryKind,
    row_shape: Any = None,
    *,
    parsing_timeout: float,
    host: str | None = None,
) -> QueryResponse[Any]:
    """
    Turn a raw broker response into a typed result.

    Returns
    -------
    QueryResponse
        Decoded response.

    Raises
    ------
    ServiceError
        When the broker answered with a non-200 status.
    TimeoutFailure
        When buffering a 200 body exceeds ``parsing_timeout``.
    PayloadError
        When a 200 body cannot be decoded.
    """
    await raise_for_status(raw, parsing_timeout=parsing_timeout, host=host)
    body = await read_body(raw, timeout=parsing_timeout, host=host)
    LOG.debug("Druid response: status=%s body=%r", raw.status_code, body)
    return decode_body(body, kind, row_shape, host=host)
