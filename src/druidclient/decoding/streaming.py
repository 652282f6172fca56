"""Incremental row decoding for streamed broker responses."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterator
from typing import Any, assert_never

from pydantic import ValidationError

from druidclient.decoding.json_stream import JsonStreamError, JsonStreamParser, StreamMode
from druidclient.decoding.strategy import (
    DecodeStrategy,
    coerce_row,
    envelope_payloads,
    strategy_for,
)
from druidclient.errors import PayloadError
from druidclient.models import QueryKind, ResultEnvelope, ScanBatch, SqlRow

LOG = logging.getLogger("druidclient.decoding.streaming")


def _stream_mode(strategy: DecodeStrategy) -> StreamMode:
    match strategy:
        case DecodeStrategy.SQL_VALUES:
            return StreamMode.VALUE_STREAM
        case DecodeStrategy.SCAN_BATCHES | DecodeStrategy.RESULT_ENVELOPES:
            return StreamMode.UNWRAP_ARRAY
        case _:
            assert_never(strategy)


def _rows_from_value(value: Any, strategy: DecodeStrategy, row_shape: Any) -> Iterator[Any]:
    match strategy:
        case DecodeStrategy.SCAN_BATCHES:
            batch = ScanBatch.model_validate(value)
            for event in batch.events:
                yield event if row_shape is None else coerce_row(event, row_shape)
        case DecodeStrategy.SQL_VALUES:
            yield SqlRow(value)
        case DecodeStrategy.RESULT_ENVELOPES:
            envelope = ResultEnvelope.model_validate(value)
            if row_shape is None:
                yield envelope
                return
            for payload in envelope_payloads(envelope):
                yield coerce_row(payload, row_shape)
        case _:
            assert_never(strategy)


async def _close_source(chunks: AsyncIterable[bytes]) -> None:
    aclose = getattr(chunks, "aclose", None)
    if aclose is not None:
        await aclose()


async def decode_stream(
    chunks: AsyncIterable[bytes],
    kind: QueryKind,
    row_shape: Any = None,
    *,
    host: str | None = None,
) -> AsyncIterator[Any]:
    """
    Lazily decode rows from a streamed response body.

    Rows are produced as soon as the bytes for one value have arrived; the
    next chunk is only requested once every buffered row has been taken by
    the consumer. Closing the generator early drops the partial parse state
    and closes ``chunks``.

    Parameters
    ----------
    chunks:
        Body byte chunks of one response.
    kind:
        Query kind that selects the unwrap strategy.
    row_shape:
        Optional row type. Scan events and result payloads are coerced into
        it when given; otherwise scan yields plain event dicts and other
        kinds yield ``ResultEnvelope`` items. SQL rows are never coerced.
    host:
        Originating host, attached to errors.

    Yields
    ------
    Any
        Decoded rows in source order.

    Raises
    ------
    PayloadError
        When an element is malformed; rows already yielded stand.
    """
    strategy = strategy_for(kind)
    parser = JsonStreamParser(_stream_mode(strategy))
    emitted = 0
    exhausted = False
    try:
        try:
            async for chunk in chunks:
                for value in parser.feed(chunk):
                    for row in _rows_from_value(value, strategy, row_shape):
                        yield row
                        emitted += 1
                parser.check()
            exhausted = True
            for value in parser.close():
                for row in _rows_from_value(value, strategy, row_shape):
                    yield row
                    emitted += 1
            parser.check()
        except (JsonStreamError, ValidationError) as exc:
            message = f"Malformed {kind.value} stream after {emitted} rows: {exc}"
            raise PayloadError(message, host=host, status=200) from exc
    finally:
        if not exhausted:
            LOG.debug("Stream for %s closed after %d rows; releasing source", kind.value, emitted)
        parser.reset()
        await _close_source(chunks)
