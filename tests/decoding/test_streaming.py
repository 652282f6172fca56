"""Streaming decode: ordering, backpressure, cancellation and failure."""

from __future__ import annotations

import json
from contextlib import aclosing
from typing import Any

import anyio
import pytest

from druidclient.decoding.streaming import decode_stream
from druidclient.errors import PayloadError
from druidclient.models import QueryKind, ResultEnvelope, SqlRow
from tests._helpers.expect import expect_equal, expect_true
from tests._helpers.fakes import ChunkSource, chunked, collect
from tests._helpers.payloads import (
    COMPACTED_SCAN_BODY,
    SCAN_BODY,
    SEARCH_BODY,
    SQL_BODY,
    TOPN_BODY,
    ScanResult,
    SearchHit,
    TopCountry,
)


def _stream(body: bytes, kind: QueryKind, row_shape: Any = None, size: int = 7) -> list[Any]:
    async def _run() -> list[Any]:
        return await collect(decode_stream(ChunkSource(chunked(body, size)), kind, row_shape))

    return anyio.run(_run)


def _timeseries_body(count: int) -> bytes:
    envelopes = [
        {"timestamp": f"2015-09-12T{i % 24:02d}:00:00Z", "result": {"count": i}}
        for i in range(count)
    ]
    return json.dumps(envelopes).encode()


@pytest.mark.parametrize("count", [0, 1, 5, 50])
def test_emits_every_element_in_source_order(count: int) -> None:
    """B array elements produce exactly B rows in order."""
    rows = _stream(_timeseries_body(count), QueryKind.TIMESERIES)
    expect_equal(len(rows), count)
    expect_true(all(isinstance(row, ResultEnvelope) for row in rows))
    expect_equal([row.result["count"] for row in rows], list(range(count)))


def test_row_shape_coerces_and_flattens_topn() -> None:
    """With a row shape, topN envelopes yield one typed row per entry."""
    rows = _stream(TOPN_BODY, QueryKind.TOP_N, TopCountry, size=3)
    expect_equal(
        rows,
        [
            TopCountry(count=528, countryName="United States"),
            TopCountry(count=256, countryName="Italy"),
        ],
    )


def test_search_stream() -> None:
    """Search hits stream like other result envelopes."""
    rows = _stream(SEARCH_BODY, QueryKind.SEARCH, SearchHit)
    expect_equal(rows, [SearchHit(dimension="countryIsoCode", value="GR", count=19)])


def test_scan_stream_emits_events() -> None:
    """Scan batches are unwrapped into their individual events."""
    raw_rows = _stream(SCAN_BODY, QueryKind.SCAN)
    expect_equal([row["user"] for row in raw_rows], ["GELongstreet", "PereBot", "60.225.66.142"])
    typed = _stream(SCAN_BODY, QueryKind.SCAN, ScanResult, size=11)
    expect_equal(
        typed[2],
        ScanResult(
            channel="#en.wikipedia",
            cityName="Auburn",
            countryIsoCode="AU",
            user="60.225.66.142",
        ),
    )


def test_compacted_scan_stream_matches_buffered_rows() -> None:
    """compactedList events stream as the same arrays the buffered decoder returns."""
    expect_equal(
        _stream(COMPACTED_SCAN_BODY, QueryKind.SCAN, size=5),
        [
            [1442018818771, "#en.wikipedia", "GELongstreet"],
            [1442018820496, "#ca.wikipedia", "PereBot"],
        ],
    )


def test_sql_stream_wraps_rows() -> None:
    """SQL array elements and object lines become SqlRow units."""
    expect_equal(
        _stream(SQL_BODY, QueryKind.SQL),
        [
            SqlRow({"countryName": "United States", "cnt": 528}),
            SqlRow({"countryName": "Italy", "cnt": 256}),
        ],
    )
    lines = b'{"cnt": 1}\n{"cnt": 2}\n'
    expect_equal(_stream(lines, QueryKind.SQL), [SqlRow({"cnt": 1}), SqlRow({"cnt": 2})])


def test_reads_are_pulled_by_the_consumer() -> None:
    """The source is not read past what the consumer has asked for."""
    body = _timeseries_body(20)

    async def _run() -> tuple[int, int]:
        source = ChunkSource(chunked(body, 10))
        rows = decode_stream(source, QueryKind.TIMESERIES)
        async with aclosing(rows):
            await rows.__anext__()
            reads_after_first = source.reads
            await rows.__anext__()
        return reads_after_first, len(chunked(body, 10))

    reads_after_first, total_chunks = anyio.run(_run)
    expect_true(
        reads_after_first < total_chunks,
        message=f"read {reads_after_first} of {total_chunks} chunks for one row",
    )


@pytest.mark.parametrize("stop_after", [1, 3])
def test_early_exit_releases_source(stop_after: int) -> None:
    """Stopping after k rows closes the source and no further reads occur."""
    body = _timeseries_body(30)

    async def _run() -> tuple[ChunkSource, int, list[Any]]:
        source = ChunkSource(chunked(body, 16))
        taken: list[Any] = []
        async with aclosing(decode_stream(source, QueryKind.TIMESERIES)) as rows:
            async for row in rows:
                taken.append(row)
                if len(taken) == stop_after:
                    break
        reads_at_close = source.reads
        async for _ in source:
            pytest.fail("closed source must not supply more chunks")
        return source, reads_at_close, taken

    source, reads_at_close, taken = anyio.run(_run)
    expect_equal(len(taken), stop_after)
    expect_true(source.closed, message="source should be closed on early exit")
    expect_equal(source.reads, reads_at_close)


def test_malformed_element_aborts_after_emitted_rows() -> None:
    """Rows before a malformed element are delivered, then PayloadError is raised."""
    body = (
        b'[{"timestamp": null, "result": {"count": 1}}, '
        b'{"timestamp": null, "result": {"count": 2}}, '
        b'{"bad": ]'
    )

    async def _run() -> tuple[list[Any], BaseException | None, ChunkSource]:
        source = ChunkSource(chunked(body, 32))
        taken: list[Any] = []
        error: BaseException | None = None
        try:
            async for row in decode_stream(source, QueryKind.TIMESERIES, host="b2"):
                taken.append(row)
        except PayloadError as exc:
            error = exc
        return taken, error, source

    taken, error, source = anyio.run(_run)
    expect_equal([row.result["count"] for row in taken], [1, 2])
    if not isinstance(error, PayloadError):
        pytest.fail("expected PayloadError after the valid rows")
    expect_equal(error.host, "b2")
    expect_true(source.closed, message="source should be released on failure")


def test_truncated_stream_is_payload_error() -> None:
    """A body cut off before ']' fails once the source is exhausted."""
    with pytest.raises(PayloadError):
        _stream(b'[{"timestamp": null, "result": {"count": 1}}', QueryKind.TIMESERIES)


def test_row_shape_mismatch_in_stream_is_payload_error() -> None:
    """A row that does not fit the shape aborts the stream."""
    body = b'[{"timestamp": null, "result": [{"count": "many"}]}]'
    with pytest.raises(PayloadError):
        _stream(body, QueryKind.TOP_N, TopCountry)
