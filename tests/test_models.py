"""Request, host and response models."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from druidclient.models import (
    QueryHost,
    QueryKind,
    QueryRequest,
    QueryResponse,
    ResultEnvelope,
    ScanBatch,
    SqlRow,
)
from tests._helpers.expect import expect_equal, expect_true

T0 = datetime(2015, 9, 12, 0, tzinfo=UTC)
T1 = datetime(2015, 9, 12, 1, tzinfo=UTC)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("http://broker:8082", QueryHost("broker", 8082)),
        ("https://broker", QueryHost("broker", 443, "https")),
        ("broker:8888", QueryHost("broker", 8888)),
        ("  HTTP://Broker:8082  ", QueryHost("broker", 8082)),
    ],
)
def test_query_host_parse(value: str, expected: QueryHost) -> None:
    """Endpoint URLs parse into protocol, host and port."""
    expect_equal(QueryHost.parse(value), expected)


@pytest.mark.parametrize("value", ["ftp://broker:21", "http://:8082"])
def test_query_host_parse_rejects(value: str) -> None:
    """Unsupported schemes and missing hostnames are rejected."""
    with pytest.raises(ValueError, match="(?i)query host"):
        QueryHost.parse(value)


def test_query_host_str_is_base_url() -> None:
    """A host renders as its base URL."""
    expect_equal(str(QueryHost("b1", 8082, "https")), "https://b1:8082")


def test_from_mapping_sets_query_type_and_id() -> None:
    """Native queries get queryType; the context queryId becomes the request id."""
    request = QueryRequest.from_mapping(
        QueryKind.GROUP_BY,
        {"dataSource": "wikipedia", "context": {"queryId": "q-1"}},
    )
    body = json.loads(request.payload)
    expect_equal(body["queryType"], "groupBy")
    expect_equal(request.query_id, "q-1")
    expect_equal(request.content_type, "application/json")


def test_from_mapping_leaves_sql_untouched() -> None:
    """SQL bodies are sent without a queryType."""
    request = QueryRequest.from_mapping(QueryKind.SQL, {"query": "SELECT 1"})
    expect_equal(json.loads(request.payload), {"query": "SELECT 1"})
    expect_equal(request.query_id, None)


def test_envelope_accepts_event_key() -> None:
    """groupBy rows use 'event' in place of 'result'."""
    envelope = ResultEnvelope.model_validate(
        {"version": "v1", "timestamp": "2015-09-12T00:00:00.000Z", "event": {"count": 3}}
    )
    expect_equal(envelope.result, {"count": 3})
    expect_equal(envelope.timestamp, T0)


def test_scan_batch_requires_events() -> None:
    """A scan batch without events is not a scan batch."""
    batch = ScanBatch.model_validate({"segmentId": "seg", "columns": ["a"], "events": []})
    expect_equal(batch.segment_id, "seg")
    with pytest.raises(ValueError, match="events"):
        ScanBatch.model_validate({"segmentId": "seg"})


def test_sql_row_indexing() -> None:
    """SqlRow exposes the wrapped value by key or index."""
    expect_equal(SqlRow({"a": 1})["a"], 1)
    expect_equal(SqlRow([4, 5])[1], 5)


def test_series_groups_consecutive_keys() -> None:
    """Consecutive equal keys share a bucket; concatenated buckets equal list()."""
    response = QueryResponse(
        kind=QueryKind.TIMESERIES,
        rows=["a", "b", "c", "d"],
        bucket_keys=[T0, T0, T1, None],
    )
    series = response.series()
    expect_equal(series, [(T0, ["a", "b"]), (T1, ["c"]), (None, ["d"])])
    flattened = [row for _, rows in series for row in rows]
    expect_equal(flattened, response.list())
    expect_equal(len(response), 4)


def test_series_keeps_decode_order_for_interleaved_keys() -> None:
    """A timestamp that reappears opens a new bucket instead of reordering rows."""
    response = QueryResponse(
        kind=QueryKind.GROUP_BY,
        rows=[1, 2, 3],
        bucket_keys=[T0, T1, T0],
    )
    series = response.series()
    expect_equal(series, [(T0, [1]), (T1, [2]), (T0, [3])])
    expect_equal([row for _, rows in series for row in rows], response.list())


def test_series_without_keys_is_one_bucket() -> None:
    """Rows with no bucket keys share the None bucket."""
    response = QueryResponse(kind=QueryKind.SQL, rows=[1, 2])
    expect_equal(response.series(), [(None, [1, 2])])
    expect_true(QueryResponse(kind=QueryKind.SQL, rows=[]).series() == [])
