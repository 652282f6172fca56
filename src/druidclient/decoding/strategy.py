"""Decode strategy selection and row coercion shared by both decoders."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from enum import StrEnum
from functools import lru_cache
from typing import Any, assert_never

from pydantic import TypeAdapter

from druidclient.models import BucketKey, QueryKind, ResultEnvelope

TIME_COLUMN = "__time"
DEFAULT_ROW_SHAPE: Any = dict[str, Any]


class DecodeStrategy(StrEnum):
    """How a response body is unwrapped into rows."""

    SCAN_BATCHES = "scan_batches"
    SQL_VALUES = "sql_values"
    RESULT_ENVELOPES = "result_envelopes"


def strategy_for(kind: QueryKind) -> DecodeStrategy:
    """
    Map a query kind onto its decode strategy.

    Returns
    -------
    DecodeStrategy
        Strategy used by both the buffered and the streaming decoder.
    """
    match kind:
        case QueryKind.SCAN:
            return DecodeStrategy.SCAN_BATCHES
        case QueryKind.SQL:
            return DecodeStrategy.SQL_VALUES
        case QueryKind.TIMESERIES | QueryKind.GROUP_BY | QueryKind.TOP_N | QueryKind.SEARCH:
            return DecodeStrategy.RESULT_ENVELOPES
        case _:
            assert_never(kind)


@lru_cache(maxsize=128)
def _adapter(row_shape: Any) -> TypeAdapter[Any]:
    return TypeAdapter(row_shape)


def coerce_row(value: Any, row_shape: Any) -> Any:
    """
    Validate one JSON value into ``row_shape``.

    Raises
    ------
    pydantic.ValidationError
        When the value does not fit the row shape.
    """
    shape = DEFAULT_ROW_SHAPE if row_shape is None else row_shape
    return _adapter(shape).validate_python(value)


def envelope_payloads(envelope: ResultEnvelope) -> list[Any]:
    """
    Split an envelope payload into row payloads.

    topN and search results hold a list per bucket; every other kind holds a
    single object.

    Returns
    -------
    list[Any]
        Row payloads in source order.
    """
    if isinstance(envelope.result, list):
        return list(envelope.result)
    return [envelope.result]


def event_bucket_key(event: Any, columns: Sequence[str] = ()) -> BucketKey:
    """
    Return the ``__time`` of a scan event or SQL row as a UTC datetime.

    Object events carry the column by name. ``compactedList`` events are
    arrays aligned with the batch ``columns``.
    """
    if isinstance(event, dict):
        raw = event.get(TIME_COLUMN)
    elif isinstance(event, list) and TIME_COLUMN in columns:
        index = columns.index(TIME_COLUMN)
        raw = event[index] if index < len(event) else None
    else:
        return None
    if isinstance(raw, bool) or not isinstance(raw, int | float):
        return None
    try:
        return datetime.fromtimestamp(raw / 1000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
