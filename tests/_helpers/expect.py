"""Expectation helpers for decoded rows and client results; raise AssertionError on mismatch."""

from __future__ import annotations

from collections.abc import Sequence, Sized


def _first_difference(actual: Sequence[object], expected: Sequence[object]) -> str:
    for index, (left, right) in enumerate(zip(actual, expected, strict=False)):
        if left != right:
            return f"first difference at row {index}: expected {right!r}, got {left!r}"
    return f"expected {len(expected)} rows, got {len(actual)}"


def expect_true(condition: object, *, message: str | None = None) -> None:
    """Fail with ``message`` unless ``condition`` is truthy."""
    if not condition:
        raise AssertionError(message or "condition was false")


def expect_equal(actual: object, expected: object, *, label: str | None = None) -> None:
    """
    Fail unless ``actual == expected``.

    Lists are compared row by row so that an ordering mistake reports the
    first row that differs instead of both full lists.

    Raises
    ------
    AssertionError
        If the values differ.
    """
    if actual == expected:
        return
    if isinstance(actual, list) and isinstance(expected, list):
        reason = _first_difference(actual, expected)
    else:
        reason = f"expected {expected!r}, got {actual!r}"
    raise AssertionError(f"{label}: {reason}" if label else reason)


def expect_len(value: Sized, expected: int, *, label: str | None = None) -> None:
    """Fail unless ``value`` holds exactly ``expected`` items."""
    expect_equal(len(value), expected, label=label or "length")
