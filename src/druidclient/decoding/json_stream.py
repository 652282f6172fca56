"""Incremental JSON value parser over a byte-chunk stream."""

from __future__ import annotations

import codecs
import json
import re
from enum import Enum, StrEnum, auto
from typing import Any

_WHITESPACE = " \t\n\r"
_NUMBER_TAIL = "0123456789.eE+-"
_OPENERS = '{["'
_STRUCTURAL = re.compile(r'[\[\]{}"]')
_STRING_STOP = re.compile(r'["\\]')
# An error this far before the end of the buffer cannot be caused by truncation.
_LOOKAHEAD_SLACK = 16


class StreamMode(StrEnum):
    """Shape of the body being unwrapped."""

    UNWRAP_ARRAY = "unwrap_array"
    VALUE_STREAM = "value_stream"


class JsonStreamError(ValueError):
    """Raised when the byte stream is not valid JSON for the selected mode."""


class _State(Enum):
    START = auto()
    ARRAY_OPEN = auto()
    ARRAY_ELEMENT = auto()
    ARRAY_AFTER_ELEMENT = auto()
    AFTER_ARRAY = auto()


class JsonStreamParser:
    """
    Parse JSON values out of a byte stream as soon as they are complete.

    In ``UNWRAP_ARRAY`` mode the body must be exactly one top-level array and
    every element is returned individually. In ``VALUE_STREAM`` mode the body
    is any number of whitespace-separated top-level values; arrays among them
    are unwrapped element by element and other values are returned whole.

    Objects, arrays and strings are only handed to the decoder once their
    closing character has arrived. Until then each new chunk is scanned for
    brackets and quotes exactly once and kept aside without re-parsing, so a
    large element spread over many chunks costs linear time.
    """

    def __init__(self, mode: StreamMode, *, decoder: json.JSONDecoder | None = None) -> None:
        self.mode = mode
        self._decoder = decoder or json.JSONDecoder()
        self._text = codecs.getincrementaldecoder("utf-8")()
        self._buffer = ""
        self._pos = 0
        self._state = _State.START
        self._closed = False
        self._saw_value = False
        self._pending: JsonStreamError | None = None
        self._parts: list[str] = []
        self._reset_scan()

    def feed(self, chunk: bytes) -> list[Any]:
        """
        Add bytes and return every value completed by them.

        When the chunk completes some values and then hits a syntax error,
        the values are returned and the error is raised by the next call to
        ``check``, ``feed`` or ``close``.

        Raises
        ------
        JsonStreamError
            When the input is malformed.
        """
        self.check()
        if self._closed:
            message = "Parser already closed"
            raise JsonStreamError(message)
        try:
            text = self._text.decode(chunk)
        except UnicodeDecodeError as exc:
            message = f"Invalid UTF-8 in response body: {exc}"
            raise JsonStreamError(message) from exc
        if self._scanning:
            if not self._extend_scan(text):
                return []
        else:
            self._buffer += text
        values = self._collect(eof=False)
        self._compact()
        return values

    def close(self) -> list[Any]:
        """
        Signal end of input and return any values completed by it.

        Raises
        ------
        JsonStreamError
            When the input ends inside a value or an unclosed array.
        """
        self.check()
        if self._closed:
            return []
        try:
            tail = self._text.decode(b"", final=True)
        except UnicodeDecodeError as exc:
            message = f"Truncated UTF-8 sequence at end of body: {exc}"
            raise JsonStreamError(message) from exc
        self._buffer = "".join([self._buffer, *self._parts, tail])
        self._parts.clear()
        values = self._collect(eof=True)
        error: JsonStreamError | None = None
        if self._state in {_State.ARRAY_OPEN, _State.ARRAY_ELEMENT, _State.ARRAY_AFTER_ELEMENT}:
            error = JsonStreamError("Response body ended before the closing ']'")
        elif self.mode is StreamMode.UNWRAP_ARRAY and not self._saw_value:
            error = JsonStreamError("Response body is empty; expected a JSON array")
        self.reset()
        self._closed = True
        if error is not None:
            if not values:
                raise error
            self._pending = error
        return values

    def check(self) -> None:
        """
        Raise an error deferred behind already returned values.

        Raises
        ------
        JsonStreamError
            The deferred error, once.
        """
        if self._pending is not None:
            error, self._pending = self._pending, None
            self._closed = True
            raise error

    def reset(self) -> None:
        """Drop buffered partial input."""
        self._buffer = ""
        self._pos = 0
        self._state = _State.START
        self._parts.clear()
        self._reset_scan()

    @property
    def buffered_chars(self) -> int:
        """Number of characters held for an incomplete value."""
        return len(self._buffer) - self._pos + sum(len(part) for part in self._parts)

    def _reset_scan(self) -> None:
        self._scanning = False
        self._scan_done = False
        self._depth = 0
        self._in_string = False
        self._escape = False

    def _scan(self, text: str, pos: int) -> int | None:
        """Advance the bracket scan over ``text``; return the end offset once balanced."""
        depth, in_string, escape = self._depth, self._in_string, self._escape
        size = len(text)
        end: int | None = None
        if escape and pos < size:
            pos += 1
            escape = False
        while pos < size:
            if in_string:
                match = _STRING_STOP.search(text, pos)
                if match is None:
                    pos = size
                    break
                pos = match.end()
                if match.group() == "\\":
                    if pos >= size:
                        escape = True
                        break
                    pos += 1
                    continue
                in_string = False
                if depth == 0:
                    end = pos
                    break
                continue
            match = _STRUCTURAL.search(text, pos)
            if match is None:
                pos = size
                break
            pos = match.end()
            char = match.group()
            if char == '"':
                in_string = True
            elif char in "[{":
                depth += 1
            else:
                depth -= 1
                if depth <= 0:
                    end = pos
                    break
        self._depth, self._in_string, self._escape = depth, in_string, escape
        return end

    def _extend_scan(self, text: str) -> bool:
        """Scan newly arrived text for the end of the pending value; join it when found."""
        self._parts.append(text)
        if self._scan(text, 0) is None:
            return False
        self._buffer = "".join([self._buffer, *self._parts])
        self._parts.clear()
        self._scanning = False
        self._scan_done = True
        return True

    def _compact(self) -> None:
        if self._pos:
            self._buffer = self._buffer[self._pos :]
            self._pos = 0

    def _skip_whitespace(self) -> bool:
        buf = self._buffer
        pos = self._pos
        while pos < len(buf) and buf[pos] in _WHITESPACE:
            pos += 1
        self._pos = pos
        return pos < len(buf)

    def _collect(self, *, eof: bool) -> list[Any]:
        out: list[Any] = []
        try:
            self._drain(out, eof=eof)
        except JsonStreamError as exc:
            if not out:
                raise
            self._pending = exc
        return out

    def _drain(self, out: list[Any], *, eof: bool) -> None:  # noqa: C901
        while self._skip_whitespace():
            char = self._buffer[self._pos]
            state = self._state
            if state in {_State.START, _State.AFTER_ARRAY}:
                if state is _State.AFTER_ARRAY and self.mode is StreamMode.UNWRAP_ARRAY:
                    message = f"Unexpected data after the top-level array at offset {self._pos}"
                    raise JsonStreamError(message)
                if char == "[":
                    self._pos += 1
                    self._saw_value = True
                    self._state = _State.ARRAY_OPEN
                    continue
                if self.mode is StreamMode.UNWRAP_ARRAY:
                    message = f"Expected a top-level JSON array, found {char!r}"
                    raise JsonStreamError(message)
                if not self._decode_value(out, eof=eof):
                    break
                self._saw_value = True
            elif state is _State.ARRAY_OPEN and char == "]":
                self._pos += 1
                self._state = _State.AFTER_ARRAY
            elif state in {_State.ARRAY_OPEN, _State.ARRAY_ELEMENT}:
                if char == "]":
                    message = "Trailing comma before ']'"
                    raise JsonStreamError(message)
                if not self._decode_value(out, eof=eof):
                    break
                self._state = _State.ARRAY_AFTER_ELEMENT
            elif char == ",":
                self._pos += 1
                self._state = _State.ARRAY_ELEMENT
            elif char == "]":
                self._pos += 1
                self._state = _State.AFTER_ARRAY
            else:
                message = f"Expected ',' or ']' at offset {self._pos}, found {char!r}"
                raise JsonStreamError(message)

    def _decode_value(self, out: list[Any], *, eof: bool) -> bool:
        """Decode one value at the cursor; return False when more input is needed."""
        buf = self._buffer
        balanced = False
        if not eof and buf[self._pos] in _OPENERS:
            if not self._scan_done and self._scan(buf, self._pos) is None:
                self._scanning = True
                return False
            balanced = True
        try:
            value, end = self._decoder.raw_decode(buf, self._pos)
        except json.JSONDecodeError as exc:
            if eof or balanced or self._is_definitely_malformed(exc):
                message = f"Malformed JSON value: {exc.msg} at offset {exc.pos}"
                raise JsonStreamError(message) from exc
            return False
        finally:
            if balanced:
                self._reset_scan()
        is_number = isinstance(value, int | float) and not isinstance(value, bool)
        if is_number and not eof and (end == len(buf) or buf[end] in _NUMBER_TAIL):
            return False
        out.append(value)
        self._pos = end
        return True

    def _is_definitely_malformed(self, exc: json.JSONDecodeError) -> bool:
        if exc.msg.startswith("Unterminated string"):
            return False
        return exc.pos + _LOOKAHEAD_SLACK < len(self._buffer)
