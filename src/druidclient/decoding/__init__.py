"""Buffered and streaming decoders for broker responses."""

from druidclient.decoding.buffered import decode_body, decode_response, raise_for_status
from druidclient.decoding.streaming import decode_stream

__all__ = ["decode_body", "decode_response", "decode_stream", "raise_for_status"]
