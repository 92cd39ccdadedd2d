"""Length-prefixed framing over trio streams, with size limits and timeouts."""

from __future__ import annotations

import struct
from typing import Any

import trio

from .constants import READ_TIMEOUT, REQUEST_MAX_BYTES, WRITE_TIMEOUT
from .errors import SchemaError, SizeLimitError

_HEADER = struct.Struct(">I")


async def receive_exact(stream: Any, size: int, timeout: float) -> bytes:
    """Read exactly ``size`` bytes; a short read is a protocol error."""
    if size < 0:
        raise SchemaError("invalid read size")
    data = bytearray()
    with trio.fail_after(timeout):
        while len(data) < size:
            chunk = await stream.receive_some(size - len(data))
            if not chunk:
                raise SchemaError("unexpected EOF")
            data.extend(chunk)
    return bytes(data)


async def read_frame(
    stream: Any, max_bytes: int = REQUEST_MAX_BYTES, timeout: float = READ_TIMEOUT
) -> bytes:
    header = await receive_exact(stream, _HEADER.size, timeout)
    (length,) = _HEADER.unpack(header)
    if length > max_bytes:
        raise SizeLimitError(f"frame of {length} bytes exceeds {max_bytes}")
    return await receive_exact(stream, length, timeout)


async def write_frame(
    stream: Any,
    payload: bytes,
    max_bytes: int = REQUEST_MAX_BYTES,
    timeout: float = WRITE_TIMEOUT,
) -> None:
    if len(payload) > max_bytes:
        raise SizeLimitError(f"frame of {len(payload)} bytes exceeds {max_bytes}")
    with trio.fail_after(timeout):
        await stream.send_all(_HEADER.pack(len(payload)) + payload)
