"""Fixed-width scalar codec for checkpoint files.

Every scalar occupies a fixed number of bytes:

* double  -> 8 bytes IEEE-754
* uint    -> unsigned 32-bit value stored in an 8-byte field, padding zeroed
* int8    -> 1 byte signed (parallel-tempering flag only)

Byte order is explicit rather than taken from the host.
"""

from __future__ import annotations

import struct
from pathlib import Path
from typing import BinaryIO

from core.checkpointing import (
    UINT32_MAX,
    CheckpointFormatError,
    ClosedStreamError,
    TruncatedCheckpointError,
)


DOUBLE_WIDTH = 8
UINT_WIDTH = 8
INT8_WIDTH = 1

BYTE_ORDERS: dict[str, str] = {"little": "<", "big": ">", "native": "="}


def byte_order_prefix(byte_order: str) -> str:
    try:
        return BYTE_ORDERS[byte_order]
    except KeyError:
        raise CheckpointFormatError(
            f"Unknown byte order '{byte_order}', expected one of {sorted(BYTE_ORDERS)}."
        ) from None


def encode_double(value: float, byte_order: str = "little") -> bytes:
    return struct.pack(byte_order_prefix(byte_order) + "d", float(value))


def decode_double(data: bytes, byte_order: str = "little") -> float:
    return struct.unpack(byte_order_prefix(byte_order) + "d", data)[0]


def encode_uint(value: int, byte_order: str = "little") -> bytes:
    """Encode a uint32 into an 8-byte container with zeroed upper bytes."""
    number = int(value)
    if not 0 <= number <= UINT32_MAX:
        raise CheckpointFormatError(f"Value {number} does not fit in an unsigned 32-bit field.")
    return struct.pack(byte_order_prefix(byte_order) + "Q", number)


def decode_uint(data: bytes, byte_order: str = "little") -> int:
    """Decode an 8-byte uint field, ignoring whatever the padding bytes hold."""
    return struct.unpack(byte_order_prefix(byte_order) + "Q", data)[0] & UINT32_MAX


def encode_int8(value: int) -> bytes:
    number = int(value)
    if not -128 <= number <= 127:
        raise CheckpointFormatError(f"Value {number} does not fit in a signed byte.")
    return struct.pack("b", number)


def decode_int8(data: bytes) -> int:
    return struct.unpack("b", data)[0]


class CheckpointStream:
    """Append-only scalar writer over an open binary handle.

    Each write checks that the handle is still open and flushes it before
    returning.
    """

    def __init__(self, handle: BinaryIO | None, path: str | Path, byte_order: str = "little") -> None:
        byte_order_prefix(byte_order)
        self.handle = handle
        self.path = Path(path)
        self.byte_order = byte_order
        self.bytes_written = 0

    @classmethod
    def open(cls, path: str | Path, byte_order: str = "little") -> "CheckpointStream":
        """Create or truncate ``path`` in binary mode.

        ``OSError`` propagates to the caller, which maps it to a destination
        error naming the path.
        """
        return cls(open(path, "wb"), path, byte_order)

    @property
    def is_open(self) -> bool:
        return self.handle is not None and not self.handle.closed

    def _emit(self, payload: bytes) -> None:
        if not self.is_open:
            raise ClosedStreamError(self.path)
        self.handle.write(payload)  # type: ignore[union-attr]
        self.handle.flush()  # type: ignore[union-attr]
        self.bytes_written += len(payload)

    def write_raw(self, payload: bytes) -> None:
        self._emit(payload)

    def write_double(self, value: float) -> None:
        self._emit(encode_double(value, self.byte_order))

    def write_uint(self, value: int) -> None:
        self._emit(encode_uint(value, self.byte_order))

    def write_int8(self, value: int) -> None:
        self._emit(encode_int8(value))

    def close(self) -> None:
        if self.is_open:
            self.handle.close()  # type: ignore[union-attr]

    def __enter__(self) -> "CheckpointStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class CheckpointCursor:
    """Sequential scalar reader over checkpoint bytes."""

    def __init__(self, data: bytes, byte_order: str = "little") -> None:
        byte_order_prefix(byte_order)
        self.data = bytes(data)
        self.byte_order = byte_order
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def peek(self, size: int) -> bytes:
        return self.data[self.offset:self.offset + size]

    def take(self, size: int) -> bytes:
        if self.remaining < size:
            raise TruncatedCheckpointError(
                f"Checkpoint truncated at byte {self.offset}: needed {size} bytes, {self.remaining} left."
            )
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk

    def read_double(self) -> float:
        return decode_double(self.take(DOUBLE_WIDTH), self.byte_order)

    def read_uint(self) -> int:
        return decode_uint(self.take(UINT_WIDTH), self.byte_order)

    def read_int8(self) -> int:
        return decode_int8(self.take(INT8_WIDTH))
