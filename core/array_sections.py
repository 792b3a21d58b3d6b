"""Dimension-prefixed array encoders for the move statistics section."""

from __future__ import annotations

import math
from typing import Any, Callable, Sequence

from core.binary_codec import DOUBLE_WIDTH, UINT_WIDTH, CheckpointCursor, CheckpointStream
from core.checkpointing import ShapeInconsistencyError, TruncatedCheckpointError, to_plain


def array_shape(data: Any, ndim: int, name: str = "array") -> tuple[int, ...]:
    """Return the rectangular shape of a nested sequence.

    Every non-innermost dimension must be non-empty, since the sizes of the
    inner dimensions are taken from the first element.
    """
    data = to_plain(data)
    if not hasattr(data, "__len__"):
        raise ShapeInconsistencyError(f"'{name}' has fewer dimensions than expected.")
    if ndim == 1:
        for index, value in enumerate(data):
            if hasattr(value, "__len__"):
                raise ShapeInconsistencyError(
                    f"'{name}' has more dimensions than expected at element {index}."
                )
        return (len(data),)

    outer = len(data)
    if outer == 0:
        raise ShapeInconsistencyError(
            f"'{name}' has an empty outer dimension; cannot derive inner sizes."
        )
    inner = array_shape(data[0], ndim - 1, name)
    for index, row in enumerate(data):
        row_shape = array_shape(row, ndim - 1, name)
        if row_shape != inner:
            raise ShapeInconsistencyError(
                f"'{name}' is ragged: element {index} has shape {row_shape}, expected {inner}."
            )
    return (outer, *inner)


def flatten(data: Any, ndim: int) -> list[Any]:
    if ndim == 1:
        return list(data)
    values: list[Any] = []
    for row in data:
        values.extend(flatten(row, ndim - 1))
    return values


def _write_array(
    stream: CheckpointStream,
    data: Any,
    ndim: int,
    write_value: Callable[[Any], None],
    name: str,
) -> None:
    data = to_plain(data)
    shape = array_shape(data, ndim, name)
    for size in shape:
        stream.write_uint(size)
    for value in flatten(data, ndim):
        write_value(value)


def write_array_3d_double(stream: CheckpointStream, data: Any, name: str = "array") -> None:
    _write_array(stream, data, 3, stream.write_double, name)


def write_array_3d_uint(stream: CheckpointStream, data: Any, name: str = "array") -> None:
    _write_array(stream, data, 3, stream.write_uint, name)


def write_array_2d_uint(stream: CheckpointStream, data: Any, name: str = "array") -> None:
    _write_array(stream, data, 2, stream.write_uint, name)


def write_array_1d_double(stream: CheckpointStream, data: Any, name: str = "array") -> None:
    _write_array(stream, data, 1, stream.write_double, name)


def _read_array(
    cursor: CheckpointCursor,
    ndim: int,
    read_value: Callable[[], Any],
    width: int,
) -> list[Any]:
    shape = [cursor.read_uint() for _ in range(ndim)]
    # Row and value counts are bounded by the bytes left, before any row is built.
    needed = math.prod(shape) * width
    rows = max(math.prod(shape[:depth]) for depth in range(1, ndim + 1))
    if rows > cursor.remaining or needed > cursor.remaining:
        raise TruncatedCheckpointError(
            f"Array of shape {tuple(shape)} needs {needed} bytes, "
            f"only {cursor.remaining} remain."
        )

    def build(depth: int) -> list[Any]:
        if depth == ndim - 1:
            return [read_value() for _ in range(shape[depth])]
        return [build(depth + 1) for _ in range(shape[depth])]

    return build(0)


def read_array_3d_double(cursor: CheckpointCursor) -> list[list[list[float]]]:
    return _read_array(cursor, 3, cursor.read_double, DOUBLE_WIDTH)


def read_array_3d_uint(cursor: CheckpointCursor) -> list[list[list[int]]]:
    return _read_array(cursor, 3, cursor.read_uint, UINT_WIDTH)


def read_array_2d_uint(cursor: CheckpointCursor) -> list[list[int]]:
    return _read_array(cursor, 2, cursor.read_uint, UINT_WIDTH)


def read_array_1d_double(cursor: CheckpointCursor) -> list[float]:
    return _read_array(cursor, 1, cursor.read_double, DOUBLE_WIDTH)


ARRAY_WRITERS: dict[tuple[int, str], Callable[[CheckpointStream, Any, str], None]] = {
    (3, "double"): write_array_3d_double,
    (3, "uint"): write_array_3d_uint,
    (2, "uint"): write_array_2d_uint,
    (1, "double"): write_array_1d_double,
}

ARRAY_READERS: dict[tuple[int, str], Callable[[CheckpointCursor], Sequence[Any]]] = {
    (3, "double"): read_array_3d_double,
    (3, "uint"): read_array_3d_uint,
    (2, "uint"): read_array_2d_uint,
    (1, "double"): read_array_1d_double,
}
