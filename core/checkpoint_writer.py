"""Fixed-order checkpoint writer.

Sections are written with no tags; a reader has to consume them in exactly
this order:

1. step counter (completed step + 1)
2. box geometry
3. primary RNG state
4. coordinates
5. molecule lookup table
6. move statistics
7. parallel-tempering flag, then the auxiliary RNG state when enabled
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable

from core.array_sections import ARRAY_WRITERS, array_shape, flatten
from core.binary_codec import CheckpointStream, byte_order_prefix
from core.checkpointing import (
    CHECKPOINT_FORMAT_VERSION,
    CHECKPOINT_MAGIC,
    MOVE_STATISTICS_LAYOUT,
    UINT32_MAX,
    BoxGeometry,
    CheckpointFormatError,
    CheckpointState,
    CheckpointWriteError,
    DestinationUnavailableError,
    MoleculeLookupTable,
    MoveStatistics,
    RNGState,
)


LOGGER = logging.getLogger(__name__)


class CheckpointWriter:
    """Serialize a ``CheckpointState`` to a binary checkpoint file."""

    def __init__(self, byte_order: str = "little", write_header: bool = False, atomic: bool = False) -> None:
        byte_order_prefix(byte_order)
        self.byte_order = byte_order
        self.write_header = write_header
        self.atomic = atomic

    def validate(self, state: CheckpointState) -> None:
        """Check every precondition of the format before any byte is written."""
        if not 0 <= int(state.step) + 1 <= UINT32_MAX:
            raise CheckpointFormatError(f"Step {state.step} cannot be stored as an unsigned 32-bit counter.")
        rng_blocks = [("rng", state.rng)]
        if state.parallel_tempering is not None:
            rng_blocks.append(("parallel_tempering", state.parallel_tempering))
        for label, rng in rng_blocks:
            _check_uints(label, (*rng.state, rng.cursor, rng.remaining, rng.seed))

        table = state.molecule_lookup
        _check_uints("molecule_lookup", (*table.lookup, *table.box_and_kind_start, table.num_kinds, *table.fixed))

        for name, (ndim, kind) in MOVE_STATISTICS_LAYOUT.items():
            data = getattr(state.move_statistics, name)
            array_shape(data, ndim, name)
            if kind == "uint":
                _check_uints(name, flatten(data, ndim))
            else:
                _check_doubles(name, flatten(data, ndim))

    def write(self, path: str | Path, state: CheckpointState) -> Path:
        """Write ``state`` to ``path`` and return the final destination."""
        destination = Path(path)
        self.validate(state)

        target = destination.with_name(destination.name + ".tmp") if self.atomic else destination
        try:
            stream = CheckpointStream.open(target, self.byte_order)
        except OSError as exc:
            raise DestinationUnavailableError(destination, exc.strerror or str(exc)) from exc

        try:
            with stream:
                self.write_sections(stream, state)
            if self.atomic:
                os.replace(target, destination)
        except OSError as exc:
            if self.atomic:
                target.unlink(missing_ok=True)
            raise CheckpointWriteError(destination, exc.strerror or str(exc)) from exc
        except BaseException:
            if self.atomic:
                target.unlink(missing_ok=True)
            raise

        LOGGER.debug("Wrote %d checkpoint bytes to %s", stream.bytes_written, destination)
        return destination

    def write_sections(self, stream: CheckpointStream, state: CheckpointState) -> None:
        if self.write_header:
            self.write_format_header(stream)
        self.write_step(stream, state.step)
        self.write_box_geometry(stream, state.boxes)
        self.write_rng_state(stream, state.rng)
        self.write_coordinates(stream, state.coordinates)
        self.write_molecule_lookup(stream, state.molecule_lookup)
        self.write_move_statistics(stream, state.move_statistics)
        self.write_parallel_tempering(stream, state.parallel_tempering)

    @staticmethod
    def write_format_header(stream: CheckpointStream) -> None:
        stream.write_raw(CHECKPOINT_MAGIC)
        stream.write_uint(CHECKPOINT_FORMAT_VERSION)

    @staticmethod
    def write_step(stream: CheckpointStream, step: int) -> None:
        stream.write_uint(int(step) + 1)

    @staticmethod
    def write_box_geometry(stream: CheckpointStream, boxes: list[BoxGeometry]) -> None:
        stream.write_uint(len(boxes))
        for box in boxes:
            for value in box.axis:
                stream.write_double(value)
            for value in box.cos_angle:
                stream.write_double(value)

    @staticmethod
    def write_rng_state(stream: CheckpointStream, rng: RNGState) -> None:
        for word in rng.state:
            stream.write_uint(word)
        stream.write_uint(rng.cursor)
        stream.write_uint(rng.remaining)
        stream.write_uint(rng.seed)

    @staticmethod
    def write_coordinates(stream: CheckpointStream, coordinates: list[tuple[float, float, float]]) -> None:
        stream.write_uint(len(coordinates))
        for x, y, z in coordinates:
            stream.write_double(x)
            stream.write_double(y)
            stream.write_double(z)

    @staticmethod
    def write_molecule_lookup(stream: CheckpointStream, table: MoleculeLookupTable) -> None:
        for values in (table.lookup, table.box_and_kind_start):
            stream.write_uint(len(values))
            for value in values:
                stream.write_uint(value)
        stream.write_uint(table.num_kinds)
        stream.write_uint(len(table.fixed))
        for value in table.fixed:
            stream.write_uint(value)

    @staticmethod
    def write_move_statistics(stream: CheckpointStream, stats: MoveStatistics) -> None:
        for name, layout in MOVE_STATISTICS_LAYOUT.items():
            ARRAY_WRITERS[layout](stream, getattr(stats, name), name)

    def write_parallel_tempering(self, stream: CheckpointStream, rng: RNGState | None) -> None:
        stream.write_int8(1 if rng is not None else 0)
        if rng is not None:
            self.write_rng_state(stream, rng)


def _check_uints(label: str, values: Iterable[int]) -> None:
    for value in values:
        try:
            number = int(value)
        except (TypeError, ValueError) as exc:
            raise CheckpointFormatError(f"'{label}' holds {value!r}, which is not an integer.") from exc
        if not 0 <= number <= UINT32_MAX:
            raise CheckpointFormatError(f"'{label}' holds {value}, which is not an unsigned 32-bit value.")


def _check_doubles(label: str, values: Iterable[float]) -> None:
    for value in values:
        try:
            float(value)
        except (TypeError, ValueError) as exc:
            raise CheckpointFormatError(f"'{label}' holds {value!r}, which is not a real number.") from exc


def write_checkpoint(path: str | Path, state: CheckpointState, byte_order: str = "little") -> Path:
    """Convenience wrapper around ``CheckpointWriter.write``."""
    return CheckpointWriter(byte_order=byte_order).write(path, state)
