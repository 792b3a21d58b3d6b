"""Restore a ``CheckpointState`` from a binary checkpoint file."""

from __future__ import annotations

from pathlib import Path

from core.array_sections import ARRAY_READERS
from core.binary_codec import CheckpointCursor, DOUBLE_WIDTH
from core.checkpointing import (
    CHECKPOINT_FORMAT_VERSION,
    CHECKPOINT_MAGIC,
    MOVE_STATISTICS_LAYOUT,
    MT_STATE_SIZE,
    BoxGeometry,
    CheckpointFormatError,
    CheckpointSchemaError,
    CheckpointState,
    MoleculeLookupTable,
    MoveStatistics,
    RNGState,
)


class CheckpointReader:
    """Read sections back in the order ``CheckpointWriter`` emits them.

    A leading format header is detected by its magic bytes. A headerless
    file starts with the step counter, whose padding bytes are zero, so the
    two cannot be confused.
    """

    def __init__(self, byte_order: str = "little") -> None:
        self.byte_order = byte_order

    def read(self, path: str | Path) -> CheckpointState:
        return self.read_bytes(Path(path).read_bytes())

    def read_bytes(self, data: bytes) -> CheckpointState:
        cursor = CheckpointCursor(data, self.byte_order)
        has_header = self.read_format_header(cursor)

        step = cursor.read_uint() - 1
        boxes = self.read_box_geometry(cursor)
        rng = self.read_rng_state(cursor)
        coordinates = self.read_coordinates(cursor)
        molecule_lookup = self.read_molecule_lookup(cursor)
        move_statistics = self.read_move_statistics(cursor)

        parallel_tempering = None
        if cursor.read_int8():
            parallel_tempering = self.read_rng_state(cursor)

        if cursor.remaining:
            raise CheckpointFormatError(
                f"Unexpected {cursor.remaining} trailing bytes after offset {cursor.offset}."
            )

        return CheckpointState(
            step=step,
            boxes=boxes,
            rng=rng,
            coordinates=coordinates,
            molecule_lookup=molecule_lookup,
            move_statistics=move_statistics,
            parallel_tempering=parallel_tempering,
            metadata={"format_header": has_header, "size": len(data)},
        )

    @staticmethod
    def read_format_header(cursor: CheckpointCursor) -> bool:
        if cursor.peek(len(CHECKPOINT_MAGIC)) != CHECKPOINT_MAGIC:
            return False
        cursor.take(len(CHECKPOINT_MAGIC))
        version = cursor.read_uint()
        if version != CHECKPOINT_FORMAT_VERSION:
            raise CheckpointSchemaError(
                f"Checkpoint format version mismatch: expected {CHECKPOINT_FORMAT_VERSION}, got {version}."
            )
        return True

    @staticmethod
    def read_box_geometry(cursor: CheckpointCursor) -> list[BoxGeometry]:
        boxes = []
        for _ in range(cursor.read_uint()):
            axis = (cursor.read_double(), cursor.read_double(), cursor.read_double())
            cos_angle = (cursor.read_double(), cursor.read_double(), cursor.read_double())
            boxes.append(BoxGeometry(axis=axis, cos_angle=cos_angle))
        return boxes

    @staticmethod
    def read_rng_state(cursor: CheckpointCursor) -> RNGState:
        words = [cursor.read_uint() for _ in range(MT_STATE_SIZE)]
        cursor_position = cursor.read_uint()
        remaining = cursor.read_uint()
        seed = cursor.read_uint()
        return RNGState(state=tuple(words), cursor=cursor_position, remaining=remaining, seed=seed)

    @staticmethod
    def read_coordinates(cursor: CheckpointCursor) -> list[tuple[float, float, float]]:
        count = cursor.read_uint()
        if count * 3 * DOUBLE_WIDTH > cursor.remaining:
            raise CheckpointFormatError(f"Coordinate count {count} exceeds the remaining file size.")
        return [(cursor.read_double(), cursor.read_double(), cursor.read_double()) for _ in range(count)]

    @staticmethod
    def read_molecule_lookup(cursor: CheckpointCursor) -> MoleculeLookupTable:
        lookup = [cursor.read_uint() for _ in range(cursor.read_uint())]
        box_and_kind_start = [cursor.read_uint() for _ in range(cursor.read_uint())]
        num_kinds = cursor.read_uint()
        fixed = [cursor.read_uint() for _ in range(cursor.read_uint())]
        return MoleculeLookupTable(
            lookup=tuple(lookup),
            box_and_kind_start=tuple(box_and_kind_start),
            num_kinds=num_kinds,
            fixed=tuple(fixed),
        )

    @staticmethod
    def read_move_statistics(cursor: CheckpointCursor) -> MoveStatistics:
        arrays = {name: ARRAY_READERS[layout](cursor) for name, layout in MOVE_STATISTICS_LAYOUT.items()}
        return MoveStatistics(**arrays)


def read_checkpoint(path: str | Path, byte_order: str = "little") -> CheckpointState:
    """Convenience wrapper around ``CheckpointReader.read``."""
    return CheckpointReader(byte_order=byte_order).read(path)
