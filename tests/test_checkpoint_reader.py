"""Round-trip tests for the checkpoint reader."""

from __future__ import annotations

import pytest

from core.binary_codec import encode_uint
from core.checkpoint_reader import CheckpointReader, read_checkpoint
from core.checkpoint_writer import CheckpointWriter, write_checkpoint
from core.checkpointing import (
    CHECKPOINT_MAGIC,
    BoxGeometry,
    CheckpointFormatError,
    CheckpointSchemaError,
    CheckpointState,
    MoleculeLookupTable,
    MoveStatistics,
    TruncatedCheckpointError,
)
from core.deterministic_rng import PARALLEL_TEMPERING_STREAM, DeterministicRNG


def _state() -> CheckpointState:
    rng = DeterministicRNG(2024)
    for _ in range(11):
        rng.python_rng.random()
    rng.stream(PARALLEL_TEMPERING_STREAM).random()
    return CheckpointState(
        step=4999,
        boxes=[
            BoxGeometry(axis=(30.1, 30.2, 45.7), cos_angle=(0.0, 0.0, 0.5)),
            BoxGeometry(axis=(60.0, 60.0, 60.0)),
        ],
        rng=rng.mt_state(),
        coordinates=[(0.1 * i, -0.2 * i, 1e-9 * i) for i in range(10)],
        molecule_lookup=MoleculeLookupTable(
            lookup=(0, 2, 4, 1, 3), box_and_kind_start=(0, 2, 3, 4, 5), num_kinds=2, fixed=(0, 1, 0, 0, 0)
        ),
        move_statistics=MoveStatistics(
            scale=[[[0.11, 0.12], [0.13, 0.14]], [[0.21, 0.22], [0.23, 0.24]]],
            accept_percent=[[[0.5, 0.4], [0.3, 0.2]], [[0.1, 0.0], [0.9, 0.8]]],
            accepted=[[[1, 2], [3, 4]], [[5, 6], [7, 8]]],
            tries=[[[10, 20], [30, 40]], [[50, 60], [70, 80]]],
            temp_accepted=[[[0, 1], [0, 1]], [[1, 0], [1, 0]]],
            temp_tries=[[[2, 2], [2, 2]], [[3, 3], [3, 3]]],
            mp_tries=[[9, 8], [7, 6]],
            mp_accepted=[[1, 1], [2, 2]],
            mp_t_max=[0.05, 0.07],
            mp_r_max=[0.3, 0.35],
        ),
        parallel_tempering=rng.parallel_tempering_state(),
    )


def test_round_trip_restores_every_section(tmp_path) -> None:
    original = _state()
    restored = read_checkpoint(write_checkpoint(tmp_path / "checkpoint.dat", original))

    assert restored.step == original.step
    assert restored.boxes == original.boxes
    assert restored.rng == original.rng
    assert restored.coordinates == original.coordinates
    assert restored.molecule_lookup == original.molecule_lookup
    assert restored.move_statistics == original.move_statistics
    assert restored.parallel_tempering == original.parallel_tempering
    assert restored == original


def test_round_trip_without_parallel_tempering(tmp_path) -> None:
    original = _state()
    original.parallel_tempering = None

    restored = read_checkpoint(write_checkpoint(tmp_path / "checkpoint.dat", original))

    assert restored.parallel_tempering is None
    assert restored == original


def test_rewriting_restored_state_reproduces_bytes(tmp_path) -> None:
    first = write_checkpoint(tmp_path / "first.dat", _state())
    second = write_checkpoint(tmp_path / "second.dat", read_checkpoint(first))

    assert first.read_bytes() == second.read_bytes()


def test_header_detected_and_version_checked(tmp_path) -> None:
    path = CheckpointWriter(write_header=True).write(tmp_path / "h.dat", _state())
    restored = CheckpointReader().read(path)
    assert restored.metadata["format_header"] is True

    data = path.read_bytes()
    path.write_bytes(CHECKPOINT_MAGIC + encode_uint(99) + data[16:])
    with pytest.raises(CheckpointSchemaError, match="version mismatch"):
        CheckpointReader().read(path)


def test_big_endian_requires_matching_reader(tmp_path) -> None:
    path = write_checkpoint(tmp_path / "be.dat", _state(), byte_order="big")

    assert read_checkpoint(path, byte_order="big") == _state()


def test_garbage_in_padding_bytes_is_ignored(tmp_path) -> None:
    path = write_checkpoint(tmp_path / "legacy.dat", _state())
    data = bytearray(path.read_bytes())
    data[4:8] = b"\xde\xad\xbe\xef"
    path.write_bytes(bytes(data))

    assert read_checkpoint(path).step == 4999


def test_truncated_file_rejected(tmp_path) -> None:
    path = write_checkpoint(tmp_path / "short.dat", _state())
    path.write_bytes(path.read_bytes()[:-9])

    with pytest.raises(TruncatedCheckpointError):
        read_checkpoint(path)


def test_trailing_bytes_rejected(tmp_path) -> None:
    path = write_checkpoint(tmp_path / "long.dat", _state())
    path.write_bytes(path.read_bytes() + b"\x00")

    with pytest.raises(CheckpointFormatError, match="trailing"):
        read_checkpoint(path)
