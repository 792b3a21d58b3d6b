"""Tests for the checkpoint output component and its failure policy."""

from __future__ import annotations

import errno
import logging
from pathlib import Path

import pytest

from configs.loader import from_mapping
from core.binary_codec import CheckpointStream, decode_uint
from core.checkpoint_output import CheckpointOutput
from core.checkpointing import (
    BoxGeometry,
    CheckpointError,
    CheckpointState,
    CheckpointWriteError,
    DestinationUnavailableError,
    MoleculeLookupTable,
    MoveStatistics,
)
from core.deterministic_rng import DeterministicRNG
from data.checkpoint_store import CheckpointStore


def _state() -> CheckpointState:
    return CheckpointState(
        step=0,
        boxes=[BoxGeometry(axis=(20.0, 20.0, 20.0))],
        rng=DeterministicRNG(11).mt_state(),
        coordinates=[(1.0, 2.0, 3.0)],
        molecule_lookup=MoleculeLookupTable(lookup=(0,), box_and_kind_start=(0, 1), num_kinds=1, fixed=(0,)),
        move_statistics=MoveStatistics(
            scale=[[[0.3]]],
            accept_percent=[[[0.5]]],
            accepted=[[[5]]],
            tries=[[[10]]],
            temp_accepted=[[[1]]],
            temp_tries=[[[2]]],
            mp_tries=[[0]],
            mp_accepted=[[0]],
            mp_t_max=[0.1],
            mp_r_max=[0.2],
        ),
    )


def _output(tmp_path, **overrides) -> CheckpointOutput:
    payload = {"enabled": True, "frequency": 100, "output_dir": str(tmp_path)}
    payload.update(overrides)
    return CheckpointOutput(from_mapping(payload))


def test_disabled_output_writes_nothing(tmp_path) -> None:
    output = _output(tmp_path, enabled=False)

    assert output.do_output(100, _state()) is None
    assert list(tmp_path.iterdir()) == []


def test_output_writes_next_step_and_confirms(tmp_path, caplog) -> None:
    output = _output(tmp_path)

    with caplog.at_level(logging.INFO):
        path = output.do_output(249, _state())

    assert path == tmp_path / "checkpoint.dat"
    assert decode_uint(path.read_bytes()[:8]) == 250
    assert f"Checkpoint saved to {path}" in caplog.text
    assert output.steps_per_checkpoint == 100


def test_replica_directory_in_destination(tmp_path) -> None:
    (tmp_path / "replica_1").mkdir()
    output = _output(tmp_path, replica_dir="replica_1")

    path = output.do_output(0, _state())

    assert path == tmp_path / "replica_1" / "checkpoint.dat"
    assert CheckpointStore().list_checkpoints(tmp_path) == [path]


def test_unwritable_destination_is_fatal(tmp_path, caplog) -> None:
    output = _output(tmp_path, replica_dir="missing")

    with pytest.raises(SystemExit) as excinfo:
        output.do_output(0, _state())

    assert excinfo.value.code == 1
    assert str(tmp_path / "missing" / "checkpoint.dat") in caplog.text
    assert not (tmp_path / "missing").exists()


def test_non_fatal_policy_propagates_error(tmp_path) -> None:
    output = _output(tmp_path, replica_dir="missing", fatal_on_error=False)

    with pytest.raises(DestinationUnavailableError):
        output.do_output(0, _state())


def test_store_round_trip(tmp_path) -> None:
    store = CheckpointStore(write_header=True)
    path = store.checkpoint_path(tmp_path)

    store.save(_state(), path)

    assert store.load(path) == _state()


def test_output_leaves_caller_state_untouched(tmp_path) -> None:
    state = _state()

    path = _output(tmp_path).do_output(249, state)

    assert state.step == 0
    assert decode_uint(path.read_bytes()[:8]) == 250


def _fail_with_disk_full(self, value) -> None:
    raise OSError(errno.ENOSPC, "No space left on device")


def test_mid_write_failure_is_fatal(tmp_path, monkeypatch, caplog) -> None:
    monkeypatch.setattr(CheckpointStream, "write_double", _fail_with_disk_full)
    output = _output(tmp_path)

    with pytest.raises(SystemExit) as excinfo:
        output.do_output(0, _state())

    assert excinfo.value.code == 1
    assert str(tmp_path / "checkpoint.dat") in caplog.text


def test_mid_write_failure_with_atomic_output_propagates(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr(CheckpointStream, "write_double", _fail_with_disk_full)
    output = _output(tmp_path, atomic=True, fatal_on_error=False)

    with pytest.raises(CheckpointWriteError, match="No space left on device"):
        output.do_output(0, _state())

    assert list(tmp_path.iterdir()) == []


FULL_DEVICE = Path("/dev/full")


@pytest.mark.skipif(not FULL_DEVICE.exists(), reason="requires /dev/full")
def test_full_device_raises_checkpoint_error() -> None:
    output = _output(FULL_DEVICE.parent, filename=FULL_DEVICE.name, fatal_on_error=False)

    with pytest.raises(CheckpointError, match="/dev/full"):
        output.do_output(0, _state())


@pytest.mark.skipif(not FULL_DEVICE.exists(), reason="requires /dev/full")
def test_full_device_is_fatal(caplog) -> None:
    output = _output(FULL_DEVICE.parent, filename=FULL_DEVICE.name)

    with pytest.raises(SystemExit) as excinfo:
        output.do_output(0, _state())

    assert excinfo.value.code == 1
    assert "Error writing checkpoint output file /dev/full" in caplog.text
