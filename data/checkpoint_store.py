"""Checkpoint destinations, per-replica layout and binary save/load."""

from __future__ import annotations

from pathlib import Path

from core.checkpoint_reader import CheckpointReader
from core.checkpoint_writer import CheckpointWriter
from core.checkpointing import DEFAULT_CHECKPOINT_FILENAME, CheckpointState


class CheckpointStore:
    """Save/load/list checkpoints without simulator dependencies.

    Destination directories are never created here; a missing directory is
    reported by the writer as an unavailable destination.
    """

    def __init__(
        self,
        byte_order: str = "little",
        write_header: bool = False,
        atomic: bool = False,
        filename: str = DEFAULT_CHECKPOINT_FILENAME,
    ) -> None:
        self.filename = filename
        self.writer = CheckpointWriter(byte_order=byte_order, write_header=write_header, atomic=atomic)
        self.reader = CheckpointReader(byte_order=byte_order)

    def save(self, state: CheckpointState, path: Path) -> Path:
        return self.writer.write(path, state)

    def load(self, path: Path) -> CheckpointState:
        return self.reader.read(path)

    def checkpoint_path(self, output_dir: str | Path, replica_dir: str | None = None) -> Path:
        base = Path(output_dir)
        if replica_dir:
            base = base / replica_dir
        return base / self.filename

    def list_checkpoints(self, output_dir: str | Path) -> list[Path]:
        base = Path(output_dir)
        if not base.exists():
            return []
        files = [p for p in base.rglob(self.filename) if p.is_file()]
        return sorted(files)
