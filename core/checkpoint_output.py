"""Checkpoint output component driven by the simulation step loop."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path

from configs.loader import CheckpointConfig
from core.checkpointing import CheckpointError, CheckpointState
from data.checkpoint_store import CheckpointStore


LOGGER = logging.getLogger(__name__)


class CheckpointOutput:
    """Write checkpoints to the configured destination.

    The step loop decides when to call ``do_output`` (every
    ``steps_per_checkpoint`` steps). Failures are fatal by default: they are
    logged with the destination path and the process exits with status 1.
    With ``fatal_on_error`` disabled the error propagates to the caller.
    """

    def __init__(self, config: CheckpointConfig, store: CheckpointStore | None = None) -> None:
        self.config = config
        self.store = store or CheckpointStore(
            byte_order=config.byte_order,
            write_header=config.write_header,
            atomic=config.atomic,
            filename=config.filename,
        )
        self.filename = self.store.checkpoint_path(config.output_dir, config.replica_dir)

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def steps_per_checkpoint(self) -> int:
        return self.config.frequency

    def do_output(self, step: int, state: CheckpointState) -> Path | None:
        """Write ``state`` as the checkpoint for completed ``step``."""
        if not self.enabled:
            return None

        state = dataclasses.replace(state, step=int(step))
        try:
            path = self.store.save(state, self.filename)
        except CheckpointError as exc:
            LOGGER.error("Error writing checkpoint output file %s: %s", self.filename, exc)
            if self.config.fatal_on_error:
                raise SystemExit(1) from exc
            raise

        LOGGER.info("Checkpoint saved to %s", path)
        return path
