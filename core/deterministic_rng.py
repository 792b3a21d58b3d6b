"""Deterministic Mersenne Twister streams with checkpointable state."""

from __future__ import annotations

import hashlib
import random
from dataclasses import dataclass

import numpy as np

from core.checkpointing import MT_STATE_SIZE, UINT32_MAX, CheckpointFormatError, RNGState


PARALLEL_TEMPERING_STREAM = "parallel_tempering"

# First element of ``random.Random.getstate()`` for the MT19937 generator.
_PYTHON_RNG_VERSION = 3


def derive_seed(seed: int, name: str) -> int:
    """Stable cross-process seed for a named stream."""
    digest = hashlib.sha256(f"{seed}:{name}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], byteorder="big", signed=False) & UINT32_MAX


def rng_state_from_random(rng: random.Random, seed: int) -> RNGState:
    """Capture the Mersenne Twister words and read position of ``rng``."""
    version, internal_state, _gauss_next = rng.getstate()
    if version != _PYTHON_RNG_VERSION or len(internal_state) != MT_STATE_SIZE + 1:
        raise CheckpointFormatError(f"Unsupported random.Random state version {version}.")
    position = int(internal_state[-1])
    return RNGState(
        state=tuple(internal_state[:-1]),
        cursor=position,
        remaining=MT_STATE_SIZE - position,
        seed=seed,
    )


def restore_random(rng: random.Random, state: RNGState) -> None:
    """Restore ``rng`` so it produces the same future output as when captured.

    The cached second Gaussian of ``random.gauss`` is not part of the
    checkpoint and is reset.
    """
    rng.setstate((_PYTHON_RNG_VERSION, (*state.state, state.cursor), None))


def rng_state_from_bit_generator(bit_generator: np.random.MT19937, seed: int) -> RNGState:
    """Capture the state of a numpy ``MT19937`` bit generator."""
    payload = bit_generator.state
    if payload.get("bit_generator") != "MT19937":
        raise CheckpointFormatError(
            f"Expected an MT19937 bit generator, got {payload.get('bit_generator')}."
        )
    key = np.asarray(payload["state"]["key"], dtype=np.uint32)
    position = int(payload["state"]["pos"])
    return RNGState(
        state=tuple(int(word) for word in key),
        cursor=position,
        remaining=MT_STATE_SIZE - position,
        seed=seed,
    )


def restore_bit_generator(bit_generator: np.random.MT19937, state: RNGState) -> None:
    bit_generator.state = {
        "bit_generator": "MT19937",
        "state": {"key": np.asarray(state.state, dtype=np.uint32), "pos": state.cursor},
    }


@dataclass
class DeterministicRNG:
    """Owns deterministic RNG streams without touching global random state."""

    seed: int

    def __post_init__(self) -> None:
        self.python_rng = random.Random(self.seed)
        self._streams: dict[str, random.Random] = {}
        self._stream_seeds: dict[str, int] = {}

    def stream(self, name: str) -> random.Random:
        """Return independent deterministic stream by name."""
        if name not in self._streams:
            derived_seed = derive_seed(self.seed, name)
            self._streams[name] = random.Random(derived_seed)
            self._stream_seeds[name] = derived_seed
        return self._streams[name]

    def mt_state(self) -> RNGState:
        """Checkpoint record of the primary stream."""
        return rng_state_from_random(self.python_rng, self.seed)

    def restore_mt_state(self, state: RNGState) -> None:
        self.seed = int(state.seed)
        restore_random(self.python_rng, state)

    def parallel_tempering_state(self) -> RNGState | None:
        """Checkpoint record of the replica-exchange stream, if one is active."""
        if PARALLEL_TEMPERING_STREAM not in self._streams:
            return None
        return rng_state_from_random(
            self._streams[PARALLEL_TEMPERING_STREAM],
            self._stream_seeds[PARALLEL_TEMPERING_STREAM],
        )

    def restore_parallel_tempering_state(self, state: RNGState | None) -> None:
        if state is None:
            self._streams.pop(PARALLEL_TEMPERING_STREAM, None)
            self._stream_seeds.pop(PARALLEL_TEMPERING_STREAM, None)
            return
        rng = self.stream(PARALLEL_TEMPERING_STREAM)
        restore_random(rng, state)
        self._stream_seeds[PARALLEL_TEMPERING_STREAM] = int(state.seed)
