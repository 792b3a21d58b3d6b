"""Checkpoint contracts for exact Monte Carlo restart."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence


# MT19937 keeps 624 32-bit words of internal state.
MT_STATE_SIZE = 624
UINT32_MAX = 0xFFFFFFFF

CHECKPOINT_MAGIC = b"MCCHKPT1"
CHECKPOINT_FORMAT_VERSION = 1
DEFAULT_CHECKPOINT_FILENAME = "checkpoint.dat"


class CheckpointError(RuntimeError):
    """Base class for checkpoint write/read failures."""


class DestinationUnavailableError(CheckpointError):
    """Raised when the checkpoint destination cannot be opened for writing."""

    def __init__(self, path: Any, reason: str = "") -> None:
        self.path = path
        message = f"Error opening checkpoint output file {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class CheckpointWriteError(CheckpointError):
    """Raised when writing, closing or renaming an opened checkpoint fails."""

    def __init__(self, path: Any, reason: str = "") -> None:
        self.path = path
        message = f"Error writing checkpoint output file {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ClosedStreamError(CheckpointError):
    """Raised when a scalar write is attempted on a closed or missing stream."""

    def __init__(self, path: Any) -> None:
        self.path = path
        super().__init__(f"Checkpoint output file {path} is not open for writing")


class CheckpointFormatError(CheckpointError, ValueError):
    """Raised when a value cannot be represented in (or read from) the format."""


class ShapeInconsistencyError(CheckpointFormatError):
    """Raised for ragged or empty multi-dimensional arrays."""


class TruncatedCheckpointError(CheckpointFormatError):
    """Raised when a checkpoint ends before a section is complete."""


class CheckpointSchemaError(CheckpointFormatError):
    """Raised for unknown checkpoint magic or format versions."""


@dataclass(frozen=True)
class BoxGeometry:
    """One periodic cell: axis lengths and cosines of the cell angles."""

    axis: tuple[float, float, float]
    cos_angle: tuple[float, float, float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        object.__setattr__(self, "axis", _triple(self.axis, "axis"))
        object.__setattr__(self, "cos_angle", _triple(self.cos_angle, "cos_angle"))


@dataclass(frozen=True)
class RNGState:
    """Full Mersenne Twister state plus read position and seed.

    ``cursor`` is the index of the next state word to temper and
    ``remaining`` the number of words left before the state is regenerated.
    """

    state: tuple[int, ...]
    cursor: int
    remaining: int
    seed: int

    def __post_init__(self) -> None:
        words = tuple(int(word) for word in to_plain(self.state))
        if len(words) != MT_STATE_SIZE:
            raise CheckpointFormatError(
                f"RNG state must hold {MT_STATE_SIZE} words, got {len(words)}."
            )
        object.__setattr__(self, "state", words)
        for name in ("cursor", "remaining", "seed"):
            object.__setattr__(self, name, int(getattr(self, name)))
        if not 0 <= self.cursor <= MT_STATE_SIZE:
            raise CheckpointFormatError(f"RNG cursor out of range: {self.cursor}.")


@dataclass(frozen=True)
class MoleculeLookupTable:
    """Molecule bookkeeping arrays mapping molecules to boxes and kinds."""

    lookup: tuple[int, ...] = ()
    box_and_kind_start: tuple[int, ...] = ()
    num_kinds: int = 0
    fixed: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "lookup", tuple(int(v) for v in to_plain(self.lookup)))
        object.__setattr__(
            self,
            "box_and_kind_start",
            tuple(int(v) for v in to_plain(self.box_and_kind_start)),
        )
        object.__setattr__(self, "num_kinds", int(self.num_kinds))
        object.__setattr__(self, "fixed", tuple(int(v) for v in to_plain(self.fixed)))


@dataclass
class MoveStatistics:
    """Adaptive move-tuning arrays.

    3D arrays are indexed ``[box][move kind][kind]``, the multi-particle
    counters ``[box][kind]`` and the maximum displacements ``[box]``.
    """

    scale: Sequence[Any]
    accept_percent: Sequence[Any]
    accepted: Sequence[Any]
    tries: Sequence[Any]
    temp_accepted: Sequence[Any]
    temp_tries: Sequence[Any]
    mp_tries: Sequence[Any]
    mp_accepted: Sequence[Any]
    mp_t_max: Sequence[Any]
    mp_r_max: Sequence[Any]

    def __post_init__(self) -> None:
        for name in MOVE_STATISTICS_LAYOUT:
            setattr(self, name, to_plain(getattr(self, name)))


# Field order and (dimensions, scalar kind) of the move statistics section.
MOVE_STATISTICS_LAYOUT: dict[str, tuple[int, str]] = {
    "scale": (3, "double"),
    "accept_percent": (3, "double"),
    "accepted": (3, "uint"),
    "tries": (3, "uint"),
    "temp_accepted": (3, "uint"),
    "temp_tries": (3, "uint"),
    "mp_tries": (2, "uint"),
    "mp_accepted": (2, "uint"),
    "mp_t_max": (1, "double"),
    "mp_r_max": (1, "double"),
}


@dataclass
class CheckpointState:
    """Transient snapshot of everything needed to resume a simulation."""

    step: int
    boxes: list[BoxGeometry]
    rng: RNGState
    coordinates: list[tuple[float, float, float]]
    molecule_lookup: MoleculeLookupTable
    move_statistics: MoveStatistics
    parallel_tempering: RNGState | None = None
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        self.boxes = list(self.boxes)
        self.coordinates = [_triple(xyz, "coordinate") for xyz in to_plain(self.coordinates)]

    @property
    def parallel_tempering_enabled(self) -> bool:
        return self.parallel_tempering is not None


def to_plain(value: Any) -> Any:
    """Convert numpy arrays (or anything with ``tolist``) to nested lists."""
    if hasattr(value, "tolist"):
        return value.tolist()
    return value


def _triple(value: Any, label: str) -> tuple[float, float, float]:
    items = tuple(float(v) for v in to_plain(value))
    if len(items) != 3:
        raise CheckpointFormatError(f"Expected 3 values for {label}, got {len(items)}.")
    return items  # type: ignore[return-value]
