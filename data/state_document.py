"""Convert checkpoint snapshots to and from plain JSON/YAML documents."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from pathlib import Path
from typing import Any, Mapping

import yaml

from core.checkpointing import (
    MOVE_STATISTICS_LAYOUT,
    BoxGeometry,
    CheckpointState,
    MoleculeLookupTable,
    MoveStatistics,
    RNGState,
)
from core.array_sections import array_shape
from core.deterministic_rng import PARALLEL_TEMPERING_STREAM, DeterministicRNG


class StateDocumentError(ValueError):
    """Raised when a state document cannot be turned into a snapshot."""


def _to_jsonable(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        return {k: _to_jsonable(v) for k, v in dataclasses.asdict(value).items()}
    if hasattr(value, "tolist"):
        return value.tolist()
    if isinstance(value, dict):
        return {str(k): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


def state_to_document(state: CheckpointState) -> dict[str, Any]:
    """Full JSON-compatible view of a snapshot."""
    return _to_jsonable(state)


def _rng_digest(rng: RNGState) -> dict[str, Any]:
    words = json.dumps(list(rng.state), separators=(",", ":")).encode("utf-8")
    return {
        "cursor": rng.cursor,
        "remaining": rng.remaining,
        "seed": rng.seed,
        "state_sha256": hashlib.sha256(words).hexdigest(),
    }


def summarize_state(state: CheckpointState) -> dict[str, Any]:
    """Compact description used by ``inspect``."""
    stats = state.move_statistics
    return {
        "step": state.step,
        "boxes": [_to_jsonable(box) for box in state.boxes],
        "rng": _rng_digest(state.rng),
        "atom_count": len(state.coordinates),
        "molecule_lookup": {
            "lookup_count": len(state.molecule_lookup.lookup),
            "box_and_kind_start_count": len(state.molecule_lookup.box_and_kind_start),
            "num_kinds": state.molecule_lookup.num_kinds,
            "fixed_count": len(state.molecule_lookup.fixed),
        },
        "move_statistics": {
            name: list(array_shape(getattr(stats, name), ndim, name))
            for name, (ndim, _kind) in MOVE_STATISTICS_LAYOUT.items()
        },
        "parallel_tempering": (
            _rng_digest(state.parallel_tempering) if state.parallel_tempering is not None else None
        ),
        "metadata": dict(state.metadata),
    }


def _rng_from_document(value: Any, rng: DeterministicRNG, label: str) -> RNGState:
    """Accept either explicit generator state or a seed with a draw count."""
    if not isinstance(value, Mapping):
        raise StateDocumentError(f"'{label}' must be a mapping.")
    if "state" in value:
        return RNGState(
            state=tuple(value["state"]),
            cursor=value["cursor"],
            remaining=value["remaining"],
            seed=value["seed"],
        )
    draws = int(value.get("draws", 0))
    stream = rng.python_rng if label == "rng" else rng.stream(PARALLEL_TEMPERING_STREAM)
    for _ in range(draws):
        stream.random()
    return rng.mt_state() if label == "rng" else rng.parallel_tempering_state()  # type: ignore[return-value]


def state_from_document(payload: Mapping[str, Any]) -> CheckpointState:
    """Build a snapshot from a document shaped like ``state_to_document``."""
    missing = [
        key
        for key in ("step", "boxes", "rng", "coordinates", "molecule_lookup", "move_statistics")
        if key not in payload
    ]
    if missing:
        raise StateDocumentError(f"State document missing required key(s): {missing}.")

    rng_doc = payload["rng"]
    seed = int(rng_doc.get("seed", 0)) if isinstance(rng_doc, Mapping) else 0
    rng = DeterministicRNG(seed)

    try:
        primary = _rng_from_document(rng_doc, rng, "rng")
        pt_doc = payload.get("parallel_tempering")
        parallel_tempering = None
        if pt_doc is True:
            parallel_tempering = _rng_from_document({}, rng, PARALLEL_TEMPERING_STREAM)
        elif pt_doc:
            parallel_tempering = _rng_from_document(pt_doc, rng, PARALLEL_TEMPERING_STREAM)

        boxes = [
            BoxGeometry(axis=box["axis"], cos_angle=box.get("cos_angle", (0.0, 0.0, 0.0)))
            for box in payload["boxes"]
        ]
        lookup = dict(payload["molecule_lookup"])
        stats = dict(payload["move_statistics"])
        unknown = [name for name in stats if name not in MOVE_STATISTICS_LAYOUT]
        if unknown:
            raise StateDocumentError(f"Unknown move statistics field(s): {unknown}.")
        absent = [name for name in MOVE_STATISTICS_LAYOUT if name not in stats]
        if absent:
            raise StateDocumentError(f"Missing move statistics field(s): {absent}.")

        return CheckpointState(
            step=int(payload["step"]),
            boxes=boxes,
            rng=primary,
            coordinates=payload["coordinates"],
            molecule_lookup=MoleculeLookupTable(**lookup),
            move_statistics=MoveStatistics(**stats),
            parallel_tempering=parallel_tempering,
        )
    except (KeyError, TypeError) as exc:
        raise StateDocumentError(f"Malformed state document: {exc}") from exc


def load_state_document(path: str | Path) -> CheckpointState:
    """Read a JSON or YAML state document from disk."""
    document_path = Path(path)
    content = document_path.read_text(encoding="utf-8")
    if document_path.suffix.lower() == ".json":
        payload = json.loads(content)
    elif document_path.suffix.lower() in {".yaml", ".yml"}:
        payload = yaml.safe_load(content)
    else:
        raise StateDocumentError(f"Unsupported state document extension: {document_path.suffix}")
    if not isinstance(payload, Mapping):
        raise StateDocumentError("State document must contain a mapping object.")
    return state_from_document(payload)
