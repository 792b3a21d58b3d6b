"""Command-line entry points for writing and inspecting checkpoints."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

# Allow `python cli/main.py ...` execution from IDEs by adding repo root to sys.path.
if __package__ in {None, ""}:
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from configs.loader import ConfigLoader, ConfigValidationError
from core.binary_codec import BYTE_ORDERS
from core.checkpoint_output import CheckpointOutput
from core.checkpoint_reader import CheckpointReader
from core.checkpointing import CheckpointError
from data.state_document import StateDocumentError, load_state_document, state_to_document, summarize_state


LOGGER = logging.getLogger(__name__)


def _inspect(path: Path, byte_order: str, full: bool) -> int:
    try:
        state = CheckpointReader(byte_order=byte_order).read(path)
    except (OSError, CheckpointError) as exc:
        LOGGER.error("Could not read checkpoint %s: %s", path, exc)
        return 1
    document = state_to_document(state) if full else summarize_state(state)
    print(json.dumps(document, indent=2, sort_keys=True))
    return 0


def _write(config_path: Path, state_path: Path, step: int | None) -> int:
    try:
        configs = ConfigLoader.load_many(config_path)
        state = load_state_document(state_path)
    except (OSError, ConfigValidationError, StateDocumentError, CheckpointError) as exc:
        LOGGER.error("Invalid input: %s", exc)
        return 1

    for config in configs:
        output = CheckpointOutput(config)
        try:
            path = output.do_output(state.step if step is None else step, state)
        except CheckpointError:
            return 1
        if path is None:
            LOGGER.info("Checkpoint output disabled for %s", output.filename)
            continue
        print(path)
    return 0


def run_cli(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="mcchk")
    sub = parser.add_subparsers(dest="command", required=True)

    inspect_cmd = sub.add_parser("inspect")
    inspect_cmd.add_argument("path")
    inspect_cmd.add_argument("--byte-order", choices=sorted(BYTE_ORDERS), default="little")
    inspect_cmd.add_argument("--full", action="store_true")

    write_cmd = sub.add_parser("write")
    write_cmd.add_argument("--config", default="configs/checkpoint.yaml")
    write_cmd.add_argument("--state", required=True)
    write_cmd.add_argument("--step", type=int)

    parser.add_argument("-v", "--verbose", action="store_true")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    if args.command == "inspect":
        return _inspect(Path(args.path), args.byte_order, args.full)

    if args.command == "write":
        return _write(Path(args.config), Path(args.state), args.step)

    return 1


if __name__ == "__main__":
    raise SystemExit(run_cli())
