"""Configuration loading and validation for checkpoint output."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from core.binary_codec import BYTE_ORDERS
from core.checkpointing import DEFAULT_CHECKPOINT_FILENAME


class ConfigValidationError(ValueError):
    """Raised when checkpoint config fails validation."""


_REQUIRED_KEYS: tuple[str, ...] = ("enabled", "frequency")

_OPTIONAL_DEFAULTS: dict[str, Any] = {
    "output_dir": ".",
    "filename": DEFAULT_CHECKPOINT_FILENAME,
    "replica_dir": None,
    "byte_order": "little",
    "write_header": False,
    "atomic": False,
    "fatal_on_error": True,
}

_BOOL_KEYS = ("enabled", "write_header", "atomic", "fatal_on_error")


@dataclass(frozen=True)
class CheckpointConfig:
    """Validated checkpoint output configuration.

    ``frequency`` is the step interval at which the external step loop is
    expected to request a checkpoint; it is carried here but not enforced.
    """

    enabled: bool
    frequency: int
    output_dir: str = "."
    filename: str = DEFAULT_CHECKPOINT_FILENAME
    replica_dir: str | None = None
    byte_order: str = "little"
    write_header: bool = False
    atomic: bool = False
    fatal_on_error: bool = True
    extras: dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a configuration value by key.

        Args:
            key: Configuration key name.
            default: Value to return if key does not exist.

        Returns:
            Value associated with ``key`` or ``default``.
        """
        if hasattr(self, key):
            return getattr(self, key)
        return self.extras.get(key, default)

    def to_dict(self) -> dict[str, Any]:
        """Return a full dictionary view of the configuration."""
        payload = {key: getattr(self, key) for key in (*_REQUIRED_KEYS, *_OPTIONAL_DEFAULTS)}
        payload.update(self.extras)
        return payload


class ConfigLoader:
    """Load and validate checkpoint configuration files (YAML or JSON)."""

    @staticmethod
    def load(path: str | Path) -> CheckpointConfig:
        """Load a single checkpoint config from ``path``.

        Accepts either the checkpoint fields at top level or nested under a
        ``checkpoint`` section.
        """
        payload = _read_config_payload(path)
        if not isinstance(payload, Mapping):
            raise ConfigValidationError("Single config file must contain a mapping object.")
        return _validate_and_build(_checkpoint_section(payload))

    @staticmethod
    def load_many(path: str | Path) -> list[CheckpointConfig]:
        """Load one config per replica.

        Supports:
            - top-level mapping for a single run
            - mapping with a ``replicas`` list; each entry is merged over the
              shared ``checkpoint`` section
        """
        payload = _read_config_payload(path)
        if not isinstance(payload, Mapping):
            raise ConfigValidationError("Unsupported config file structure.")

        if "replicas" not in payload:
            return [_validate_and_build(_checkpoint_section(payload))]

        replicas = payload["replicas"]
        if not isinstance(replicas, list):
            raise ConfigValidationError("'replicas' must be a list of mappings.")
        base = dict(payload.get("checkpoint", {}))
        configs = []
        for index, replica in enumerate(replicas):
            if not isinstance(replica, Mapping):
                raise ConfigValidationError(f"Replica entry {index} must be a mapping.")
            merged = {**base, **replica}
            merged.setdefault("replica_dir", f"replica_{index}")
            configs.append(_validate_and_build(merged))
        return configs


def from_mapping(payload: Mapping[str, Any]) -> CheckpointConfig:
    """Build a config from an in-memory mapping."""
    return _validate_and_build(_checkpoint_section(payload))


def _checkpoint_section(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    if "checkpoint" in payload:
        section = payload["checkpoint"]
        if not isinstance(section, Mapping):
            raise ConfigValidationError("Section 'checkpoint' must be a mapping.")
        return section
    return payload


def _read_config_payload(path: str | Path) -> Any:
    """Read raw config payload from JSON or YAML file."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigValidationError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()
    content = config_path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            return json.loads(content)
        if suffix in {".yaml", ".yml"}:
            return yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigValidationError(f"Failed to parse config '{config_path}': {exc}") from exc

    raise ConfigValidationError(f"Unsupported config extension: {suffix}")


def _validate_and_build(payload: Mapping[str, Any]) -> CheckpointConfig:
    """Validate raw mapping and build ``CheckpointConfig``."""
    missing = [key for key in _REQUIRED_KEYS if key not in payload]
    if missing:
        raise ConfigValidationError(f"Missing required config keys: {', '.join(missing)}")

    values = {**_OPTIONAL_DEFAULTS, **{k: v for k, v in payload.items() if k in _OPTIONAL_DEFAULTS}}
    values["enabled"] = payload["enabled"]

    for key in _BOOL_KEYS:
        if type(values[key]) is not bool:
            raise ConfigValidationError(
                f"Field '{key}' expected bool, got {type(values[key]).__name__}."
            )

    frequency = payload["frequency"]
    if type(frequency) is not int or frequency < 1:
        raise ConfigValidationError("frequency must be an integer >= 1")
    values["frequency"] = frequency

    if values["byte_order"] not in BYTE_ORDERS:
        raise ConfigValidationError(
            f"byte_order must be one of {sorted(BYTE_ORDERS)}, got {values['byte_order']!r}"
        )
    if not values["filename"]:
        raise ConfigValidationError("filename must be non-empty")

    values["output_dir"] = str(values["output_dir"])
    values["filename"] = str(values["filename"])
    if values["replica_dir"] is not None:
        values["replica_dir"] = str(values["replica_dir"])

    extras = {k: v for k, v in payload.items() if k not in _REQUIRED_KEYS and k not in _OPTIONAL_DEFAULTS}
    return CheckpointConfig(extras=extras, **values)
