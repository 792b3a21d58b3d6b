"""Tests for checkpoint config loading and validation."""

from __future__ import annotations

import json

import pytest

from configs.loader import ConfigLoader, ConfigValidationError, from_mapping


def test_load_yaml_checkpoint_section(tmp_path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        "checkpoint:\n"
        "  enabled: true\n"
        "  frequency: 500\n"
        "  output_dir: out\n"
        "  byte_order: big\n"
        "  note: demo\n",
        encoding="utf-8",
    )

    config = ConfigLoader.load(config_path)

    assert config.enabled is True
    assert config.frequency == 500
    assert config.output_dir == "out"
    assert config.byte_order == "big"
    assert config.filename == "checkpoint.dat"
    assert config.fatal_on_error is True
    assert config.get("note") == "demo"
    assert config.to_dict()["note"] == "demo"


def test_load_json_top_level(tmp_path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"enabled": False, "frequency": 10}), encoding="utf-8")

    config = ConfigLoader.load(config_path)

    assert config.enabled is False
    assert config.replica_dir is None


def test_load_many_replicas(tmp_path) -> None:
    config_path = tmp_path / "replicas.yaml"
    config_path.write_text(
        "checkpoint:\n"
        "  enabled: true\n"
        "  frequency: 100\n"
        "  output_dir: runs\n"
        "replicas:\n"
        "  - {}\n"
        "  - replica_dir: hot\n",
        encoding="utf-8",
    )

    configs = ConfigLoader.load_many(config_path)

    assert [c.replica_dir for c in configs] == ["replica_0", "hot"]
    assert all(c.output_dir == "runs" for c in configs)


def test_invalid_config_missing_required_key(tmp_path) -> None:
    config_path = tmp_path / "invalid.json"
    config_path.write_text(json.dumps({"enabled": True}), encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="Missing required config keys"):
        ConfigLoader.load(config_path)


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"enabled": "yes", "frequency": 1}, "expected bool"),
        ({"enabled": True, "frequency": 0}, "frequency"),
        ({"enabled": True, "frequency": 1.5}, "frequency"),
        ({"enabled": True, "frequency": 1, "byte_order": "pdp"}, "byte_order"),
        ({"enabled": True, "frequency": 1, "filename": ""}, "filename"),
    ],
)
def test_invalid_values_rejected(payload, message: str) -> None:
    with pytest.raises(ConfigValidationError, match=message):
        from_mapping(payload)


def test_missing_file_and_unknown_extension(tmp_path) -> None:
    with pytest.raises(ConfigValidationError, match="not found"):
        ConfigLoader.load(tmp_path / "absent.yaml")

    other = tmp_path / "config.toml"
    other.write_text("enabled = true", encoding="utf-8")
    with pytest.raises(ConfigValidationError, match="Unsupported config extension"):
        ConfigLoader.load(other)
