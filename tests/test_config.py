# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Tests for configuration management.
"""

import tempfile
from pathlib import Path

import pytest
import yaml

from promptalign.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG,
    Config,
    get_alignment_settings,
    get_config_path,
    get_matching_settings,
    load_config,
    save_config,
    update_config_matching,
)
from promptalign.matcher import SegmentMatcher
from promptalign.tracker import AlignmentTracker


def test_config_path_in_working_directory(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    """The config file lives in the current working directory."""
    monkeypatch.chdir(tmp_path)
    assert get_config_path() == tmp_path / CONFIG_FILENAME


def test_load_config_without_file_uses_defaults():
    """Missing config file gives the defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = load_config(Path(tmpdir) / ".promptalign.yaml")

    assert config == DEFAULT_CONFIG
    assert config is not DEFAULT_CONFIG


def test_load_config_merges_nested_sections():
    """A partial matching section keeps the other matching defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".promptalign.yaml"
        with open(config_path, "w", encoding="utf-8") as f:
            yaml.dump({"port": 9000, "matching": {"precision": 80}}, f)

        config = load_config(config_path)

    assert config["port"] == 9000
    assert config["host"] == DEFAULT_CONFIG["host"]
    assert config["matching"]["precision"] == 80
    assert config["matching"]["max_lookahead"] == 25


def test_load_config_with_invalid_yaml(capsys: pytest.CaptureFixture[str]):
    """Invalid YAML prints a warning and falls back to defaults."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".promptalign.yaml"
        config_path.write_text("matching: [unclosed", encoding="utf-8")

        config = load_config(config_path)

    assert config == DEFAULT_CONFIG
    assert "Warning: Could not load config" in capsys.readouterr().out


def test_load_config_ignores_non_mapping_file():
    """A YAML file that is not a mapping is ignored."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".promptalign.yaml"
        config_path.write_text("- just\n- a list\n", encoding="utf-8")

        assert load_config(config_path) == DEFAULT_CONFIG


def test_save_and_load_config():
    """Saved settings are read back."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / ".promptalign.yaml"
        config: Config = load_config(config_path)
        config["script_path"] = "talk.txt"
        config["alignment"]["context_size"] = 12

        assert save_config(config, config_path)
        loaded = load_config(config_path)

    assert loaded["script_path"] == "talk.txt"
    assert loaded["alignment"]["context_size"] == 12


def test_save_config_failure_returns_false(capsys: pytest.CaptureFixture[str]):
    """Unwritable config path returns False."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "missing" / ".promptalign.yaml"
        assert not save_config(DEFAULT_CONFIG, config_path)

    assert "Error saving config" in capsys.readouterr().out


def test_get_matching_settings_fills_and_filters():
    """Matching settings always have every matcher keyword and nothing else."""
    config = load_config(Path("/nonexistent/.promptalign.yaml"))
    config["matching"] = {"precision": 70, "unknown_knob": 1}  # type: ignore[typeddict-item]

    settings = get_matching_settings(config)

    assert settings["precision"] == 70
    assert "unknown_knob" not in settings
    assert set(settings) == set(DEFAULT_CONFIG["matching"])
    assert SegmentMatcher(**settings).precision == 70


def test_get_alignment_settings_usable_as_kwargs():
    """Alignment settings can be passed straight to the tracker."""
    settings = get_alignment_settings(DEFAULT_CONFIG)
    tracker = AlignmentTracker("hello", **settings)

    assert tracker.context_size == 30
    assert tracker.manual_grace_ms == 100


def test_update_config_matching_returns_new_config():
    """update_config_matching does not modify its input."""
    updated = update_config_matching(DEFAULT_CONFIG, {"precision": 90})

    assert updated["matching"]["precision"] == 90
    assert DEFAULT_CONFIG["matching"]["precision"] == 65.0
    assert updated["matching"]["max_segment_length"] == 12
