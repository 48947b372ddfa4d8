# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Configuration management for promptalign.
Handles loading and saving settings from a YAML config file.
"""

from pathlib import Path
from typing import Any, TypedDict

import yaml

CONFIG_FILENAME: str = ".promptalign.yaml"


class MatchingSettings(TypedDict):
    """Type definition for segment matcher settings."""
    precision: float
    max_segment_length: int
    max_lookahead: int
    base_window: int
    window_per_word: int
    distance_penalty: float
    single_word_margin: float
    single_word_max_distance: int
    high_similarity_max_distance: int
    good_similarity_max_distance: int
    default_max_distance: int
    early_exit_length: int
    max_processing_ms: float
    slow_search_ms: float


class AlignmentSettings(TypedDict):
    """Type definition for alignment tracker settings."""
    context_size: int
    context_reset_jump: int
    manual_grace_ms: int


class Config(TypedDict):
    """Type definition for the complete configuration."""
    # Server settings
    host: str
    port: int
    # Script loaded at startup (optional)
    script_path: str | None
    # Delay for coalescing bursts of final recognition results
    debounce_ms: int
    matching: MatchingSettings
    alignment: AlignmentSettings


# Default configuration values
DEFAULT_CONFIG: Config = {
    # Server settings
    "host": "127.0.0.1",
    "port": 8000,

    "script_path": None,
    "debounce_ms": 100,

    # Matching thresholds (see SegmentMatcher for what each one does)
    "matching": {
        "precision": 65.0,
        "max_segment_length": 12,
        "max_lookahead": 25,
        "base_window": 5,
        "window_per_word": 2,
        "distance_penalty": 0.05,
        "single_word_margin": 0.2,
        "single_word_max_distance": 3,
        "high_similarity_max_distance": 25,
        "good_similarity_max_distance": 20,
        "default_max_distance": 15,
        "early_exit_length": 8,
        "max_processing_ms": 5.0,
        "slow_search_ms": 20.0,
    },

    "alignment": {
        "context_size": 30,
        "context_reset_jump": 20,
        "manual_grace_ms": 100,
    },
}


def get_config_path() -> Path:
    """Get the path to the config file in the current working directory."""
    return Path.cwd() / CONFIG_FILENAME


def _deep_merge(base, override):
    """
    Deep merge two dictionaries, with override taking precedence.
    Returns a new dictionary without modifying the originals.

    Args:
        base: Base dictionary to merge from.
        override: Dictionary with values that take precedence over base.

    Returns:
        New dictionary with merged values.
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        elif isinstance(value, dict):
            # Nested sections are copied, never shared with the input
            result[key] = _deep_merge({}, value)
        else:
            result[key] = value
    return result


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from file, merged with defaults.

    Args:
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        Configuration dictionary with all values (defaults + overrides from file).
    """
    if config_path is None:
        config_path = get_config_path()

    # Start with defaults
    config: dict[str, Any] = _deep_merge({}, DEFAULT_CONFIG)

    # Load from file if it exists
    if config_path.exists():
        try:
            with open(config_path, encoding='utf-8') as f:
                file_config: dict[str, Any] | None = yaml.safe_load(f)
                if isinstance(file_config, dict):
                    config = _deep_merge(config, file_config)
        except (OSError, yaml.YAMLError) as e:
            print(f"Warning: Could not load config from {config_path}: {e}")

    return config  # type: ignore[return-value]


def save_config(config: Config, config_path: Path | None = None) -> bool:
    """
    Save configuration to file.

    Args:
        config: Configuration dictionary to save.
        config_path: Optional path to config file. If None, uses default location.

    Returns:
        True if save was successful, False otherwise.
    """
    if config_path is None:
        config_path = get_config_path()

    try:
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(dict(config), f, default_flow_style=False, sort_keys=False)
        return True
    except (OSError, yaml.YAMLError) as e:
        print(f"Error saving config to {config_path}: {e}")
        return False


def get_matching_settings(config: Config) -> MatchingSettings:
    """
    Extract matcher settings from config, filling any missing keys.

    Unknown keys are dropped so the result can be passed straight to
    SegmentMatcher(**settings).
    """
    defaults: MatchingSettings = DEFAULT_CONFIG["matching"]
    settings = config.get("matching") or {}
    return {key: settings.get(key, value)  # type: ignore[return-value]
            for key, value in defaults.items()}


def get_alignment_settings(config: Config) -> AlignmentSettings:
    """
    Extract tracker settings from config, filling any missing keys.

    Unknown keys are dropped so the result can be passed straight to
    AlignmentTracker(**settings).
    """
    defaults: AlignmentSettings = DEFAULT_CONFIG["alignment"]
    settings = config.get("alignment") or {}
    return {key: settings.get(key, value)  # type: ignore[return-value]
            for key, value in defaults.items()}


def update_config_matching(config: Config, matching: dict[str, Any]) -> Config:
    """
    Update the matching section of the config with new settings.
    Returns a new config dict.
    """
    new_config: dict[str, Any] = _deep_merge({}, config)
    new_config["matching"] = _deep_merge(new_config.get("matching", {}), matching)
    return new_config  # type: ignore[return-value]
