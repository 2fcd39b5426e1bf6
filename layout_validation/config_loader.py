#!/usr/bin/env python3
"""
Config Loader for layout validation

Provides:
- validate_config(): Validate a config file against the schema
- validate_config_dict(): Validate a config dict against the schema
- merge_configs(): Merge a user config over DEFAULT_CONFIG
- load_global_config(): Load ~/.config/layout-validation/config.json
- load_project_config(): Load .layout-validation/config.json (searched upward)
- load_config(): Compose defaults + global + project configs
- *_from_config(): Build typed settings objects from a merged config

Config Inheritance:
    1. DEFAULT_CONFIG provides every field
    2. Global config overrides defaults
    3. Project config overrides global
    4. A "calibration.preset" name expands from CALIBRATION_PRESETS first

Usage:
    from layout_validation.config_loader import load_config, settings_from_config

    config = load_config()
    settings = settings_from_config(config)
    thresholds = thresholds_from_config(config)
"""

import json
import logging
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator

from .models import ComparisonSettings
from .validators.layout.matcher import GroupWeights, LayoutMatcher, NodeWeights
from .validators.stability.calibrator import CalibrationConfig
from .validators.thresholds.evaluator import (
    ThresholdConfig,
    get_preset,
    merge_thresholds,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Schema and Config Paths
# =============================================================================

SCHEMA_PATH = Path(__file__).parent / "config.schema.json"
GLOBAL_CONFIG_PATH = Path.home() / ".config" / "layout-validation" / "config.json"
PROJECT_CONFIG_NAMES = [
    ".layout-validation/config.json",
    "layout-validation.json",
]


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_CONFIG: dict[str, Any] = {
    "comparison": {
        "mode": "tree",
        "similarity_threshold": 90.0,
        "position_tolerance_px": 5.0,
        "size_tolerance_percent": 5.0,
        "text_similarity_threshold": 0.8,
        "importance_threshold": 0.0,
        "ignore_selectors": [],
        "allow_viewport_mismatch": False,
    },
    "matching": {
        "max_match_distance": 0.5,
        "node_weights": {
            "position": 0.3,
            "text": 0.3,
            "size": 0.2,
            "class_names": 0.1,
            "accessibility": 0.1,
            "tag": 0.3,
        },
        "group_weights": {
            "position": 0.4,
            "size": 0.2,
            "type": 0.3,
            "importance": 0.1,
        },
    },
    "thresholds": {
        "preset": "default",
        "overrides": {},
    },
    "calibration": {
        "min_iterations": 3,
        "max_iterations": 10,
        "target_stability": 95.0,
        "early_stop_threshold": 98.0,
        "dynamic_threshold": 0.5,
        "confidence_floor": 0.6,
        "capture_timeout": 30.0,
        "capture_retries": 2,
        "tolerance_margin": 1.5,
        "strictness": "medium",
    },
    "metrics": {
        "project": None,
    },
}


# =============================================================================
# Calibration Presets
# =============================================================================

CALIBRATION_PRESETS: dict[str, dict[str, Any]] = {
    "fast": {
        "min_iterations": 2,
        "max_iterations": 5,
        "target_stability": 90.0,
        "early_stop_threshold": 95.0,
        "capture_retries": 1,
    },
    "thorough": {
        "min_iterations": 5,
        "max_iterations": 20,
        "target_stability": 98.0,
        "early_stop_threshold": 99.5,
        "capture_retries": 3,
    },
}


# =============================================================================
# Validation
# =============================================================================


def _load_schema() -> dict:
    return json.loads(SCHEMA_PATH.read_text())


def validate_config_dict(config: dict) -> list[str]:
    """
    Validate config dict against schema.

    Returns:
        List of error messages. Empty list = valid config.
    """
    if not SCHEMA_PATH.exists():
        return [f"Schema file not found: {SCHEMA_PATH}"]

    try:
        schema = _load_schema()
    except json.JSONDecodeError as e:
        return [f"Invalid JSON in schema: {e}"]

    errors = []
    validator = Draft202012Validator(schema)
    for error in sorted(validator.iter_errors(config), key=lambda e: list(e.absolute_path)):
        path = " -> ".join(str(p) for p in error.absolute_path) or "root"
        errors.append(f"[{path}] {error.message}")
    return errors


def validate_config(config_path: Path) -> list[str]:
    """
    Validate config file against schema.

    Returns:
        List of error messages. Empty list = valid config.
    """
    if not config_path.exists():
        return [f"Config file not found: {config_path}"]

    try:
        config = json.loads(config_path.read_text())
    except json.JSONDecodeError as e:
        return [f"Invalid JSON in config: {e}"]

    return validate_config_dict(config)


# =============================================================================
# Merge Logic
# =============================================================================


def deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge override into base.

    - Dicts are recursively merged
    - Lists and scalars from override replace base
    - Keys in override take precedence
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def merge_configs(user_config: dict) -> dict:
    """
    Merge a user config over DEFAULT_CONFIG.

    A calibration "preset" expands to CALIBRATION_PRESETS values first, so
    explicit calibration keys in the same config still win.
    """
    user_config = deep_merge({}, user_config)
    preset_name = None
    calibration = user_config.get("calibration")
    if isinstance(calibration, dict) and "preset" in calibration:
        calibration = dict(calibration)
        preset_name = calibration.pop("preset")
        user_config["calibration"] = calibration

    result = deep_merge({}, DEFAULT_CONFIG)
    if preset_name is not None:
        if preset_name not in CALIBRATION_PRESETS:
            raise ValueError(
                f"Unknown calibration preset: {preset_name} "
                f"(available: {sorted(CALIBRATION_PRESETS)})"
            )
        result["calibration"] = deep_merge(
            result["calibration"], CALIBRATION_PRESETS[preset_name]
        )
    return deep_merge(result, user_config)


# =============================================================================
# Loading
# =============================================================================


def find_config(start_dir: Path | None = None) -> Path | None:
    """
    Find a project config by searching upward from start_dir.

    Searches for:
    - .layout-validation/config.json
    - layout-validation.json
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while current != current.parent:
        for rel_path in PROJECT_CONFIG_NAMES:
            candidate = current / rel_path
            if candidate.exists():
                return candidate
        current = current.parent

    return None


def _read_json(path: Path, label: str) -> dict:
    try:
        config = json.loads(path.read_text())
        logger.debug(f"Loaded {label} config from {path}")
        return config
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in {label} config {path}: {e}")
        return {}
    except OSError as e:
        logger.warning(f"Error reading {label} config {path}: {e}")
        return {}


def load_global_config() -> dict:
    """
    Load the global config.

    Returns:
        Global config dict if exists, empty dict otherwise.
    """
    if not GLOBAL_CONFIG_PATH.exists():
        logger.debug(f"Global config not found at {GLOBAL_CONFIG_PATH}")
        return {}
    return _read_json(GLOBAL_CONFIG_PATH, "global")


def load_project_config(path: Path | None = None) -> tuple[dict, Path | None]:
    """
    Load the project config.

    Args:
        path: Explicit config file or project directory. If None, searches
              upward from cwd.

    Returns:
        Tuple of (config dict or empty dict, path it was loaded from)
    """
    if path is None:
        config_path = find_config()
    elif path.is_file():
        config_path = path
    elif path.is_dir():
        config_path = find_config(path)
    else:
        logger.debug(f"Project config path does not exist: {path}")
        return {}, None

    if config_path is None:
        logger.debug("No project config found")
        return {}, None

    return _read_json(config_path, "project"), config_path


def load_config(project_path: Path | None = None, validate: bool = True) -> dict:
    """
    Load config with full inheritance chain.

    Composition order (later overrides earlier):
    1. DEFAULT_CONFIG
    2. Global config
    3. Project config

    Args:
        project_path: Project directory or config file. If None, searches from cwd.
        validate: Validate the merged user config against the schema

    Returns:
        Fully merged config dict with a _config_source field

    Raises:
        ValueError: If validate is set and the config is invalid
    """
    global_config = load_global_config()
    project_config, found_path = load_project_config(project_path)

    user_config = deep_merge(global_config, project_config)
    if validate:
        errors = validate_config_dict(user_config)
        if errors:
            raise ValueError("Invalid config:\n" + "\n".join(f"  - {e}" for e in errors))

    final_config = merge_configs(user_config)
    final_config["_config_source"] = {
        "global": bool(global_config),
        "project": bool(project_config),
        "global_path": str(GLOBAL_CONFIG_PATH) if global_config else None,
        "project_path": str(found_path) if project_config else None,
    }

    logger.info(
        f"Config loaded: global={bool(global_config)}, project={bool(project_config)}"
    )
    return final_config


# =============================================================================
# Typed Builders
# =============================================================================


def settings_from_config(config: dict) -> ComparisonSettings:
    """ComparisonSettings from the "comparison" section."""
    section = merge_configs(config)["comparison"]
    return ComparisonSettings(
        position_tolerance_px=section["position_tolerance_px"],
        size_tolerance_percent=section["size_tolerance_percent"],
        text_similarity_threshold=section["text_similarity_threshold"],
        importance_threshold=section["importance_threshold"],
        ignore_selectors=tuple(section["ignore_selectors"]),
    )


def matcher_from_config(config: dict) -> LayoutMatcher:
    """LayoutMatcher with the weights of the "matching" section."""
    section = merge_configs(config)["matching"]
    return LayoutMatcher(
        node_weights=NodeWeights(**section["node_weights"]),
        group_weights=GroupWeights(**section["group_weights"]),
        max_match_distance=section["max_match_distance"],
    )


def thresholds_from_config(config: dict) -> ThresholdConfig:
    """ThresholdConfig from the "thresholds" section (preset + overrides)."""
    section = merge_configs(config)["thresholds"]
    return merge_thresholds(get_preset(section["preset"]), section.get("overrides", {}))


def calibration_config_from_config(config: dict) -> CalibrationConfig:
    """CalibrationConfig from "calibration", with comparison base values."""
    merged = merge_configs(config)
    section = dict(merged["calibration"])
    section.setdefault(
        "text_similarity_threshold", merged["comparison"]["text_similarity_threshold"]
    )
    section.setdefault(
        "importance_threshold", merged["comparison"]["importance_threshold"]
    )
    return CalibrationConfig.from_dict(section)


def layout_config_from_config(config: dict) -> dict:
    """Dict accepted by LayoutValidator."""
    merged = merge_configs(config)
    comparison = merged["comparison"]
    return {
        "mode": comparison["mode"],
        "similarity_threshold": comparison["similarity_threshold"],
        "thresholds": thresholds_from_config(merged),
        "settings": settings_from_config(merged),
        "allow_viewport_mismatch": comparison["allow_viewport_mismatch"],
        "project": merged["metrics"].get("project"),
    }


__all__ = [
    "SCHEMA_PATH",
    "GLOBAL_CONFIG_PATH",
    "DEFAULT_CONFIG",
    "CALIBRATION_PRESETS",
    "validate_config",
    "validate_config_dict",
    "deep_merge",
    "merge_configs",
    "find_config",
    "load_global_config",
    "load_project_config",
    "load_config",
    "settings_from_config",
    "matcher_from_config",
    "thresholds_from_config",
    "calibration_config_from_config",
    "layout_config_from_config",
]
