"""Runtime configuration for the workflow engine.

Provides centralized paths and limits for the step executor, the progress
log and the tool policy store. Environment variables take precedence over
YAML config.

Usage:
    from flowdeck.config.runtime_config import (
        get_runs_dir,
        get_tool_policies_dir,
        get_default_step_timeout,
        get_progress_max_bytes,
        get_max_tool_policies,
    )

    runs_dir = get_runs_dir()  # e.g. Path(".flowdeck/runs")
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

_CONFIG_PATH = Path(__file__).parent / "runtime.yaml"
_cached_config: Optional[Dict[str, Any]] = None

ENV_DATA_DIR = "FLOWDECK_DATA_DIR"
ENV_RUNS_DIR = "FLOWDECK_RUNS_DIR"
ENV_TOOL_POLICIES_DIR = "FLOWDECK_TOOL_POLICIES_DIR"
ENV_DEFAULT_STEP_TIMEOUT = "FLOWDECK_DEFAULT_STEP_TIMEOUT"
ENV_PROGRESS_MAX_BYTES = "FLOWDECK_PROGRESS_MAX_BYTES"
ENV_MAX_TOOL_POLICIES = "FLOWDECK_MAX_TOOL_POLICIES"


def _default_config() -> Dict[str, Any]:
    """Return default configuration if runtime.yaml doesn't exist."""
    return {
        "version": "1.0",
        "paths": {
            "data_dir": ".flowdeck",
            "runs_dir": None,
            "tool_policies_dir": None,
        },
        "defaults": {
            "step_timeout_seconds": 600,
            "progress_max_bytes": 10 * 1024 * 1024,
            "max_tool_policies": 50,
        },
    }


def _load_config() -> Dict[str, Any]:
    """Load runtime.yaml configuration, with caching."""
    global _cached_config
    if _cached_config is not None:
        return _cached_config

    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH, encoding="utf-8") as f:
            _cached_config = yaml.safe_load(f) or _default_config()
    else:
        _cached_config = _default_config()

    return _cached_config


def reload_config() -> None:
    """Drop the cached config so the next lookup re-reads runtime.yaml (for testing)."""
    global _cached_config
    _cached_config = None


def _config_section(name: str) -> Dict[str, Any]:
    return _load_config().get(name) or {}


def _positive_int(name: str, env_var: str, fallback: int) -> int:
    """Resolve a positive integer setting: env var > config default > fallback."""
    raw = os.environ.get(env_var)
    if raw:
        try:
            value = int(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: not an integer", env_var, raw)
        else:
            if value > 0:
                return value
            logger.warning("Ignoring %s=%d: must be positive", env_var, value)

    value = _config_section("defaults").get(name)
    if isinstance(value, int) and value > 0:
        return value
    return fallback


def get_data_dir() -> Path:
    """Base directory for all persisted engine state.

    Precedence: FLOWDECK_DATA_DIR > paths.data_dir > ".flowdeck".
    """
    env_value = os.environ.get(ENV_DATA_DIR)
    if env_value:
        return Path(env_value)
    return Path(_config_section("paths").get("data_dir") or ".flowdeck")


def get_runs_dir() -> Path:
    """Directory holding per-run progress logs and step outputs.

    Precedence: FLOWDECK_RUNS_DIR > paths.runs_dir > <data_dir>/runs.
    """
    env_value = os.environ.get(ENV_RUNS_DIR)
    if env_value:
        return Path(env_value)
    configured = _config_section("paths").get("runs_dir")
    if configured:
        return Path(configured)
    return get_data_dir() / "runs"


def get_tool_policies_dir() -> Path:
    """Directory holding one JSON record per tool policy role.

    Precedence: FLOWDECK_TOOL_POLICIES_DIR > paths.tool_policies_dir >
    <data_dir>/tool-policies.
    """
    env_value = os.environ.get(ENV_TOOL_POLICIES_DIR)
    if env_value:
        return Path(env_value)
    configured = _config_section("paths").get("tool_policies_dir")
    if configured:
        return Path(configured)
    return get_data_dir() / "tool-policies"


def get_default_step_timeout() -> int:
    """Session timeout (seconds) for steps that do not declare one."""
    return _positive_int("step_timeout_seconds", ENV_DEFAULT_STEP_TIMEOUT, 600)


def get_progress_max_bytes() -> int:
    """Size ceiling for a run's progress.md."""
    return _positive_int("progress_max_bytes", ENV_PROGRESS_MAX_BYTES, 10 * 1024 * 1024)


def get_max_tool_policies() -> int:
    """Maximum number of distinct tool policy records."""
    return _positive_int("max_tool_policies", ENV_MAX_TOOL_POLICIES, 50)
