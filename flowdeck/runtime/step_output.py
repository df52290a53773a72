"""
step_output.py - Structured parsing of raw agent output.

When a step declares an output file hint with a .yaml/.yml or .json
extension, the raw session output is parsed into structured data. Parse
failures fall back to the raw text with a warning; structure is a
convenience for downstream templates, not part of the step contract.
"""

from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from typing import Any, Optional, Tuple

import yaml

from .types import WorkflowStep

logger = logging.getLogger(__name__)

YAML_EXTENSIONS = (".yaml", ".yml")
JSON_EXTENSIONS = (".json",)


def output_format(step: WorkflowStep) -> Optional[str]:
    """Structured format requested by the step's output hint ("yaml", "json" or None)."""
    if not step.output_file:
        return None
    suffix = PurePosixPath(step.output_file).suffix.lower()
    if suffix in YAML_EXTENSIONS:
        return "yaml"
    if suffix in JSON_EXTENSIONS:
        return "json"
    return None


def parse_step_output(raw_output: str, step: WorkflowStep) -> Tuple[Any, Optional[str]]:
    """Parse raw output according to the step's output hint.

    Args:
        raw_output: Raw text returned by the agent session.
        step: The step that produced it.

    Returns:
        Tuple of (parsed output, warning). The warning is None unless a
        structured parse was attempted and failed, in which case the parsed
        output is the raw text.
    """
    if not raw_output:
        return raw_output, None

    fmt = output_format(step)
    # YAML constructors raise ValueError/TypeError on input that scans
    # cleanly (e.g. an out-of-range timestamp like 2024-13-45).
    try:
        if fmt == "yaml":
            return yaml.safe_load(raw_output), None
        if fmt == "json":
            return json.loads(raw_output), None
    except (yaml.YAMLError, ValueError, TypeError, RecursionError) as e:
        warning = f"Failed to parse output of step '{step.id}' as {fmt}: {e}"
        logger.warning("%s - using raw text", warning)
        return raw_output, warning

    return raw_output, None
