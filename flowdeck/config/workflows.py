"""
workflows.py - Load workflow definitions from YAML files.

A workflow file looks like:

    id: feature
    name: Feature delivery
    config:
      fresh_session_default: true
    agents:
      - id: planner-agent
        role: planner
        model: sonnet
    steps:
      - id: plan
        agent: planner-agent
        input: "Plan {{task.title}}"
        output:
          file: plan.yaml
        acceptance_criteria:
          - "STATUS: done"
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Union

import yaml

from flowdeck.runtime.types import WorkflowDefinition, workflow_definition_from_dict

logger = logging.getLogger(__name__)


class WorkflowLoadError(Exception):
    """Raised when a workflow file cannot be parsed into a definition."""

    def __init__(self, path: Path, message: str):
        self.path = path
        super().__init__(f"Failed to load workflow {path}: {message}")


def parse_workflow(data: Dict[str, Any], source: Union[str, Path] = "<memory>") -> WorkflowDefinition:
    """Build a WorkflowDefinition from already-parsed YAML data.

    Raises:
        WorkflowLoadError: If required keys are missing, a step declares an
            unknown type, or step ids are duplicated.
    """
    path = Path(source)
    if not isinstance(data, dict):
        raise WorkflowLoadError(path, "top level must be a mapping")

    try:
        workflow = workflow_definition_from_dict(data)
    except KeyError as e:
        raise WorkflowLoadError(path, f"missing required key {e}") from e
    except ValueError as e:
        raise WorkflowLoadError(path, str(e)) from e

    seen = set()
    for step in workflow.steps:
        if step.id in seen:
            raise WorkflowLoadError(path, f"duplicate step id '{step.id}'")
        seen.add(step.id)

    return workflow


def load_workflow(path: Path) -> WorkflowDefinition:
    """Load a workflow definition from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        WorkflowLoadError: If the YAML is malformed or does not describe a
            workflow.
    """
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise WorkflowLoadError(path, str(e)) from e

    workflow = parse_workflow(data, path)
    logger.info("Loaded workflow %s (%d steps) from %s", workflow.id, len(workflow.steps), path)
    return workflow
