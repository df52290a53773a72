"""
Test fixtures for flowdeck tests.

Provides isolated policy and run directories, a policy store over them,
and helpers for building workflows and runs.
"""

from pathlib import Path
from typing import List, Optional

import pytest

from flowdeck.config import runtime_config
from flowdeck.config.tool_policies import ToolPolicyStore
from flowdeck.runtime.engines import StubSessionSpawner
from flowdeck.runtime.step_executor import StepExecutor
from flowdeck.runtime.types import (
    WorkflowAgent,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
    new_workflow_run,
)

_ENV_VARS = (
    runtime_config.ENV_DATA_DIR,
    runtime_config.ENV_RUNS_DIR,
    runtime_config.ENV_TOOL_POLICIES_DIR,
    runtime_config.ENV_DEFAULT_STEP_TIMEOUT,
    runtime_config.ENV_PROGRESS_MAX_BYTES,
    runtime_config.ENV_MAX_TOOL_POLICIES,
)


@pytest.fixture(autouse=True)
def isolated_runtime_config(monkeypatch, tmp_path):
    """Keep FLOWDECK_* settings from the environment out of every test."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv(runtime_config.ENV_DATA_DIR, str(tmp_path / "data"))
    runtime_config.reload_config()
    yield
    runtime_config.reload_config()


@pytest.fixture
def policies_dir(tmp_path: Path) -> Path:
    return tmp_path / "tool-policies"


@pytest.fixture
def runs_dir(tmp_path: Path) -> Path:
    path = tmp_path / "runs"
    path.mkdir()
    return path


@pytest.fixture
def policy_store(policies_dir: Path) -> ToolPolicyStore:
    return ToolPolicyStore(policies_dir)


@pytest.fixture
def spawner() -> StubSessionSpawner:
    return StubSessionSpawner()


@pytest.fixture
def executor(policy_store, spawner, runs_dir) -> StepExecutor:
    return StepExecutor(policy_store, spawner, runs_dir=runs_dir, default_timeout=600)


def make_workflow(
    steps: List[WorkflowStep],
    agents: Optional[List[WorkflowAgent]] = None,
    fresh_session_default: Optional[bool] = None,
) -> WorkflowDefinition:
    """Build a small workflow with a planner and a developer agent."""
    config = {}
    if fresh_session_default is not None:
        config["fresh_session_default"] = fresh_session_default
    return WorkflowDefinition(
        id="feature",
        name="Feature delivery",
        agents=agents
        if agents is not None
        else [
            WorkflowAgent(id="planner-agent", role="planner", model="sonnet"),
            WorkflowAgent(id="dev-agent", role="developer", model="opus"),
        ],
        steps=steps,
        config=config,
    )


def make_run(workflow: WorkflowDefinition, run_id: str = "run-20250101-000000-test01") -> WorkflowRun:
    return new_workflow_run(
        workflow,
        task_id="task-1",
        task={"id": "task-1", "title": "Add login page"},
        run_id=run_id,
    )
