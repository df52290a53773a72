"""Workflow types for step definitions, runs and session policy.

This module contains the declarative workflow definition (agents, steps,
per-step session overrides), the mutable run record the executor advances,
and the resolved per-invocation session configuration.

Only ``WorkflowRun.context`` is dynamically shaped: it is the free-form bag
that template rendering and context projection read from. Everything else
is typed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from ._ids import RunId, StepId, generate_run_id
from ._time import _datetime_to_iso, _iso_to_datetime

# Session policy vocabularies. Not enforced at runtime: an unrecognized context
# mode still flows through to the context builder's fallback branch.
SessionMode = Literal["fresh", "reuse"]
ContextMode = Literal["minimal", "full", "custom"]
CleanupMode = Literal["delete", "keep"]

SESSION_FRESH = "fresh"
SESSION_REUSE = "reuse"
CONTEXT_MINIMAL = "minimal"
CONTEXT_FULL = "full"
CONTEXT_CUSTOM = "custom"
CLEANUP_DELETE = "delete"
CLEANUP_KEEP = "keep"

DEFAULT_STEP_TIMEOUT_SECONDS = 600


class StepType(str, Enum):
    """Closed set of step variants a workflow may declare."""

    AGENT = "agent"
    LOOP = "loop"
    GATE = "gate"
    PARALLEL = "parallel"


class StepStatus(str, Enum):
    """Execution status of a single step within a run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.COMPLETED, StepStatus.FAILED)


@dataclass(frozen=True)
class WorkflowAgent:
    """Binds a step's ``agent`` reference to a role and model.

    Attributes:
        id: Agent identifier referenced by WorkflowStep.agent.
        role: Role name used to look up a tool policy (None = unrestricted).
        model: Optional model identifier handed to the session runtime.
        description: Human-readable description.
    """

    id: str
    role: Optional[str] = None
    model: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class StepSessionOverride:
    """Explicit per-step session block. Every field is optional."""

    mode: Optional[SessionMode] = None
    context: Optional[ContextMode] = None
    cleanup: Optional[CleanupMode] = None
    timeout: Optional[int] = None
    include_outputs_from: Optional[List[str]] = None


@dataclass(frozen=True)
class WorkflowStep:
    """Declarative definition of one unit of work.

    Attributes:
        id: Step identifier; also the key its output is recorded under in
            WorkflowRun.context.
        type: Step variant.
        agent: Reference to a WorkflowAgent id.
        input: Prompt template with ``{{dotted.path}}`` placeholders.
        output_file: Output file hint; a .yaml/.yml/.json extension requests
            structured parsing of the raw output.
        acceptance_criteria: Ordered criteria the raw output must satisfy.
        session: Optional explicit session block.
        fresh_session: Legacy boolean session flag.
        timeout: Step timeout in seconds.
    """

    id: StepId
    type: StepType = StepType.AGENT
    agent: Optional[str] = None
    input: str = ""
    output_file: Optional[str] = None
    acceptance_criteria: List[str] = field(default_factory=list)
    session: Optional[StepSessionOverride] = None
    fresh_session: Optional[bool] = None
    timeout: Optional[int] = None


@dataclass
class WorkflowDefinition:
    """A named, ordered set of steps plus the agents they reference."""

    id: str
    name: str = ""
    agents: List[WorkflowAgent] = field(default_factory=list)
    steps: List[WorkflowStep] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)

    def get_agent(self, agent_id: str) -> Optional[WorkflowAgent]:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None


@dataclass
class StepRun:
    """Execution record for one step within a run.

    Attributes:
        step_id: The step this record tracks.
        status: Current status; completed/failed are terminal.
        started_at: When execution began.
        completed_at: When execution reached a terminal status.
        duration: Wall-clock duration in seconds.
        error: Error message when failed.
    """

    step_id: StepId
    status: StepStatus = StepStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration: Optional[float] = None
    error: Optional[str] = None


@dataclass
class WorkflowRun:
    """One execution of a workflow against a task.

    The executor mutates ``context`` and ``steps`` in place as steps finish.
    """

    id: RunId
    workflow_id: str
    task_id: str
    context: Dict[str, Any] = field(default_factory=dict)
    steps: List[StepRun] = field(default_factory=list)

    def get_step_run(self, step_id: StepId) -> Optional[StepRun]:
        """Return the most recent StepRun for a step, if any."""
        for step_run in reversed(self.steps):
            if step_run.step_id == step_id:
                return step_run
        return None


@dataclass(frozen=True)
class StepSessionConfig:
    """Resolved session behavior for one step execution. Never persisted."""

    mode: SessionMode = SESSION_FRESH
    context: ContextMode = CONTEXT_MINIMAL
    cleanup: CleanupMode = CLEANUP_DELETE
    timeout: int = DEFAULT_STEP_TIMEOUT_SECONDS
    include_outputs_from: Optional[List[str]] = None


@dataclass
class StepExecutionResult:
    """What a successful step execution hands back to the caller.

    Attributes:
        step_id: The executed step.
        output: Parsed output (structured data, or the raw text).
        raw_output: Raw text returned by the session.
        output_path: Where the step artifact was written.
        session_key: Session handle returned by the spawner, if any.
        parse_warning: Set when a structured parse was requested but failed
            and the raw text was used instead.
    """

    step_id: StepId
    output: Any
    raw_output: str
    output_path: Path
    session_key: Optional[str] = None
    parse_warning: Optional[str] = None


# =============================================================================
# Serialization Functions
# =============================================================================


def workflow_agent_to_dict(agent: WorkflowAgent) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": agent.id, "role": agent.role, "model": agent.model}
    if agent.description is not None:
        data["description"] = agent.description
    return data


def workflow_agent_from_dict(data: Dict[str, Any]) -> WorkflowAgent:
    return WorkflowAgent(
        id=data["id"],
        role=data.get("role"),
        model=data.get("model"),
        description=data.get("description"),
    )


def step_session_override_to_dict(session: StepSessionOverride) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if session.mode is not None:
        data["mode"] = session.mode
    if session.context is not None:
        data["context"] = session.context
    if session.cleanup is not None:
        data["cleanup"] = session.cleanup
    if session.timeout is not None:
        data["timeout"] = session.timeout
    if session.include_outputs_from is not None:
        data["includeOutputsFrom"] = list(session.include_outputs_from)
    return data


def step_session_override_from_dict(data: Dict[str, Any]) -> StepSessionOverride:
    """Parse a step session block.

    Accepts both ``includeOutputsFrom`` and ``include_outputs_from``.
    """
    include = data.get("includeOutputsFrom", data.get("include_outputs_from"))
    return StepSessionOverride(
        mode=data.get("mode"),
        context=data.get("context"),
        cleanup=data.get("cleanup"),
        timeout=data.get("timeout"),
        include_outputs_from=list(include) if include is not None else None,
    )


def workflow_step_to_dict(step: WorkflowStep) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": step.id,
        "type": step.type.value,
        "agent": step.agent,
        "input": step.input,
        "acceptance_criteria": list(step.acceptance_criteria),
    }
    if step.output_file is not None:
        data["output"] = {"file": step.output_file}
    if step.session is not None:
        data["session"] = step_session_override_to_dict(step.session)
    if step.fresh_session is not None:
        data["fresh_session"] = step.fresh_session
    if step.timeout is not None:
        data["timeout"] = step.timeout
    return data


def workflow_step_from_dict(data: Dict[str, Any]) -> WorkflowStep:
    """Parse a WorkflowStep from a dictionary.

    Raises:
        KeyError: If the step has no id.
        ValueError: If the step type is not one of the declared variants.
    """
    output = data.get("output") or {}
    session = data.get("session")
    return WorkflowStep(
        id=data["id"],
        type=StepType(data.get("type", StepType.AGENT.value)),
        agent=data.get("agent"),
        input=data.get("input") or "",
        output_file=output.get("file") if isinstance(output, dict) else None,
        acceptance_criteria=[str(c) for c in data.get("acceptance_criteria") or []],
        session=step_session_override_from_dict(session) if session else None,
        fresh_session=data.get("fresh_session"),
        timeout=data.get("timeout"),
    )


def workflow_definition_to_dict(workflow: WorkflowDefinition) -> Dict[str, Any]:
    return {
        "id": workflow.id,
        "name": workflow.name,
        "agents": [workflow_agent_to_dict(a) for a in workflow.agents],
        "steps": [workflow_step_to_dict(s) for s in workflow.steps],
        "config": dict(workflow.config),
    }


def workflow_definition_from_dict(data: Dict[str, Any]) -> WorkflowDefinition:
    return WorkflowDefinition(
        id=data["id"],
        name=data.get("name") or data["id"],
        agents=[workflow_agent_from_dict(a) for a in data.get("agents") or []],
        steps=[workflow_step_from_dict(s) for s in data.get("steps") or []],
        config=dict(data.get("config") or {}),
    )


def step_run_to_dict(step_run: StepRun) -> Dict[str, Any]:
    return {
        "step_id": step_run.step_id,
        "status": step_run.status.value,
        "started_at": _datetime_to_iso(step_run.started_at),
        "completed_at": _datetime_to_iso(step_run.completed_at),
        "duration": step_run.duration,
        "error": step_run.error,
    }


def step_run_from_dict(data: Dict[str, Any]) -> StepRun:
    return StepRun(
        step_id=data["step_id"],
        status=StepStatus(data.get("status", StepStatus.PENDING.value)),
        started_at=_iso_to_datetime(data.get("started_at")),
        completed_at=_iso_to_datetime(data.get("completed_at")),
        duration=data.get("duration"),
        error=data.get("error"),
    )


def workflow_run_to_dict(run: WorkflowRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "workflow_id": run.workflow_id,
        "task_id": run.task_id,
        "context": dict(run.context),
        "steps": [step_run_to_dict(s) for s in run.steps],
    }


def workflow_run_from_dict(data: Dict[str, Any]) -> WorkflowRun:
    return WorkflowRun(
        id=data["id"],
        workflow_id=data["workflow_id"],
        task_id=data["task_id"],
        context=dict(data.get("context") or {}),
        steps=[step_run_from_dict(s) for s in data.get("steps") or []],
    )


def new_workflow_run(
    workflow: WorkflowDefinition,
    task_id: str,
    task: Optional[Dict[str, Any]] = None,
    run_id: Optional[RunId] = None,
) -> WorkflowRun:
    """Create a fresh run for a workflow.

    Seeds ``context["workflow"]`` with the serialized definition (agents and
    config are read back from there during execution) and ``context["task"]``
    with the task reference when one is given.
    """
    context: Dict[str, Any] = {"workflow": workflow_definition_to_dict(workflow)}
    if task is not None:
        context["task"] = dict(task)
    return WorkflowRun(
        id=run_id or generate_run_id(),
        workflow_id=workflow.id,
        task_id=task_id,
        context=context,
    )
