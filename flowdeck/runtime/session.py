"""
session.py - Per-step session policy resolution and context projection.

resolve_session_config() decides how a step's agent session behaves (fresh
or reused session, how much run state it sees, cleanup, timeout).
build_session_context() then projects the run state down to what that
session is allowed to see; the result feeds the template renderer.

Precedence for the session config, highest first:
1. The step's explicit ``session`` block (each field defaults independently)
2. The step's legacy ``fresh_session`` flag
3. The workflow-level ``fresh_session_default`` (true when absent)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from .types import (
    CLEANUP_DELETE,
    CONTEXT_CUSTOM,
    CONTEXT_FULL,
    CONTEXT_MINIMAL,
    DEFAULT_STEP_TIMEOUT_SECONDS,
    SESSION_FRESH,
    SESSION_REUSE,
    StepSessionConfig,
    StepStatus,
    WorkflowRun,
    WorkflowStep,
)


def resolve_session_config(
    step: WorkflowStep,
    workflow_fresh_default: Optional[bool] = None,
    default_timeout: int = DEFAULT_STEP_TIMEOUT_SECONDS,
) -> StepSessionConfig:
    """Compute the effective session config for one step invocation.

    Args:
        step: The step being executed.
        workflow_fresh_default: Workflow-level fresh_session_default (None = unset).
        default_timeout: Timeout used when neither the session block nor the
            step declares one.

    Returns:
        The resolved StepSessionConfig.

    Examples:
        >>> resolve_session_config(WorkflowStep(id="s", fresh_session=False)).mode
        'reuse'
    """
    step_timeout = step.timeout or default_timeout

    if step.session is not None:
        session = step.session
        return StepSessionConfig(
            mode=session.mode or SESSION_FRESH,
            context=session.context or CONTEXT_MINIMAL,
            cleanup=session.cleanup or CLEANUP_DELETE,
            timeout=session.timeout or step_timeout,
            include_outputs_from=(
                list(session.include_outputs_from)
                if session.include_outputs_from is not None
                else None
            ),
        )

    if step.fresh_session is not None:
        return StepSessionConfig(
            mode=SESSION_FRESH if step.fresh_session else SESSION_REUSE,
            context=CONTEXT_MINIMAL,
            cleanup=CLEANUP_DELETE,
            timeout=step_timeout,
        )

    fresh_default = True if workflow_fresh_default is None else workflow_fresh_default
    return StepSessionConfig(
        mode=SESSION_FRESH if fresh_default else SESSION_REUSE,
        context=CONTEXT_MINIMAL,
        cleanup=CLEANUP_DELETE,
        timeout=step_timeout,
    )


def build_steps_context(run: WorkflowRun) -> Dict[str, Any]:
    """Outputs of every completed step, for ``{{steps.<id>.output}}`` references."""
    steps: Dict[str, Any] = {}
    for step_run in run.steps:
        if step_run.status != StepStatus.COMPLETED:
            continue
        if run.context.get(step_run.step_id) is None:
            continue
        steps[step_run.step_id] = {
            "output": run.context[step_run.step_id],
            "status": step_run.status.value,
            "duration": step_run.duration,
        }
    return steps


def build_session_context(
    config: StepSessionConfig,
    run: WorkflowRun,
    progress: Optional[str] = None,
) -> Dict[str, Any]:
    """Project run state into the context visible to a spawned session.

    - minimal: task, workflow ids and the progress log
    - full: the whole run context, the progress log and completed step outputs
    - custom: minimal plus outputs of the steps named in include_outputs_from
    - anything else: task and workflow ids only

    Args:
        config: Resolved session config.
        run: The run being executed.
        progress: Progress log text, or None if nothing logged yet.

    Returns:
        A new mapping; run.context is never modified.
    """
    base: Dict[str, Any] = {
        "task": run.context.get("task"),
        "workflow": {"id": run.workflow_id, "runId": run.id},
    }
    progress_text = progress or ""

    if config.context == CONTEXT_MINIMAL:
        return {**base, "progress": progress_text}

    if config.context == CONTEXT_FULL:
        return {**run.context, "progress": progress_text, "steps": build_steps_context(run)}

    if config.context == CONTEXT_CUSTOM:
        custom: Dict[str, Any] = {**base, "progress": progress_text}
        if config.include_outputs_from is not None:
            custom["steps"] = {
                step_id: {"output": run.context[step_id]}
                for step_id in config.include_outputs_from
                if run.context.get(step_id) is not None
            }
        return custom

    return base
