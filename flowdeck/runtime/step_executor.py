"""
step_executor.py - Executes workflow steps one at a time.

The StepExecutor owns the per-step pipeline:

1. Resolve the agent definition from run context
2. Resolve the effective session config
3. Read the run's progress log
4. Project the session context
5. Render the input template
6. Resolve the tool filter for the agent's role
7. Spawn the agent session (the only awaited operation)
8. Parse the output
9. Validate acceptance criteria
10. Persist the step artifact
11. Append to the progress log

Acceptance is checked before anything is written, so a failing step leaves
no artifact and no progress entry behind. Nothing is retried.

Usage:
    from flowdeck.runtime.step_executor import StepExecutor

    executor = StepExecutor(policy_store, StubSessionSpawner(), runs_dir=Path("runs"))
    result = await executor.execute_step(step, run)
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from flowdeck.config.runtime_config import (
    get_default_step_timeout,
    get_progress_max_bytes,
    get_runs_dir,
)

from .acceptance import validate_acceptance_criteria
from .engines import SessionSpawner, SpawnRequest
from .errors import UnsupportedStepTypeError
from .path_helpers import ensure_safe_run_id
from .session import build_session_context, resolve_session_config
from .step_output import parse_step_output
from .storage import append_progress, read_progress, write_step_output
from .tasks import TaskStore, task_ref
from .template import render_template
from .types import (
    CLEANUP_DELETE,
    CLEANUP_KEEP,
    SESSION_REUSE,
    StepExecutionResult,
    StepRun,
    StepSessionConfig,
    StepStatus,
    StepType,
    WorkflowAgent,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
    _utcnow,
    workflow_agent_from_dict,
)

if TYPE_CHECKING:
    from flowdeck.config.tool_policies import ToolPolicyStore

logger = logging.getLogger(__name__)

# Key in run.context holding the last kept session per agent id.
SESSIONS_CONTEXT_KEY = "_sessions"


class StepExecutor:
    """Runs workflow steps against a session spawner.

    Args:
        policy_store: Tool policy store used to build per-role tool filters.
        spawner: Agent session runtime.
        runs_dir: Base directory for run artifacts. Defaults to the
            configured runs directory.
        task_store: Optional task store used to hydrate ``context["task"]``
            when a run was created without a task reference.
        default_timeout: Session timeout for steps that declare none.
        progress_max_bytes: Size ceiling for progress.md.
    """

    def __init__(
        self,
        policy_store: ToolPolicyStore,
        spawner: SessionSpawner,
        runs_dir: Optional[Path] = None,
        task_store: Optional[TaskStore] = None,
        default_timeout: Optional[int] = None,
        progress_max_bytes: Optional[int] = None,
    ):
        self._policy_store = policy_store
        self._spawner = spawner
        self._runs_dir = Path(runs_dir) if runs_dir is not None else get_runs_dir()
        self._task_store = task_store
        self._default_timeout = default_timeout if default_timeout is not None else get_default_step_timeout()
        self._progress_max_bytes = (
            progress_max_bytes if progress_max_bytes is not None else get_progress_max_bytes()
        )

    @property
    def runs_dir(self) -> Path:
        return self._runs_dir

    # -------------------------------------------------------------------------
    # Single step
    # -------------------------------------------------------------------------

    async def execute_step(self, step: WorkflowStep, run: WorkflowRun) -> StepExecutionResult:
        """Execute one step of a run.

        Args:
            step: The step to execute.
            run: The run it belongs to. ``run.context["_sessions"]`` is
                updated when the step keeps its session.

        Returns:
            StepExecutionResult with the parsed output and artifact path.

        Raises:
            InvalidRunIdError: If run.id is not a safe directory name.
            UnsupportedStepTypeError: For loop, gate and parallel steps.
            AcceptanceFailedError: If the output misses a criterion.
            PolicyInvalidError: If the agent role's stored policy is malformed.
        """
        ensure_safe_run_id(run.id)
        logger.info("Executing step %s (%s) for run %s", step.id, step.type.value, run.id)

        if step.type == StepType.AGENT:
            return await self._execute_agent_step(step, run)
        raise UnsupportedStepTypeError(step.type, step.id)

    async def _execute_agent_step(self, step: WorkflowStep, run: WorkflowRun) -> StepExecutionResult:
        agent = self._get_agent_definition(run, step.agent)
        role = agent.role if agent is not None else None

        workflow_ctx = run.context.get("workflow") or {}
        workflow_config = workflow_ctx.get("config") or {}
        config = resolve_session_config(
            step,
            workflow_fresh_default=workflow_config.get("fresh_session_default"),
            default_timeout=self._default_timeout,
        )

        self._hydrate_task(run)
        progress = read_progress(run.id, self._runs_dir)
        session_context = build_session_context(config, run, progress)
        prompt = render_template(step.input, session_context)
        tool_filter = self._policy_store.tool_filter_for_role(role) if role else {}

        logger.info(
            "Agent step %s configured: agent=%s role=%s mode=%s context=%s cleanup=%s timeout=%ds",
            step.id,
            step.agent,
            role,
            config.mode,
            config.context,
            config.cleanup,
            config.timeout,
        )

        request = SpawnRequest(
            prompt=prompt,
            tool_filter=tool_filter,
            timeout=config.timeout,
            model=agent.model if agent is not None else None,
            step_id=step.id,
            agent_id=step.agent,
            task_id=run.task_id,
            resume_session_key=self._resume_session_key(config, run, step.agent),
        )
        session = await self._spawner.spawn(request)

        try:
            raw_output = session.output
            parsed, parse_warning = parse_step_output(raw_output, step)
            validate_acceptance_criteria(step, raw_output, parsed)

            output_path = write_step_output(
                run.id, step.id, raw_output, self._runs_dir, filename=step.output_file
            )
            append_progress(run.id, step.id, raw_output, self._runs_dir, max_bytes=self._progress_max_bytes)

            if config.cleanup == CLEANUP_KEEP and session.session_key and step.agent:
                run.context.setdefault(SESSIONS_CONTEXT_KEY, {})[step.agent] = session.session_key
        finally:
            if config.cleanup == CLEANUP_DELETE and session.session_key:
                await self._cleanup_session(step, session.session_key)

        return StepExecutionResult(
            step_id=step.id,
            output=parsed,
            raw_output=raw_output,
            output_path=output_path,
            session_key=session.session_key,
            parse_warning=parse_warning,
        )

    async def _cleanup_session(self, step: WorkflowStep, session_key: str) -> None:
        # Runs inside a finally: a cleanup failure must not replace the step's own error.
        try:
            await self._spawner.cleanup(session_key)
        except Exception as e:
            logger.warning("Session cleanup failed for step %s (session %s): %s", step.id, session_key, e)

    def _get_agent_definition(self, run: WorkflowRun, agent_id: Optional[str]) -> Optional[WorkflowAgent]:
        """Look up an agent in the workflow snapshot stored on the run."""
        if not agent_id:
            return None
        workflow_ctx = run.context.get("workflow") or {}
        for data in workflow_ctx.get("agents") or []:
            if isinstance(data, dict) and data.get("id") == agent_id:
                return workflow_agent_from_dict(data)
        logger.debug("Agent %s not defined in workflow for run %s", agent_id, run.id)
        return None

    def _resume_session_key(
        self, config: StepSessionConfig, run: WorkflowRun, agent_id: Optional[str]
    ) -> Optional[str]:
        if config.mode != SESSION_REUSE or not agent_id:
            return None
        sessions: Dict[str, Any] = run.context.get(SESSIONS_CONTEXT_KEY) or {}
        return sessions.get(agent_id)

    def _hydrate_task(self, run: WorkflowRun) -> None:
        if run.context.get("task") is not None or self._task_store is None:
            return
        task = self._task_store.get_task(run.task_id)
        if task is None:
            logger.debug("Task %s not found for run %s", run.task_id, run.id)
            return
        run.context["task"] = task_ref(task)

    # -------------------------------------------------------------------------
    # Whole run
    # -------------------------------------------------------------------------

    async def execute_run(self, workflow: WorkflowDefinition, run: WorkflowRun) -> WorkflowRun:
        """Execute a workflow's steps in declared order.

        Steps that already completed in this run are skipped, so a run that
        failed part way can be resumed by calling this again. The first
        failing step is marked failed and its error re-raised.
        """
        logger.info("Starting run %s for workflow %s (%d steps)", run.id, workflow.id, len(workflow.steps))

        for step in workflow.steps:
            existing = run.get_step_run(step.id)
            if existing is not None and existing.status == StepStatus.COMPLETED:
                logger.debug("Skipping completed step %s", step.id)
                continue

            step_run = StepRun(step_id=step.id, status=StepStatus.RUNNING, started_at=_utcnow())
            run.steps.append(step_run)
            started = time.monotonic()

            try:
                result = await self.execute_step(step, run)
            except Exception as e:
                step_run.status = StepStatus.FAILED
                step_run.completed_at = _utcnow()
                step_run.duration = time.monotonic() - started
                step_run.error = str(e)
                logger.error("Step %s failed in run %s: %s", step.id, run.id, e)
                raise

            step_run.status = StepStatus.COMPLETED
            step_run.completed_at = _utcnow()
            step_run.duration = time.monotonic() - started
            run.context[step.id] = result.output

        logger.info("Run %s completed", run.id)
        return run
