"""
Tests for step_executor.py - the per-step pipeline and sequential run driver.

These tests verify:
1. A passing step writes exactly one artifact and one progress entry
2. A failing step writes neither
3. Prompts are rendered from the projected session context
4. Tool filters follow the agent's role policy
5. Session reuse, keep and delete behavior
6. Unsupported step types and unsafe run IDs fail before any I/O
7. execute_run ordering, skipping and failure recording
"""

import asyncio

import pytest
from conftest import make_run, make_workflow

from flowdeck.runtime.engines import StubSessionSpawner
from flowdeck.runtime.errors import (
    AcceptanceFailedError,
    InvalidRunIdError,
    UnsupportedStepTypeError,
)
from flowdeck.runtime.step_executor import StepExecutor
from flowdeck.runtime.storage import list_step_outputs, read_progress
from flowdeck.runtime.tasks import InMemoryTaskStore, Task
from flowdeck.runtime.types import (
    StepSessionOverride,
    StepStatus,
    StepType,
    WorkflowStep,
    new_workflow_run,
)


class _FailingCleanupSpawner(StubSessionSpawner):
    async def cleanup(self, session_key):
        raise RuntimeError("session backend unavailable")


def _progress_entries(run_id, runs_dir):
    content = read_progress(run_id, runs_dir) or ""
    return content.count("## Step: ")


# =============================================================================
# execute_step
# =============================================================================


class TestExecuteStep:
    """Tests for StepExecutor.execute_step()."""

    def test_passing_step_writes_one_artifact_and_one_entry(self, executor, runs_dir):
        step = WorkflowStep(
            id="plan",
            agent="planner-agent",
            input="Plan {{task.title}}",
            acceptance_criteria=["STATUS: done"],
        )
        run = make_run(make_workflow([step]))

        result = asyncio.run(executor.execute_step(step, run))

        assert list_step_outputs(run.id, runs_dir) == ["plan.md"]
        assert _progress_entries(run.id, runs_dir) == 1
        assert result.output_path == runs_dir / run.id / "step-outputs" / "plan.md"
        assert result.output_path.read_text(encoding="utf-8") == result.raw_output
        assert "STATUS: done" in result.raw_output
        assert result.parse_warning is None

    def test_failing_acceptance_writes_nothing(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "STATUS: blocked"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent", acceptance_criteria=["STATUS: done"])
        run = make_run(make_workflow([step]))

        with pytest.raises(AcceptanceFailedError) as exc_info:
            asyncio.run(executor.execute_step(step, run))

        assert exc_info.value.criterion == "STATUS: done"
        assert list_step_outputs(run.id, runs_dir) == []
        assert read_progress(run.id, runs_dir) is None

    def test_prompt_rendered_from_context(self, executor, spawner):
        step = WorkflowStep(id="plan", agent="planner-agent", input="[{{task.id}}] {{task.title}} {{missing}}")
        run = make_run(make_workflow([step]))

        asyncio.run(executor.execute_step(step, run))

        assert spawner.requests[0].prompt == "[task-1] Add login page {{missing}}"

    def test_request_carries_model_timeout_and_ids(self, executor, spawner):
        step = WorkflowStep(id="plan", agent="planner-agent", timeout=42)
        run = make_run(make_workflow([step]))

        asyncio.run(executor.execute_step(step, run))

        request = spawner.requests[0]
        assert request.model == "sonnet"
        assert request.timeout == 42
        assert request.agent_id == "planner-agent"
        assert request.step_id == "plan"
        assert request.task_id == "task-1"

    def test_tool_filter_from_role_policy(self, executor, spawner):
        step = WorkflowStep(id="plan", agent="planner-agent")
        run = make_run(make_workflow([step]))

        asyncio.run(executor.execute_step(step, run))

        tool_filter = spawner.requests[0].tool_filter
        assert tool_filter["denied"] == ["Write", "Edit", "exec", "message"]
        assert "Read" in tool_filter["allowed"]

    def test_wildcard_role_has_no_allowed_filter(self, executor, spawner):
        step = WorkflowStep(id="build", agent="dev-agent")
        run = make_run(make_workflow([step]))

        asyncio.run(executor.execute_step(step, run))

        assert spawner.requests[0].tool_filter == {}

    def test_unknown_agent_is_unrestricted(self, executor, spawner):
        step = WorkflowStep(id="adhoc", agent="nobody")
        run = make_run(make_workflow([step]))

        asyncio.run(executor.execute_step(step, run))

        assert spawner.requests[0].tool_filter == {}
        assert spawner.requests[0].model is None

    def test_progress_visible_to_next_step(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "PLAN BODY"}, output_fn=lambda r: r.prompt)
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        plan = WorkflowStep(id="plan", agent="planner-agent")
        build = WorkflowStep(id="build", agent="dev-agent", input="Progress so far:\n{{progress}}")
        run = make_run(make_workflow([plan, build]))

        asyncio.run(executor.execute_step(plan, run))
        result = asyncio.run(executor.execute_step(build, run))

        assert "## Step: plan (" in result.raw_output
        assert "PLAN BODY" in result.raw_output

    def test_structured_output_parsed(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "files:\n  - a.py\n"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent", output_file="plan.yaml")
        run = make_run(make_workflow([step]))

        result = asyncio.run(executor.execute_step(step, run))

        assert result.output == {"files": ["a.py"]}
        assert result.output_path.name == "plan.yaml"
        assert result.output_path.read_text(encoding="utf-8") == "files:\n  - a.py\n"

    def test_parse_failure_surfaces_warning(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "not json"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent", output_file="plan.json")
        run = make_run(make_workflow([step]))

        result = asyncio.run(executor.execute_step(step, run))

        assert result.output == "not json"
        assert result.parse_warning is not None

    def test_unconstructible_yaml_does_not_fail_step(self, policy_store, runs_dir):
        raw = "released: 2024-13-45\nSTATUS: done"
        spawner = StubSessionSpawner(outputs={"plan": raw})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(
            id="plan", agent="planner-agent", output_file="plan.yaml", acceptance_criteria=["STATUS: done"]
        )
        run = make_run(make_workflow([step]))

        result = asyncio.run(executor.execute_step(step, run))

        assert result.output == raw
        assert result.parse_warning is not None
        assert result.output_path.read_text(encoding="utf-8") == raw

    @pytest.mark.parametrize("step_type", [StepType.LOOP, StepType.GATE, StepType.PARALLEL])
    def test_unsupported_step_types(self, executor, spawner, runs_dir, step_type):
        step = WorkflowStep(id="s", type=step_type, agent="dev-agent")
        run = make_run(make_workflow([step]))

        with pytest.raises(UnsupportedStepTypeError) as exc_info:
            asyncio.run(executor.execute_step(step, run))

        assert "not yet implemented" in str(exc_info.value)
        assert isinstance(exc_info.value, NotImplementedError)
        assert spawner.requests == []
        assert not (runs_dir / run.id).exists()

    def test_invalid_run_id_fails_before_io(self, executor, spawner, runs_dir):
        step = WorkflowStep(id="plan", agent="planner-agent")
        run = make_run(make_workflow([step]), run_id="../escape")

        with pytest.raises(InvalidRunIdError):
            asyncio.run(executor.execute_step(step, run))

        assert spawner.requests == []
        assert list(runs_dir.iterdir()) == []

    def test_task_hydrated_from_store(self, policy_store, spawner, runs_dir):
        store = InMemoryTaskStore({"task-9": Task(id="task-9", title="Fix bug")})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir, task_store=store)
        step = WorkflowStep(id="plan", agent="planner-agent", input="{{task.title}}")
        run = new_workflow_run(make_workflow([step]), task_id="task-9", run_id="run-hydrate")

        asyncio.run(executor.execute_step(step, run))

        assert run.context["task"] == {"id": "task-9", "title": "Fix bug"}
        assert spawner.requests[0].prompt == "Fix bug"

    def test_workflow_default_applies(self, executor, spawner):
        step = WorkflowStep(id="plan", agent="planner-agent")
        run = make_run(make_workflow([step], fresh_session_default=False))
        run.context["_sessions"] = {"planner-agent": "stub-session-old"}

        asyncio.run(executor.execute_step(step, run))

        assert spawner.requests[0].resume_session_key == "stub-session-old"


class TestSessionLifecycle:
    """Tests for session cleanup, keep and reuse."""

    def test_delete_cleans_up_session(self, executor, spawner):
        step = WorkflowStep(id="plan", agent="planner-agent")
        run = make_run(make_workflow([step]))

        result = asyncio.run(executor.execute_step(step, run))

        assert spawner.cleaned_up == [result.session_key]
        assert "_sessions" not in run.context

    def test_delete_cleans_up_after_failed_acceptance(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "nope"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent", acceptance_criteria=["STATUS: done"])
        run = make_run(make_workflow([step]))

        with pytest.raises(AcceptanceFailedError):
            asyncio.run(executor.execute_step(step, run))

        assert spawner.cleaned_up == ["stub-session-1"]

    def test_cleanup_failure_does_not_mask_acceptance_error(self, policy_store, runs_dir, caplog):
        spawner = _FailingCleanupSpawner(outputs={"plan": "nope"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent", acceptance_criteria=["STATUS: done"])
        run = make_run(make_workflow([step]))

        with caplog.at_level("WARNING"):
            with pytest.raises(AcceptanceFailedError) as exc_info:
                asyncio.run(executor.execute_step(step, run))

        assert exc_info.value.criterion == "STATUS: done"
        assert "Session cleanup failed for step plan" in caplog.text

    def test_cleanup_failure_after_success_is_logged(self, policy_store, runs_dir, caplog):
        spawner = _FailingCleanupSpawner()
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent")

        with caplog.at_level("WARNING"):
            result = asyncio.run(executor.execute_step(step, make_run(make_workflow([step]))))

        assert result.session_key == "stub-session-1"
        assert "session stub-session-1" in caplog.text

    def test_keep_records_session_for_reuse(self, executor, spawner):
        keep = WorkflowStep(id="plan", agent="planner-agent", session=StepSessionOverride(cleanup="keep"))
        reuse = WorkflowStep(
            id="replan", agent="planner-agent", session=StepSessionOverride(mode="reuse", cleanup="keep")
        )
        run = make_run(make_workflow([keep, reuse]))

        first = asyncio.run(executor.execute_step(keep, run))
        second = asyncio.run(executor.execute_step(reuse, run))

        assert spawner.cleaned_up == []
        assert run.context["_sessions"] == {"planner-agent": first.session_key}
        assert spawner.requests[1].resume_session_key == first.session_key
        assert second.session_key == first.session_key

    def test_fresh_mode_never_resumes(self, executor, spawner):
        step = WorkflowStep(id="plan", agent="planner-agent", fresh_session=True)
        run = make_run(make_workflow([step]))
        run.context["_sessions"] = {"planner-agent": "stub-session-old"}

        asyncio.run(executor.execute_step(step, run))

        assert spawner.requests[0].resume_session_key is None

    def test_untracked_sessions_skip_cleanup(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(track_sessions=False)
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        step = WorkflowStep(id="plan", agent="planner-agent")

        result = asyncio.run(executor.execute_step(step, make_run(make_workflow([step]))))

        assert result.session_key is None
        assert spawner.cleaned_up == []


# =============================================================================
# execute_run
# =============================================================================


class TestExecuteRun:
    """Tests for StepExecutor.execute_run()."""

    def _workflow(self):
        return make_workflow(
            [
                WorkflowStep(id="plan", agent="planner-agent", output_file="plan.json"),
                WorkflowStep(
                    id="build",
                    agent="dev-agent",
                    input="Implement: {{steps.plan.output}}",
                    session=StepSessionOverride(context="custom", include_outputs_from=["plan"]),
                    acceptance_criteria=["STATUS: done"],
                ),
            ]
        )

    def test_runs_steps_in_order(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": '{"files": ["a.py"]}'})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        workflow = self._workflow()
        run = make_run(workflow)

        asyncio.run(executor.execute_run(workflow, run))

        assert [r.step_id for r in run.steps] == ["plan", "build"]
        assert all(r.status == StepStatus.COMPLETED for r in run.steps)
        assert all(r.duration is not None and r.completed_at is not None for r in run.steps)
        assert run.context["plan"] == {"files": ["a.py"]}
        assert 'Implement: {"files": ["a.py"]}' in spawner.requests[1].prompt
        assert list_step_outputs(run.id, runs_dir) == ["build.md", "plan.json"]
        assert _progress_entries(run.id, runs_dir) == 2

    def test_failure_marks_step_and_stops(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "{}", "build": "STATUS: blocked"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        workflow = self._workflow()
        run = make_run(workflow)

        with pytest.raises(AcceptanceFailedError):
            asyncio.run(executor.execute_run(workflow, run))

        build_run = run.get_step_run("build")
        assert build_run.status == StepStatus.FAILED
        assert "STATUS: done" in build_run.error
        assert "build" not in run.context
        assert _progress_entries(run.id, runs_dir) == 1

    def test_resume_skips_completed_steps(self, policy_store, runs_dir):
        spawner = StubSessionSpawner(outputs={"plan": "{}", "build": "STATUS: blocked"})
        executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
        workflow = self._workflow()
        run = make_run(workflow)
        with pytest.raises(AcceptanceFailedError):
            asyncio.run(executor.execute_run(workflow, run))

        retry = StepExecutor(policy_store, StubSessionSpawner(), runs_dir=runs_dir)
        asyncio.run(retry.execute_run(workflow, run))

        assert [r.step_id for r in run.steps] == ["plan", "build", "build"]
        assert run.steps[-1].status == StepStatus.COMPLETED
        assert _progress_entries(run.id, runs_dir) == 2

    def test_unsupported_step_fails_run(self, executor):
        workflow = make_workflow([WorkflowStep(id="gate", type=StepType.GATE)])
        run = make_run(workflow)

        with pytest.raises(UnsupportedStepTypeError):
            asyncio.run(executor.execute_run(workflow, run))

        assert run.steps[0].status == StepStatus.FAILED
        assert run.steps[0].error == "Gate steps not yet implemented (step 'gate')"

    def test_empty_workflow(self, executor):
        workflow = make_workflow([])
        run = make_run(workflow)

        assert asyncio.run(executor.execute_run(workflow, run)) is run
        assert run.steps == []
