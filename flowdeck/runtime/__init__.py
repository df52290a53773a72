# flowdeck/runtime package
# Executes workflow steps against an agent session runtime.
#
# Core components:
#   - types: Workflow, run, session and tool policy dataclasses
#   - storage: Progress log and step artifact I/O
#   - session: Session config resolution and context projection
#   - engines: SessionSpawner contract + stub implementation
#   - step_executor: StepExecutor, the per-step pipeline and run driver
#
# Usage:
#     from flowdeck.runtime import StepExecutor
#     executor = StepExecutor(policy_store, spawner, runs_dir=runs_dir)
#     await executor.execute_run(workflow, run)

from .errors import (
    AcceptanceFailedError,
    InvalidRunIdError,
    StepExecutionError,
    UnsupportedStepTypeError,
)
from .storage import (
    MAX_PROGRESS_FILE_SIZE,
    append_progress,
    list_step_outputs,
    read_progress,
    read_step_output,
    write_step_output,
)
from .types import (
    StepExecutionResult,
    StepRun,
    StepStatus,
    StepType,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
    new_workflow_run,
)
from .step_executor import StepExecutor

__all__ = [
    # Errors
    "StepExecutionError",
    "InvalidRunIdError",
    "UnsupportedStepTypeError",
    "AcceptanceFailedError",
    # Storage
    "MAX_PROGRESS_FILE_SIZE",
    "read_progress",
    "append_progress",
    "write_step_output",
    "read_step_output",
    "list_step_outputs",
    # Types
    "StepType",
    "StepStatus",
    "WorkflowStep",
    "WorkflowDefinition",
    "StepRun",
    "WorkflowRun",
    "StepExecutionResult",
    "new_workflow_run",
    # Executor
    "StepExecutor",
]
