"""
types - Core type definitions for the workflow step execution engine.

Usage:
    from flowdeck.runtime.types import (
        RunId, StepId, generate_run_id,
        StepType, StepStatus,
        WorkflowAgent, WorkflowStep, StepSessionOverride, WorkflowDefinition,
        StepRun, WorkflowRun, StepSessionConfig, StepExecutionResult,
        ToolPolicy, WILDCARD_TOOL, normalize_role,
        new_workflow_run,
        workflow_definition_to_dict, workflow_definition_from_dict,
        workflow_run_to_dict, workflow_run_from_dict,
        tool_policy_to_dict, tool_policy_from_dict,
    )
"""

from ._ids import RunId, StepId, generate_run_id
from ._time import _datetime_to_iso, _iso_to_datetime, _utcnow
from .policies import (
    WILDCARD_TOOL,
    ToolPolicy,
    normalize_role,
    tool_policy_from_dict,
    tool_policy_to_dict,
)
from .workflow import (
    CLEANUP_DELETE,
    CLEANUP_KEEP,
    CONTEXT_CUSTOM,
    CONTEXT_FULL,
    CONTEXT_MINIMAL,
    DEFAULT_STEP_TIMEOUT_SECONDS,
    SESSION_FRESH,
    SESSION_REUSE,
    CleanupMode,
    ContextMode,
    SessionMode,
    StepExecutionResult,
    StepRun,
    StepSessionConfig,
    StepSessionOverride,
    StepStatus,
    StepType,
    WorkflowAgent,
    WorkflowDefinition,
    WorkflowRun,
    WorkflowStep,
    new_workflow_run,
    step_run_from_dict,
    step_run_to_dict,
    step_session_override_from_dict,
    step_session_override_to_dict,
    workflow_agent_from_dict,
    workflow_agent_to_dict,
    workflow_definition_from_dict,
    workflow_definition_to_dict,
    workflow_run_from_dict,
    workflow_run_to_dict,
    workflow_step_from_dict,
    workflow_step_to_dict,
)

__all__ = [
    # IDs
    "RunId",
    "StepId",
    "generate_run_id",
    # Time helpers
    "_datetime_to_iso",
    "_iso_to_datetime",
    "_utcnow",
    # Session vocabulary
    "SessionMode",
    "ContextMode",
    "CleanupMode",
    "SESSION_FRESH",
    "SESSION_REUSE",
    "CONTEXT_MINIMAL",
    "CONTEXT_FULL",
    "CONTEXT_CUSTOM",
    "CLEANUP_DELETE",
    "CLEANUP_KEEP",
    "DEFAULT_STEP_TIMEOUT_SECONDS",
    # Workflow types
    "StepType",
    "StepStatus",
    "WorkflowAgent",
    "StepSessionOverride",
    "WorkflowStep",
    "WorkflowDefinition",
    "StepRun",
    "WorkflowRun",
    "StepSessionConfig",
    "StepExecutionResult",
    "new_workflow_run",
    "workflow_agent_to_dict",
    "workflow_agent_from_dict",
    "step_session_override_to_dict",
    "step_session_override_from_dict",
    "workflow_step_to_dict",
    "workflow_step_from_dict",
    "workflow_definition_to_dict",
    "workflow_definition_from_dict",
    "step_run_to_dict",
    "step_run_from_dict",
    "workflow_run_to_dict",
    "workflow_run_from_dict",
    # Tool policy types
    "WILDCARD_TOOL",
    "ToolPolicy",
    "normalize_role",
    "tool_policy_to_dict",
    "tool_policy_from_dict",
]
