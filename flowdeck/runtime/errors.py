"""
errors.py - Exceptions raised while executing workflow steps.

None of these are retried by the executor; retry policy belongs to whoever
drives the run.
"""

from __future__ import annotations

from typing import Optional

from .types import StepType


class StepExecutionError(Exception):
    """Base exception for step execution failures."""

    pass


class InvalidRunIdError(StepExecutionError):
    """Raised when a run ID does not survive filename sanitization unchanged."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Invalid run ID: {run_id!r}")


class UnsupportedStepTypeError(StepExecutionError, NotImplementedError):
    """Raised for declared step variants that have no executor yet.

    Distinguishes "not supported yet" from "ran and failed".
    """

    _MESSAGES = {
        StepType.LOOP: "Loop steps not yet implemented",
        StepType.GATE: "Gate steps not yet implemented",
        StepType.PARALLEL: "Parallel steps not yet implemented",
    }

    def __init__(self, step_type: StepType, step_id: Optional[str] = None):
        self.step_type = step_type
        self.step_id = step_id
        msg = self._MESSAGES.get(step_type, f"Step type {step_type.value!r} not yet implemented")
        if step_id:
            msg += f" (step '{step_id}')"
        super().__init__(msg)


class AcceptanceFailedError(StepExecutionError):
    """Raised when a step's output does not meet one of its acceptance criteria."""

    def __init__(self, step_id: str, criterion: str):
        self.step_id = step_id
        self.criterion = criterion
        super().__init__(f"Acceptance criterion not met for step '{step_id}': \"{criterion}\"")
