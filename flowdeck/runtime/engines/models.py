"""
models.py - Data models for the session spawn contract.

- SpawnRequest: everything the session runtime needs to run one prompt
- SessionResult: raw output text plus an optional session handle

These are pure data structures with no dependencies on spawner implementations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class SpawnRequest:
    """A single agent session invocation.

    Attributes:
        prompt: Fully rendered prompt text.
        tool_filter: Tool restrictions for the session. May contain an
            ``allowed`` list, a ``denied`` list, both, or neither (no
            restriction). A missing ``allowed`` key means every tool not
            denied is available.
        timeout: Session timeout in seconds. Enforcing it is the runtime's job.
        model: Optional model identifier from the agent definition.
        step_id: The step being executed.
        agent_id: The workflow agent the step references.
        task_id: The task the run works on.
        resume_session_key: Session to continue instead of starting fresh.
    """

    prompt: str
    tool_filter: Dict[str, List[str]] = field(default_factory=dict)
    timeout: int = 600
    model: Optional[str] = None
    step_id: Optional[str] = None
    agent_id: Optional[str] = None
    task_id: Optional[str] = None
    resume_session_key: Optional[str] = None


@dataclass(frozen=True)
class SessionResult:
    """Outcome of a completed session.

    Attributes:
        output: Raw textual output of the session.
        session_key: Handle for cleanup or later reuse; None when the
            runtime does not track sessions.
    """

    output: str
    session_key: Optional[str] = None
