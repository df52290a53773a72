"""
stubs.py - Stub session spawner for tests, CI and dry runs.

Simulates agent sessions without calling a real runtime. Output can be
scripted per step or computed by a callable; by default it echoes the
request and ends with ``STATUS: done``.
"""

from __future__ import annotations

import itertools
import logging
from typing import Callable, Dict, List, Optional

from .base import SessionSpawner
from .models import SessionResult, SpawnRequest

logger = logging.getLogger(__name__)

OutputFn = Callable[[SpawnRequest], str]


def default_stub_output(request: SpawnRequest) -> str:
    """Echo the request back in a readable form."""
    allowed = ", ".join(request.tool_filter.get("allowed", [])) or "all"
    denied = ", ".join(request.tool_filter.get("denied", [])) or "none"
    return (
        f"Agent {request.agent_id or 'unknown'} executed step {request.step_id or 'unknown'} "
        f"with model {request.model or 'default'}\n\n"
        f"Tool Policy:\n- Allowed: {allowed}\n- Denied: {denied}\n"
        f"Timeout: {request.timeout}s\n\n"
        f"Prompt:\n{request.prompt}\n\n"
        "STATUS: done\n"
    )


class StubSessionSpawner(SessionSpawner):
    """Deterministic spawner that records every request it receives.

    Args:
        outputs: Scripted output per step id. Steps not listed fall back to
            ``output_fn``.
        output_fn: Callable producing output from the request. Defaults to
            default_stub_output().
        track_sessions: When True, every spawn returns a session key
            (``stub-session-<n>``, or the resumed key when one is passed).
    """

    def __init__(
        self,
        outputs: Optional[Dict[str, str]] = None,
        output_fn: Optional[OutputFn] = None,
        track_sessions: bool = True,
    ):
        self._outputs = dict(outputs or {})
        self._output_fn = output_fn or default_stub_output
        self._track_sessions = track_sessions
        self._counter = itertools.count(1)
        self.requests: List[SpawnRequest] = []
        self.cleaned_up: List[str] = []

    @property
    def engine_id(self) -> str:
        return "stub"

    async def spawn(self, request: SpawnRequest) -> SessionResult:
        self.requests.append(request)

        if request.step_id is not None and request.step_id in self._outputs:
            output = self._outputs[request.step_id]
        else:
            output = self._output_fn(request)

        session_key: Optional[str] = None
        if self._track_sessions:
            session_key = request.resume_session_key or f"stub-session-{next(self._counter)}"

        logger.debug("[STUB] Spawned session %s for agent %s", session_key, request.agent_id)
        return SessionResult(output=output, session_key=session_key)

    async def cleanup(self, session_key: str) -> None:
        self.cleaned_up.append(session_key)
        logger.debug("[STUB] Cleaned up session %s", session_key)
