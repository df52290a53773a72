"""
base.py - Abstract base class for agent session runtimes.

The step executor never runs an agent itself. It hands a rendered prompt,
a tool filter, a timeout and a model to a SessionSpawner and awaits the raw
output. Spawners own:
- Starting (or resuming) the agent session
- Enforcing the tool filter and the timeout
- Returning the raw output text

Spawners do NOT own:
- Prompt rendering or tool policy resolution (the executor's job)
- Output validation or persistence (the executor's job)
- Retries (nobody's job in this core)
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import SessionResult, SpawnRequest


class SessionSpawner(ABC):
    """Abstract base class for session spawn capabilities."""

    @property
    @abstractmethod
    def engine_id(self) -> str:
        """Unique identifier for this spawner (e.g., 'stub')."""
        ...

    @abstractmethod
    async def spawn(self, request: SpawnRequest) -> SessionResult:
        """Run one agent session to completion.

        Args:
            request: Prompt, tool filter, timeout and model for the session.

        Returns:
            SessionResult with the raw output text.
        """
        ...

    async def cleanup(self, session_key: str) -> None:
        """Release a finished session.

        Called when a step's resolved cleanup mode is ``delete``. Optional:
        runtimes without persistent sessions keep this no-op.
        """
        return None
