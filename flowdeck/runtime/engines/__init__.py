"""
engines - Session spawn capability used by the step executor.

Usage:
    from flowdeck.runtime.engines import (
        SessionSpawner, SpawnRequest, SessionResult, StubSessionSpawner,
    )
"""

from .base import SessionSpawner
from .models import SessionResult, SpawnRequest
from .stubs import StubSessionSpawner, default_stub_output

__all__ = [
    "SessionSpawner",
    "SpawnRequest",
    "SessionResult",
    "StubSessionSpawner",
    "default_stub_output",
]
