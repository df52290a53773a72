"""
Routes package for the flowdeck API.

This package contains the FastAPI routers for:
- tool_policies: Role tool policy CRUD, tool filters and access checks
- runs: Read-only access to run progress logs and step artifacts
"""

from .runs import router as runs_router
from .tool_policies import router as tool_policies_router

__all__ = [
    "tool_policies_router",
    "runs_router",
]
