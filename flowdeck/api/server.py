"""
FastAPI REST API server for flowdeck.

Exposes tool policy management and run artifacts over HTTP.

Usage:
    # Run standalone
    python -m flowdeck.api.server

    # Or via factory
    from flowdeck.api import create_app
    app = create_app()
    uvicorn.run(app, port=5002)

API Structure:
    /api/tool-policies/          - Tool policy CRUD, filters, access checks
    /api/runs/{id}/progress      - Run progress log
    /api/runs/{id}/step-outputs  - Step artifacts
    /api/health                  - Health check
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from flowdeck import __version__
from flowdeck.config.runtime_config import get_runs_dir
from flowdeck.config.tool_policies import ToolPolicyStore

logger = logging.getLogger(__name__)


# =============================================================================
# Pydantic Models for Request/Response
# =============================================================================


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: str
    timestamp: str
    version: str
    runs_dir: str
    policies_dir: str


# =============================================================================
# FastAPI Application Factory
# =============================================================================


def create_app(
    policy_store: Optional[ToolPolicyStore] = None,
    runs_dir: Optional[Path] = None,
    enable_cors: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        policy_store: Tool policy store to serve. Defaults to a store over
            the configured tool-policies directory.
        runs_dir: Base directory for run artifacts. Defaults to the
            configured runs directory.
        enable_cors: Whether to enable CORS middleware.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="flowdeck API",
        description="REST API for workflow tool policies and run artifacts.",
        version=__version__,
    )

    app.state.policy_store = policy_store if policy_store is not None else ToolPolicyStore()
    app.state.runs_dir = Path(runs_dir) if runs_dir is not None else get_runs_dir()

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )

    from .routes import runs_router, tool_policies_router

    app.include_router(tool_policies_router, prefix="/api")
    app.include_router(runs_router, prefix="/api")

    # -------------------------------------------------------------------------
    # Request Logging Middleware
    # -------------------------------------------------------------------------

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        duration = time.time() - start_time
        logger.info(
            "%s %s %s %.3fs",
            request.method,
            request.url.path,
            response.status_code,
            duration,
        )
        return response

    # -------------------------------------------------------------------------
    # Health Check
    # -------------------------------------------------------------------------

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint."""
        return HealthResponse(
            status="ok",
            timestamp=datetime.now(timezone.utc).isoformat(),
            version=__version__,
            runs_dir=str(request.app.state.runs_dir),
            policies_dir=str(request.app.state.policy_store.policies_dir),
        )

    return app


# =============================================================================
# Main Entry Point
# =============================================================================


def main():
    """Run the API server."""
    import argparse

    import uvicorn

    parser = argparse.ArgumentParser(description="flowdeck API Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5002, help="Port to bind to")
    parser.add_argument("--no-cors", action="store_true", help="Disable CORS")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)
    app = create_app(enable_cors=not args.no_cors)

    print(f"Starting flowdeck API server at http://{args.host}:{args.port}")
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
